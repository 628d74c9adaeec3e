"""
Persisted documents — what each context reads back from the shared store.
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from hidemyemail.config import default_setup_url
from hidemyemail.models.base import CamelModel


class PopupState(str, Enum):
    SIGNED_OUT = "SignedOut"
    AUTHENTICATED = "Authenticated"
    AUTHENTICATED_AND_MANAGING = "AuthenticatedAndManaging"


class Webservice(CamelModel):
    url: str
    status: str = "active"


class ClientState(CamelModel):
    """Authorization context shared between contexts: ``{setupUrl, webservices}``."""

    setup_url: str = Field(default_factory=default_setup_url)
    webservices: dict[str, Webservice] = Field(default_factory=dict)


# Same shape, the name used where a client is being configured.
ClientConfig = ClientState


class SessionData(CamelModel):
    headers: dict[str, str] = Field(default_factory=dict)
    webservices: dict[str, Webservice] = Field(default_factory=dict)


class AutofillOptions(CamelModel):
    button: bool = True
    context_menu: bool = False


class Options(CamelModel):
    autofill: AutofillOptions = Field(default_factory=AutofillOptions)


class NotifierSettings(CamelModel):
    discord_webhook: Optional[str] = None
    debug_discord_webhook: Optional[str] = None
    name: Optional[str] = None
