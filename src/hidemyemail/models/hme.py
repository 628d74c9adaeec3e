"""
Alias service models — premiummailsettings v1/v2 payloads.
"""

from typing import Generic, Literal, Optional, TypeVar

from pydantic import Field

from hidemyemail.models.base import CamelModel

T = TypeVar("T")


class HmeEmail(CamelModel):
    origin: Literal["ON_DEMAND", "SAFARI"] = "ON_DEMAND"
    anonymous_id: str
    domain: str = ""
    forward_to_email: str = ""
    hme: str
    is_active: bool = True
    label: str = ""
    note: str = ""
    create_timestamp: int = 0
    recipient_mail_id: str = ""


class ListHmeResult(CamelModel):
    hme_emails: list[HmeEmail] = Field(default_factory=list)
    selected_forward_to: str = ""
    forward_to_emails: list[str] = Field(default_factory=list)


class ServiceError(CamelModel):
    error_message: Optional[str] = None


class PremiumMailSettingsResponse(CamelModel, Generic[T]):
    """The ``{success, result, error}`` envelope every alias call returns."""

    success: bool
    result: Optional[T] = None
    error: Optional[ServiceError] = None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.error_message if self.error else None


class GeneratedHme(CamelModel):
    hme: str


class ReservedHme(CamelModel):
    hme: HmeEmail
