"""
hidemyemail — iCloud Hide My Email alias automation.

Session capture, an authenticated iCloud client, the alias service API,
and the popup/background/content-script contexts that share a persistent
store and talk over a message bus.
"""

from hidemyemail.config import __version__
from hidemyemail.client import AuthenticatedClient, construct_client
from hidemyemail.session import SessionState, REQUIRED_HEADERS, OPTIONAL_HEADERS
from hidemyemail.premium_mail import PremiumMailSettings
from hidemyemail.popup import Popup, PopupAction, PopupStateMachine
from hidemyemail.background import Background
from hidemyemail.notifier import RetryingNotifier
from hidemyemail.storage import JsonFileStore, MemoryStore
from hidemyemail.transport.bus import MessageBus
from hidemyemail.models.store import ClientConfig, ClientState, PopupState
from hidemyemail.models.messages import MessageType
from hidemyemail.errors import (
    HideMyEmailError,
    MissingRequiredHeaders,
    ClientAuthenticationError,
    ServiceNotFoundError,
    InvalidTransitionError,
    HmeOperationError,
)

__all__ = [
    "__version__",
    "AuthenticatedClient",
    "construct_client",
    "SessionState",
    "REQUIRED_HEADERS",
    "OPTIONAL_HEADERS",
    "PremiumMailSettings",
    "Popup",
    "PopupAction",
    "PopupStateMachine",
    "PopupState",
    "Background",
    "RetryingNotifier",
    "JsonFileStore",
    "MemoryStore",
    "MessageBus",
    "ClientConfig",
    "ClientState",
    "MessageType",
    "HideMyEmailError",
    "MissingRequiredHeaders",
    "ClientAuthenticationError",
    "ServiceNotFoundError",
    "InvalidTransitionError",
    "HmeOperationError",
]
