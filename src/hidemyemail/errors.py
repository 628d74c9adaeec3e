"""
Hide My Email error types.

Every error carries a stable ``code`` so callers branch on the kind,
never on the message text.
"""

from typing import Any, Optional


class HideMyEmailError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details


class MissingRequiredHeaders(HideMyEmailError):
    def __init__(self, missing: list[str]):
        super().__init__(
            "missing_required_headers",
            f"Session is missing required headers: {', '.join(missing)}",
            {"missing": list(missing)},
        )
        self.missing = list(missing)


class ClientAuthenticationError(HideMyEmailError):
    def __init__(self, message: str = "Client is not authenticated"):
        super().__init__("client_authentication_error", message)


class UnsuccessfulRequestError(HideMyEmailError):
    def __init__(self, method: str, url: str, status_code: int):
        super().__init__(
            "unsuccessful_request",
            f"Request to {method} {url} failed with status code {status_code}",
            {"method": method, "url": url, "status_code": status_code},
        )
        self.status_code = status_code


class InvalidResponseError(HideMyEmailError):
    def __init__(self, method: str, url: str, content_type: Optional[str] = None):
        super().__init__(
            "invalid_response",
            f"Response from {method} {url} is not valid JSON",
            {"method": method, "url": url, "content_type": content_type},
        )


class ServiceNotFoundError(HideMyEmailError):
    def __init__(self, service_name: str):
        super().__init__(
            "service_not_found",
            f"Webservice {service_name!r} is not available for this session",
            {"service": service_name},
        )
        self.service_name = service_name


class InvalidTransitionError(HideMyEmailError):
    def __init__(self, state: str, action: str):
        super().__init__(
            "invalid_transition",
            f"Action {action} is not defined for popup state {state}",
            {"state": state, "action": action},
        )
        self.state = state
        self.action = action


class InvalidMessageError(HideMyEmailError):
    def __init__(self, message: str):
        super().__init__("invalid_message", message)


class StorageError(HideMyEmailError):
    def __init__(self, message: str):
        super().__init__("storage_error", message)


class HmeOperationError(HideMyEmailError):
    """Base for failures reported by the alias service envelope."""

    code = "hme_operation_error"
    default_message = "Hide My Email operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(self.code, message or self.default_message)


class ListHmeError(HmeOperationError):
    code = "list_hme_error"
    default_message = "Failed to list HME addresses"


class GenerateHmeError(HmeOperationError):
    code = "generate_hme_error"
    default_message = "Failed to generate HME"


class ReserveHmeError(HmeOperationError):
    code = "reserve_hme_error"
    default_message = "Failed to reserve HME"


class UpdateHmeMetadataError(HmeOperationError):
    code = "update_hme_metadata_error"
    default_message = "Failed to update HME metadata"


class DeactivateHmeError(HmeOperationError):
    code = "deactivate_hme_error"
    default_message = "Failed to deactivate HME"


class ReactivateHmeError(HmeOperationError):
    code = "reactivate_hme_error"
    default_message = "Failed to reactivate HME"


class DeleteHmeError(HmeOperationError):
    code = "delete_hme_error"
    default_message = "Failed to delete HME"


class UpdateForwardToError(HmeOperationError):
    code = "update_forward_to_error"
    default_message = "Failed to update the Forward To email."
