"""
Premium mail settings API — the Hide My Email alias operations.
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from hidemyemail.client import AuthenticatedClient
from hidemyemail.config import DEFAULT_NOTE, PREMIUM_MAIL_SERVICE
from hidemyemail.errors import (
    ClientAuthenticationError,
    DeactivateHmeError,
    DeleteHmeError,
    GenerateHmeError,
    HmeOperationError,
    ListHmeError,
    ReactivateHmeError,
    ReserveHmeError,
    UpdateForwardToError,
    UpdateHmeMetadataError,
)
from hidemyemail.models.hme import (
    GeneratedHme,
    HmeEmail,
    ListHmeResult,
    PremiumMailSettingsResponse,
    ReservedHme,
)

M = TypeVar("M", bound=BaseModel)


class PremiumMailSettings:
    def __init__(self, client: AuthenticatedClient):
        if not client.authenticated:
            raise ClientAuthenticationError("Cannot use Hide My Email without an authenticated session")
        self.client = client
        base = client.webservice_url(PREMIUM_MAIL_SERVICE)
        self._v1 = f"{base}/v1/hme"
        self._v2 = f"{base}/v2/hme"

    async def _call(
        self,
        method: str,
        url: str,
        error_cls: type[HmeOperationError],
        body: Optional[dict[str, Any]] = None,
    ) -> PremiumMailSettingsResponse[Any]:
        raw = await self.client.request(method, url, body=body)
        try:
            response = PremiumMailSettingsResponse[Any].model_validate(raw or {"success": False})
        except ValidationError:
            raise error_cls(f"Unexpected response from {url}") from None
        if not response.success:
            raise error_cls(response.error_message)
        return response

    @staticmethod
    def _result(model: type[M], response: PremiumMailSettingsResponse[Any], error_cls: type[HmeOperationError]) -> M:
        try:
            return model.model_validate(response.result)
        except ValidationError:
            raise error_cls(f"Unexpected {model.__name__} result") from None

    async def list_hme(self) -> ListHmeResult:
        response = await self._call("GET", f"{self._v2}/list", ListHmeError)
        if response.result is None:
            return ListHmeResult()
        return self._result(ListHmeResult, response, ListHmeError)

    async def generate_hme(self) -> str:
        response = await self._call("POST", f"{self._v1}/generate", GenerateHmeError)
        return self._result(GeneratedHme, response, GenerateHmeError).hme

    async def reserve_hme(self, hme: str, label: str, note: Optional[str] = DEFAULT_NOTE) -> HmeEmail:
        response = await self._call(
            "POST", f"{self._v1}/reserve", ReserveHmeError,
            {"hme": hme, "label": label, "note": note},
        )
        return self._result(ReservedHme, response, ReserveHmeError).hme

    async def update_hme_metadata(self, anonymous_id: str, label: str, note: Optional[str] = None) -> None:
        await self._call(
            "POST", f"{self._v1}/updateMetaData", UpdateHmeMetadataError,
            {"anonymousId": anonymous_id, "label": label, "note": note},
        )

    async def deactivate_hme(self, anonymous_id: str) -> None:
        await self._call("POST", f"{self._v1}/deactivate", DeactivateHmeError, {"anonymousId": anonymous_id})

    async def reactivate_hme(self, anonymous_id: str) -> None:
        await self._call("POST", f"{self._v1}/reactivate", ReactivateHmeError, {"anonymousId": anonymous_id})

    async def delete_hme(self, anonymous_id: str) -> None:
        await self._call("POST", f"{self._v1}/delete", DeleteHmeError, {"anonymousId": anonymous_id})

    async def update_forward_to_hme(self, forward_to_email: str) -> None:
        await self._call(
            "POST", f"{self._v1}/updateForwardTo", UpdateForwardToError,
            {"forwardToEmail": forward_to_email},
        )
