"""
REST HTTP transport for the upstream iCloud endpoints.
"""

import logging
from typing import Any, Optional

import httpx

from hidemyemail.config import DEFAULT_HEADERS, HTTP_TIMEOUT_S
from hidemyemail.errors import InvalidResponseError, UnsuccessfulRequestError

logger = logging.getLogger(__name__)


class HttpResponse:
    __slots__ = ("status_code", "headers", "data")

    def __init__(self, status_code: int, headers: httpx.Headers, data: Any):
        self.status_code = status_code
        self.headers = headers
        self.data = data

    def __repr__(self) -> str:
        return f"HttpResponse(status_code={self.status_code!r})"


class HttpClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = HTTP_TIMEOUT_S):
        self._client = httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> HttpResponse:
        """Send a request; the body goes out as JSON when present."""
        request_headers = dict(headers or {})
        if body is not None:
            request_headers.setdefault("Content-Type", "application/json")
        resp = await self._client.request(method, url, headers=request_headers, json=body)
        logger.debug("%s %s -> %s", method, url, resp.status_code)
        if resp.status_code >= 400:
            raise UnsuccessfulRequestError(method, url, resp.status_code)
        try:
            data = resp.json() if resp.content else None
        except ValueError:
            raise InvalidResponseError(method, url, resp.headers.get("content-type")) from None
        return HttpResponse(resp.status_code, resp.headers, data)

    async def close(self) -> None:
        await self._client.aclose()
