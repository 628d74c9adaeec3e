"""
Authenticated iCloud client.

Carries a ``ClientConfig`` (setup URL + webservices) and a ``SessionState``
(captured headers). Built fresh wherever a context needs one; nothing here
is a process-wide singleton.
"""

import logging
from typing import Any, Optional

import httpx

from hidemyemail.errors import HideMyEmailError, MissingRequiredHeaders, ServiceNotFoundError
from hidemyemail.models.store import ClientConfig, ClientState, Webservice
from hidemyemail.session import SessionState
from hidemyemail.storage import PersistentStore, get_client_state
from hidemyemail.transport.http import HttpClient

logger = logging.getLogger(__name__)


class AuthenticatedClient:
    def __init__(
        self,
        config: ClientConfig,
        session: SessionState,
        http: Optional[HttpClient] = None,
    ):
        self.setup_url = config.setup_url.rstrip("/")
        self.session = session
        if config.webservices and not session.webservices:
            session.webservices = dict(config.webservices)
        self._http = http or HttpClient()

    @property
    def webservices(self) -> dict[str, Webservice]:
        return self.session.webservices

    @property
    def authenticated(self) -> bool:
        return self.session.authenticated

    @property
    def client_state(self) -> ClientState:
        return ClientState(setup_url=self.setup_url, webservices=dict(self.session.webservices))

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Issue a call carrying the session headers; returns the parsed JSON.

        Headers passed by the caller win over stored session values.
        """
        request_headers = dict(headers or {})
        explicit = {name.lower() for name in request_headers}
        for name, value in self.session.headers.items():
            if name not in explicit:
                request_headers[name] = value

        resp = await self._http.request(method, url, headers=request_headers, body=body)
        self.session.set_headers(resp.headers)
        return resp.data

    def webservice_url(self, service_name: str) -> str:
        service = self.session.webservices.get(service_name)
        if service is None:
            raise ServiceNotFoundError(service_name)
        return service.url.rstrip("/")

    async def validate_token(self, persist: bool = False) -> dict[str, Webservice]:
        missing = self.session.missing_headers()
        if missing:
            raise MissingRequiredHeaders(missing)

        data = await self.request("POST", f"{self.setup_url}/validate")
        webservices = (data or {}).get("webservices") if isinstance(data, dict) else None
        if webservices:
            self.session.webservices = {
                name: Webservice.model_validate(service) for name, service in webservices.items()
            }
            if persist:
                await self.session.persist()
        return self.session.webservices

    async def is_authenticated(self) -> bool:
        try:
            await self.validate_token()
        except (HideMyEmailError, httpx.HTTPError) as e:
            logger.debug("Token validation failed: %s", e)
            return False
        return self.authenticated

    async def sign_out(self, trust: bool = False) -> None:
        """Log out upstream (best effort) and always reset the session."""
        try:
            if self.authenticated:
                await self.request(
                    "POST",
                    f"{self.setup_url}/logout",
                    body={"trustBrowsers": trust, "allBrowsers": trust},
                )
        except Exception as e:
            logger.warning("Logout request failed: %s", e)
        finally:
            await self.session.reset()

    async def close(self) -> None:
        await self._http.close()


async def construct_client(
    store: PersistentStore,
    http: Optional[HttpClient] = None,
    config: Optional[ClientConfig] = None,
) -> AuthenticatedClient:
    """Rebuild a client from persisted state, or the default setup URL."""
    if config is None:
        config = await get_client_state(store)
    if config is None:
        logger.debug("construct_client: using default setup URL")
        config = ClientConfig()
    session = await SessionState.load(store)
    return AuthenticatedClient(config, session, http=http)
