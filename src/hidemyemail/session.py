"""
Session state — the captured authentication headers plus the discovered
webservice endpoints.

``authenticated`` is recomputed on every read, never cached.
"""

from collections.abc import Mapping
from typing import Optional

from hidemyemail.models.store import SessionData, Webservice
from hidemyemail.storage import PersistentStore, get_session_data, set_session_data

ACCOUNT_COUNTRY_HEADER = "x-apple-id-account-country"
SESSION_ID_HEADER = "x-apple-id-session-id"
SESSION_TOKEN_HEADER = "x-apple-session-token"
SCNT_HEADER = "scnt"
TRUST_TOKEN_HEADER = "x-apple-twosv-trust-token"

REQUIRED_HEADERS = (ACCOUNT_COUNTRY_HEADER, SESSION_ID_HEADER, SESSION_TOKEN_HEADER, SCNT_HEADER)
OPTIONAL_HEADERS = (TRUST_TOKEN_HEADER,)
SESSION_HEADERS = REQUIRED_HEADERS + OPTIONAL_HEADERS


class SessionState:
    def __init__(
        self,
        store: PersistentStore,
        headers: Optional[Mapping[str, str]] = None,
        webservices: Optional[Mapping[str, Webservice]] = None,
    ):
        self._store = store
        self.headers: dict[str, str] = {}
        self.webservices: dict[str, Webservice] = dict(webservices or {})
        if headers:
            self.set_headers(headers)

    @classmethod
    async def load(cls, store: PersistentStore) -> "SessionState":
        data = await get_session_data(store)
        return cls(store, data.headers, data.webservices)

    @property
    def authenticated(self) -> bool:
        return bool(self.webservices) and not self.missing_headers()

    def missing_headers(self) -> list[str]:
        return [name for name in REQUIRED_HEADERS if not self.headers.get(name)]

    def set_headers(self, response_headers: Mapping[str, str]) -> None:
        """Copy the session headers present in a response.

        Headers absent from the response keep their previously captured value.
        """
        for name, value in response_headers.items():
            key = name.lower()
            if key in SESSION_HEADERS and value:
                self.headers[key] = value

    def to_data(self) -> SessionData:
        return SessionData(headers=dict(self.headers), webservices=dict(self.webservices))

    async def persist(self) -> None:
        await set_session_data(self._store, self.to_data())

    async def reset(self) -> None:
        self.headers = {}
        self.webservices = {}
        await self.persist()
