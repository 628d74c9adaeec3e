"""
Popup state machine and controller.

The popup is transient: every time it opens it reloads its last view from
the store and re-validates the session upstream before trusting it.
Operations are only reachable from the view that offers them.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from rapidfuzz import fuzz, utils

from hidemyemail.client import AuthenticatedClient, construct_client
from hidemyemail.config import DEFAULT_NOTE
from hidemyemail.errors import InvalidTransitionError
from hidemyemail.models.hme import HmeEmail, ListHmeResult
from hidemyemail.models.messages import AutofillData, AutofillMessage
from hidemyemail.models.store import ClientConfig, PopupState
from hidemyemail.premium_mail import PremiumMailSettings
from hidemyemail.session import SessionState
from hidemyemail.storage import PersistentStore, get_client_state, get_popup_state, set_client_state, set_popup_state
from hidemyemail.transport.bus import MessageBus
from hidemyemail.transport.http import HttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Minimum 0-100 similarity for a search hit (a 0.4 distance threshold).
SEARCH_SCORE_CUTOFF = 60.0


class PopupAction(str, Enum):
    AUTHENTICATE = "AUTHENTICATE"
    MANAGE = "MANAGE"
    GENERATE = "GENERATE"
    SIGN_OUT = "SIGN_OUT"


TRANSITIONS: dict[PopupState, dict[PopupAction, PopupState]] = {
    PopupState.SIGNED_OUT: {
        PopupAction.AUTHENTICATE: PopupState.AUTHENTICATED,
    },
    PopupState.AUTHENTICATED: {
        PopupAction.MANAGE: PopupState.AUTHENTICATED_AND_MANAGING,
        PopupAction.SIGN_OUT: PopupState.SIGNED_OUT,
    },
    PopupState.AUTHENTICATED_AND_MANAGING: {
        PopupAction.GENERATE: PopupState.AUTHENTICATED,
        PopupAction.SIGN_OUT: PopupState.SIGNED_OUT,
    },
}


def next_state(state: PopupState, action: PopupAction) -> PopupState:
    try:
        return TRANSITIONS[state][action]
    except KeyError:
        raise InvalidTransitionError(state.value, action.value) from None


def search_hme(prompt: str, emails: list[HmeEmail]) -> list[HmeEmail]:
    """Fuzzy-match aliases on label and address, best match first.

    An empty prompt returns every alias unchanged.
    """
    if not prompt:
        return list(emails)
    scored = []
    for index, email in enumerate(emails):
        score = max(
            fuzz.partial_ratio(prompt, field, processor=utils.default_process)
            for field in (email.label, email.hme)
        )
        if score >= SEARCH_SCORE_CUTOFF:
            scored.append((-score, index, email))
    return [email for _, _, email in sorted(scored)]


class PopupStateMachine:
    def __init__(self, store: PersistentStore, state: PopupState = PopupState.SIGNED_OUT):
        self._store = store
        self._state = state

    @classmethod
    async def load(cls, store: PersistentStore) -> "PopupStateMachine":
        return cls(store, await get_popup_state(store))

    @property
    def state(self) -> PopupState:
        return self._state

    async def dispatch(self, action: PopupAction) -> PopupState:
        self._state = next_state(self._state, action)
        await set_popup_state(self._store, self._state)
        return self._state

    async def reset(self) -> None:
        self._state = PopupState.SIGNED_OUT
        await set_popup_state(self._store, self._state)


class Popup:
    def __init__(
        self,
        store: PersistentStore,
        bus: Optional[MessageBus] = None,
        http: Optional[HttpClient] = None,
    ):
        self._store = store
        self._bus = bus
        self._http = http or HttpClient()
        self.machine = PopupStateMachine(store)

    @property
    def state(self) -> PopupState:
        return self.machine.state

    async def close(self) -> None:
        await self._http.close()

    async def _client(self) -> AuthenticatedClient:
        return await construct_client(self._store, http=self._http)

    async def mount(self) -> PopupState:
        """Resume the persisted view, unless the session no longer validates."""
        self.machine = await PopupStateMachine.load(self._store)
        client_state = await get_client_state(self._store)

        client: Optional[AuthenticatedClient] = None
        if client_state is not None:
            client = await construct_client(self._store, http=self._http, config=client_state)

        if client is not None and await client.is_authenticated():
            await client.session.persist()
            if self.machine.state is PopupState.SIGNED_OUT:
                await self.machine.dispatch(PopupAction.AUTHENTICATE)
        else:
            await self.machine.reset()
            await set_client_state(self._store, None)
            await SessionState(self._store).reset()
        return self.machine.state

    async def sign_in(self, response_headers: Mapping[str, str], setup_url: Optional[str] = None) -> PopupState:
        """Adopt captured sign-in headers, validate them and open the generator view."""
        self._require("sign in", PopupState.SIGNED_OUT)
        session = await SessionState.load(self._store)
        session.set_headers(response_headers)
        await session.persist()

        config = ClientConfig(setup_url=setup_url) if setup_url else ClientConfig()
        client = AuthenticatedClient(config, session, http=self._http)
        await client.validate_token(persist=True)
        await set_client_state(self._store, client.client_state)
        return await self.machine.dispatch(PopupAction.AUTHENTICATE)

    def _require(self, operation: str, *states: PopupState) -> None:
        if self.machine.state not in states:
            raise InvalidTransitionError(self.machine.state.value, operation)

    async def _with_service(self, call: Callable[[PremiumMailSettings], Awaitable[T]]) -> T:
        client = await self._client()
        result = await call(PremiumMailSettings(client))
        await client.session.persist()
        return result

    # ── Generator view ────────────────────────────────────────

    async def generate(self) -> str:
        self._require("generate", PopupState.AUTHENTICATED)
        return await self._with_service(lambda pms: pms.generate_hme())

    async def reserve(self, hme: str, label: str, note: Optional[str] = DEFAULT_NOTE) -> HmeEmail:
        self._require("reserve", PopupState.AUTHENTICATED)
        return await self._with_service(lambda pms: pms.reserve_hme(hme, label, note))

    async def forward_to(self) -> str:
        self._require("forward to", PopupState.AUTHENTICATED)
        result = await self._with_service(lambda pms: pms.list_hme())
        return result.selected_forward_to

    async def manage(self) -> PopupState:
        return await self.machine.dispatch(PopupAction.MANAGE)

    # ── Manager view ──────────────────────────────────────────

    async def list_hme(self) -> ListHmeResult:
        self._require("list", PopupState.AUTHENTICATED_AND_MANAGING)
        return await self._with_service(lambda pms: pms.list_hme())

    def search_hme(self, prompt: str, emails: list[HmeEmail]) -> list[HmeEmail]:
        self._require("search", PopupState.AUTHENTICATED_AND_MANAGING)
        return search_hme(prompt, emails)

    async def update_metadata(self, anonymous_id: str, label: str, note: Optional[str] = None) -> None:
        self._require("update", PopupState.AUTHENTICATED_AND_MANAGING)
        await self._with_service(lambda pms: pms.update_hme_metadata(anonymous_id, label, note))

    async def deactivate(self, anonymous_id: str) -> None:
        self._require("deactivate", PopupState.AUTHENTICATED_AND_MANAGING)
        await self._with_service(lambda pms: pms.deactivate_hme(anonymous_id))

    async def reactivate(self, anonymous_id: str) -> None:
        self._require("reactivate", PopupState.AUTHENTICATED_AND_MANAGING)
        await self._with_service(lambda pms: pms.reactivate_hme(anonymous_id))

    async def delete(self, anonymous_id: str) -> None:
        self._require("delete", PopupState.AUTHENTICATED_AND_MANAGING)
        await self._with_service(lambda pms: pms.delete_hme(anonymous_id))

    async def update_forward_to(self, forward_to_email: str) -> None:
        self._require("forward to", PopupState.AUTHENTICATED_AND_MANAGING)
        await self._with_service(lambda pms: pms.update_forward_to_hme(forward_to_email))

    async def back_to_generator(self) -> PopupState:
        return await self.machine.dispatch(PopupAction.GENERATE)

    # ── Both signed-in views ──────────────────────────────────

    def autofill(self, hme: str) -> None:
        """Hand a reserved alias to the active tab's focused field."""
        self._require("autofill", PopupState.AUTHENTICATED, PopupState.AUTHENTICATED_AND_MANAGING)
        if self._bus is None:
            logger.debug("No message bus attached, skipping autofill")
            return
        self._bus.send_to_active_tab(AutofillMessage(data=AutofillData(data=hme, reserved=True)))

    async def sign_out(self, trust: bool = False) -> PopupState:
        # Validate the transition before touching the session.
        next_state(self.machine.state, PopupAction.SIGN_OUT)
        client = await self._client()
        await client.sign_out(trust=trust)
        await set_client_state(self._store, None)
        return await self.machine.dispatch(PopupAction.SIGN_OUT)
