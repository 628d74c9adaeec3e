"""
Background worker — the long-lived context.

Answers generate/reserve requests from content scripts, keeps the shared
store in sync with the upstream sign-in state, and drives the context-menu
"generate and reserve" flow. Context-menu and notification calls are best
effort: failures are logged and never interrupt the flow that made them.
"""

import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional, Protocol
from urllib.parse import urlparse

import httpx
from typing_extensions import assert_never

from hidemyemail.client import AuthenticatedClient, construct_client
from hidemyemail.config import (
    CONTEXT_MENU_ITEM_ID,
    LOADING_COPY,
    NOTIFICATION_MESSAGE_COPY,
    NOTIFICATION_TITLE_COPY,
    SETUP_URLS,
    SIGNED_IN_CTA_COPY,
    SIGNED_OUT_CTA_COPY,
)
from hidemyemail.errors import HideMyEmailError
from hidemyemail.models.messages import (
    AutofillData,
    AutofillMessage,
    GenerateRequestMessage,
    GenerateResponseData,
    GenerateResponseMessage,
    Message,
    ReservationRequestMessage,
    ReservationResponseData,
    ReservationResponseMessage,
    StoreLocatorMessage,
)
from hidemyemail.models.store import ClientConfig, Options, PopupState
from hidemyemail.notifier import RetryingNotifier
from hidemyemail.premium_mail import PremiumMailSettings
from hidemyemail.session import SessionState
from hidemyemail.storage import (
    OPTIONS_KEY,
    PersistentStore,
    StorageChange,
    get_client_state,
    get_options,
    set_client_state,
    set_locator,
    set_popup_state,
)
from hidemyemail.transport.bus import MessageBus
from hidemyemail.transport.http import HttpClient

logger = logging.getLogger(__name__)

# Errors a failed alias call can surface; rendered as text to the page.
SERVICE_ERRORS = (HideMyEmailError, httpx.HTTPError)


class ContextMenu(Protocol):
    async def create(self, item_id: str, title: str, enabled: bool, visible: bool) -> None: ...

    async def update(self, item_id: str, **properties: Any) -> None: ...


class Notifications(Protocol):
    async def create(self, title: str, message: str) -> None: ...


async def _best_effort(what: str, call: Callable[[], Awaitable[None]]) -> None:
    try:
        await call()
    except Exception as e:
        logger.debug(f"{what} failed: {e}")


class Background:
    def __init__(
        self,
        store: PersistentStore,
        bus: MessageBus,
        http: Optional[HttpClient] = None,
        context_menu: Optional[ContextMenu] = None,
        notifications: Optional[Notifications] = None,
        notifier: Optional[RetryingNotifier] = None,
    ):
        self._store = store
        self._bus = bus
        self._http = http or HttpClient()
        self._context_menu = context_menu
        self._notifications = notifications
        self._notifier = notifier
        self._cleanups: list[Callable[[], None]] = []

    def start(self) -> None:
        self._cleanups.append(self._bus.add_runtime_handler(self.handle_message))
        self._cleanups.append(self._store.subscribe(self._on_storage_changed))

    async def close(self) -> None:
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups.clear()
        await self._http.close()

    async def construct_client(self, config: Optional[ClientConfig] = None) -> AuthenticatedClient:
        return await construct_client(self._store, http=self._http, config=config)

    def _reply(self, tab_id: Optional[int], message: Message) -> None:
        if tab_id is None:
            self._bus.send_to_active_tab(message)
        else:
            self._bus.send_to_tab(tab_id, message)

    def _alert(self, text: str) -> None:
        if self._notifier is not None:
            self._notifier.notify_in_background(text)

    # ── Side effects ──────────────────────────────────────────

    async def perform_auth_side_effects(self, client: AuthenticatedClient, notification: bool = False) -> None:
        await set_client_state(self._store, client.client_state)
        await client.session.persist()

        if self._context_menu is not None:
            menu = self._context_menu
            await _best_effort("Context menu update", lambda: menu.update(
                CONTEXT_MENU_ITEM_ID, title=SIGNED_IN_CTA_COPY, enabled=True,
            ))
        if notification and self._notifications is not None:
            notifications = self._notifications
            await _best_effort("Notification", lambda: notifications.create(
                NOTIFICATION_TITLE_COPY, NOTIFICATION_MESSAGE_COPY,
            ))

    async def perform_deauth_side_effects(self) -> None:
        await set_popup_state(self._store, PopupState.SIGNED_OUT)
        await set_client_state(self._store, None)
        await SessionState(self._store).reset()

        if self._context_menu is not None:
            menu = self._context_menu
            await _best_effort("Context menu update", lambda: menu.update(
                CONTEXT_MENU_ITEM_ID, title=SIGNED_OUT_CTA_COPY, enabled=False,
            ))

    # ── Messages ──────────────────────────────────────────────

    async def handle_message(self, message: Message, sender_tab_id: Optional[int] = None) -> None:
        if isinstance(message, GenerateRequestMessage):
            await self._on_generate_request(message, sender_tab_id)
        elif isinstance(message, ReservationRequestMessage):
            await self._on_reservation_request(message, sender_tab_id)
        elif isinstance(message, StoreLocatorMessage):
            await set_locator(self._store, message.data.hme, message.data.locator)
        elif isinstance(message, (AutofillMessage, GenerateResponseMessage, ReservationResponseMessage)):
            logger.debug(f"Ignoring tab-bound message {message.type}")
        else:
            assert_never(message)

    async def _on_generate_request(self, message: GenerateRequestMessage, tab_id: Optional[int]) -> None:
        element_id = message.data.element_id

        async def signed_out() -> None:
            self._reply(tab_id, GenerateResponseMessage(data=GenerateResponseData(
                element_id=element_id, error=SIGNED_OUT_CTA_COPY,
            )))
            await self.perform_deauth_side_effects()

        client_state = await get_client_state(self._store)
        if client_state is None:
            await signed_out()
            return

        client = await self.construct_client(client_state)
        if not await client.is_authenticated():
            await signed_out()
            return

        try:
            hme = await PremiumMailSettings(client).generate_hme()
        except SERVICE_ERRORS as e:
            self._reply(tab_id, GenerateResponseMessage(data=GenerateResponseData(
                element_id=element_id, error=str(e),
            )))
            self._alert(f"Generate failed: {e}")
            return
        await client.session.persist()
        self._reply(tab_id, GenerateResponseMessage(data=GenerateResponseData(element_id=element_id, hme=hme)))

    async def _on_reservation_request(self, message: ReservationRequestMessage, tab_id: Optional[int]) -> None:
        data = message.data
        # Not re-validated: a generate request for this element always comes first.
        client = await self.construct_client()
        try:
            reserved = await PremiumMailSettings(client).reserve_hme(data.hme, data.label)
        except SERVICE_ERRORS as e:
            self._reply(tab_id, ReservationResponseMessage(data=ReservationResponseData(
                element_id=data.element_id, error=str(e),
            )))
            self._alert(f"Reservation failed: {e}")
            return
        await client.session.persist()
        self._reply(tab_id, ReservationResponseMessage(data=ReservationResponseData(
            element_id=data.element_id, hme=data.hme, locator=data.locator,
        )))
        if data.locator:
            await set_locator(self._store, reserved.hme, data.locator)

    # ── Context menu ──────────────────────────────────────────

    async def setup_context_menu(self) -> None:
        if self._context_menu is None:
            return
        options = await get_options(self._store)
        menu = self._context_menu
        await _best_effort("Context menu creation", lambda: menu.create(
            CONTEXT_MENU_ITEM_ID, title=LOADING_COPY, enabled=False, visible=options.autofill.context_menu,
        ))

    async def on_context_menu_clicked(self, tab_id: int, page_url: Optional[str]) -> None:
        def autofill(text: str, reserved: bool = False) -> None:
            self._bus.send_to_tab(tab_id, AutofillMessage(data=AutofillData(data=text, reserved=reserved)))

        autofill(LOADING_COPY)
        hostname = (urlparse(page_url).hostname or "") if page_url else ""

        client = await self.construct_client()
        if not await client.is_authenticated():
            autofill(SIGNED_OUT_CTA_COPY)
            await self.perform_deauth_side_effects()
            return

        try:
            pms = PremiumMailSettings(client)
            hme = await pms.generate_hme()
            await pms.reserve_hme(hme, hostname)
        except SERVICE_ERRORS as e:
            autofill(str(e))
            self._alert(f"Context menu reservation failed: {e}")
            return
        await client.session.persist()
        autofill(hme, reserved=True)

    def _on_storage_changed(self, changes: dict[str, StorageChange]) -> Optional[Awaitable[None]]:
        change = changes.get(OPTIONS_KEY)
        if change is None or self._context_menu is None:
            return None

        old = Options.model_validate(change.old_value) if change.old_value else Options()
        new = Options.model_validate(change.new_value) if change.new_value else Options()
        if old.autofill.context_menu == new.autofill.context_menu:
            return None

        menu = self._context_menu
        return _best_effort("Context menu visibility", lambda: menu.update(
            CONTEXT_MENU_ITEM_ID, visible=new.autofill.context_menu,
        ))

    # ── Upstream sign-in tracking ─────────────────────────────

    async def sync_auth_state(self, notification: bool = False) -> bool:
        client = await self.construct_client()
        if await client.is_authenticated():
            await self.perform_auth_side_effects(client, notification=notification)
            return True
        await self.perform_deauth_side_effects()
        return False

    async def on_installed(self, reason: str) -> None:
        await self.setup_context_menu()
        await self.sync_auth_state(notification=reason in ("install", "update"))

    async def on_response_headers(self, url: str, status_code: int, headers: Mapping[str, str]) -> None:
        """Observe an upstream response: capture headers, follow sign-in/out."""
        if not 200 <= status_code <= 299:
            logger.debug(f"Ignoring failed upstream response {status_code} for {url}")
            return

        session = await SessionState.load(self._store)
        session.set_headers(headers)
        await session.persist()

        if "/accountLogin" in url:
            setup_url = url.split("/accountLogin")[0]
            client = AuthenticatedClient(ClientConfig(setup_url=setup_url), session, http=self._http)
            if await client.is_authenticated():
                await self.perform_auth_side_effects(client, notification=True)
        elif "/logout" in url and url.startswith(SETUP_URLS):
            await self.perform_deauth_side_effects()
