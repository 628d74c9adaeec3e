"""
Autofill target tracker — the content script's view of a page.

Keeps one entry per mounted candidate email field, with an optional helper
button that offers a freshly generated alias. Requests carry a per-button
``elementId``; responses only ever touch the element with that id, so any
number of fields can have a request in flight at once.
"""

import logging
import uuid
from typing import Callable, NamedTuple, Optional

from typing_extensions import assert_never

from hidemyemail.config import LOADING_COPY
from hidemyemail.content.dom import (
    Document,
    Element,
    Event,
    EventListener,
    MutationBatch,
    MutationSource,
    element_path,
    find_candidate_inputs,
    is_candidate_input,
    resolve_path,
)
from hidemyemail.models.messages import (
    AutofillMessage,
    GenerateRequestData,
    GenerateRequestMessage,
    GenerateResponseMessage,
    Message,
    ReservationRequestData,
    ReservationRequestMessage,
    ReservationResponseMessage,
    StoreLocatorData,
    StoreLocatorMessage,
)
from hidemyemail.models.store import AutofillOptions
from hidemyemail.storage import PersistentStore, get_options
from hidemyemail.transport.bus import MessageBus

logger = logging.getLogger(__name__)

# Keeps injected classes from colliding with the host page's styles.
STYLE_CLASS_PREFIX = "d1691f0f-b8f0-495e-9ffb-fe4e6f84b518"

SendMessage = Callable[[Message], None]


def class_name(short_name: str) -> str:
    return f"{STYLE_CLASS_PREFIX}-{short_name}"


def _classes(element: Element) -> list[str]:
    return (element.get_attribute("class") or "").split()


def _set_cursor(element: Element, cursor_class: str, hover: bool) -> None:
    cursor_prefix = class_name("cursor-")
    classes = [
        c for c in _classes(element)
        if not c.startswith(cursor_prefix) and c != class_name("hover-button")
    ]
    if hover:
        classes.append(class_name("hover-button"))
    classes.append(class_name(cursor_class))
    element.set_attribute("class", " ".join(classes))


def disable_button(button: Element, cursor_class: str, copy: str) -> None:
    button.text = copy
    button.set_attribute("disabled", "true")
    _set_cursor(button, cursor_class, hover=False)


def enable_button(button: Element, cursor_class: str, copy: str) -> None:
    button.text = copy
    button.remove_attribute("disabled")
    _set_cursor(button, cursor_class, hover=True)


def write_value(element: Element, value: str) -> None:
    """Set a field's value and fire the events page frameworks listen for."""
    element.value = value
    element.dispatch_event(Event("input", bubbles=True))
    element.dispatch_event(Event("change", bubbles=True))


class PendingFieldOperation(NamedTuple):
    element_id: str
    input_element_path: str


class HelperButton:
    __slots__ = ("element_id", "button", "listeners")

    def __init__(self, element_id: str, button: Element, listeners: dict[str, EventListener]):
        self.element_id = element_id
        self.button = button
        self.listeners = listeners


class TrackedField:
    __slots__ = ("input_element", "helper", "listeners")

    def __init__(self, input_element: Element):
        self.input_element = input_element
        self.helper: Optional[HelperButton] = None
        self.listeners: dict[str, EventListener] = {}


class AutofillTargetTracker:
    def __init__(
        self,
        document: Document,
        send: SendMessage,
        options: Optional[AutofillOptions] = None,
    ):
        self._document = document
        self._send = send
        self._options = options or AutofillOptions()
        self._fields: list[TrackedField] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._context_target: Optional[str] = None
        self.pending: dict[str, PendingFieldOperation] = {}

    @property
    def fields(self) -> list[Element]:
        return [f.input_element for f in self._fields]

    def helper_for(self, input_element: Element) -> Optional[HelperButton]:
        field = self._find(input_element)
        return field.helper if field else None

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self, mutations: Optional[MutationSource] = None) -> None:
        for element in find_candidate_inputs(self._document.body):
            self.attach(element)
        if mutations is not None:
            self._unsubscribe = mutations.subscribe(self.handle_mutations)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for field in list(self._fields):
            self.detach(field.input_element)

    def handle_mutations(self, batch: MutationBatch) -> None:
        for node in batch.added:
            for element in find_candidate_inputs(node):
                self.attach(element)
        for node in batch.removed:
            for element in find_candidate_inputs(node):
                self.detach(element)

    def _find(self, input_element: Element) -> Optional[TrackedField]:
        return next((f for f in self._fields if f.input_element is input_element), None)

    def _find_by_element_id(self, element_id: str) -> Optional[TrackedField]:
        return next(
            (f for f in self._fields if f.helper and f.helper.element_id == element_id),
            None,
        )

    def attach(self, input_element: Element) -> TrackedField:
        existing = self._find(input_element)
        if existing is not None:
            return existing

        field = TrackedField(input_element)

        def on_context_menu(_event: Event) -> None:
            self._context_target = element_path(input_element)

        field.listeners["contextmenu"] = on_context_menu
        input_element.add_event_listener("contextmenu", on_context_menu)

        if self._options.button:
            field.helper = self._make_helper(input_element)
        self._fields.append(field)
        return field

    def detach(self, input_element: Element) -> None:
        """Forget a field and clean up its helper. Safe to call repeatedly."""
        field = self._find(input_element)
        if field is None:
            return
        self._fields.remove(field)
        for event_type, listener in field.listeners.items():
            input_element.remove_event_listener(event_type, listener)
        if field.helper is not None:
            self._remove_helper(input_element, field.helper)

    # ── Helper button ─────────────────────────────────────────

    def _make_helper(self, input_element: Element) -> HelperButton:
        button = self._document.create_element("button")
        element_id = str(uuid.uuid4())
        button.set_attribute("id", element_id)
        button.set_attribute("type", "button")
        button.set_attribute("class", class_name("button"))
        disable_button(button, "cursor-not-allowed", LOADING_COPY)

        def on_focus(_event: Event) -> None:
            disable_button(button, "cursor-progress", LOADING_COPY)
            input_element.insert_after(button)
            self.pending[element_id] = PendingFieldOperation(element_id, element_path(input_element))
            self._send(GenerateRequestMessage(data=GenerateRequestData(element_id=element_id)))

        def on_blur(_event: Event) -> None:
            disable_button(button, "cursor-not-allowed", LOADING_COPY)
            button.remove()

        def on_mousedown(event: Event) -> None:
            event.prevent_default()
            hme = button.text
            disable_button(button, "cursor-progress", LOADING_COPY)
            locator = element_path(input_element)
            self.pending[element_id] = PendingFieldOperation(element_id, locator)
            self._send(ReservationRequestMessage(data=ReservationRequestData(
                hme=hme, label=self._document.host, element_id=element_id, locator=locator,
            )))

        input_element.add_event_listener("focus", on_focus)
        input_element.add_event_listener("blur", on_blur)
        button.add_event_listener("mousedown", on_mousedown)
        return HelperButton(element_id, button, {"focus": on_focus, "blur": on_blur, "mousedown": on_mousedown})

    def _remove_helper(self, input_element: Element, helper: HelperButton) -> None:
        input_element.remove_event_listener("focus", helper.listeners["focus"])
        input_element.remove_event_listener("blur", helper.listeners["blur"])
        helper.button.remove_event_listener("mousedown", helper.listeners["mousedown"])
        if helper.button.is_connected:
            helper.button.remove()
        self.pending.pop(helper.element_id, None)

    # ── Messages ──────────────────────────────────────────────

    def handle_message(self, message: Message) -> None:
        if isinstance(message, AutofillMessage):
            self._on_autofill(message)
        elif isinstance(message, GenerateResponseMessage):
            self._on_generate_response(message)
        elif isinstance(message, ReservationResponseMessage):
            self._on_reservation_response(message)
        elif isinstance(message, (GenerateRequestMessage, ReservationRequestMessage, StoreLocatorMessage)):
            logger.debug(f"Ignoring background-bound message {message.type}")
        else:
            assert_never(message)

    def _button_by_id(self, element_id: str) -> Optional[Element]:
        element = self._document.get_element_by_id(element_id)
        if element is None or element.tag_name.lower() != "button":
            return None
        return element

    def _on_generate_response(self, message: GenerateResponseMessage) -> None:
        data = message.data
        self.pending.pop(data.element_id, None)
        button = self._button_by_id(data.element_id)
        if button is None:
            return
        if data.error:
            disable_button(button, "cursor-not-allowed", data.error)
            return
        if not data.hme:
            return
        enable_button(button, "cursor-pointer", data.hme)

    def _on_reservation_response(self, message: ReservationResponseMessage) -> None:
        data = message.data
        pending = self.pending.pop(data.element_id, None)
        field = self._find_by_element_id(data.element_id)

        if data.error:
            button = self._button_by_id(data.element_id)
            if button is not None:
                disable_button(button, "cursor-not-allowed", data.error)
            return
        if not data.hme:
            return

        locator = data.locator or (pending.input_element_path if pending else None)
        target = self._resolve_target(locator, field)
        if target is None:
            logger.debug(f"Reservation target for {data.element_id} is gone")
            return

        write_value(target, data.hme)
        self.detach(target)
        if field is not None and field.input_element is not target:
            self.detach(field.input_element)
        self._send(StoreLocatorMessage(data=StoreLocatorData(hme=data.hme, locator=element_path(target))))

    def _resolve_target(self, locator: Optional[str], field: Optional[TrackedField]) -> Optional[Element]:
        if locator:
            element = resolve_path(self._document, locator)
            if element is not None and is_candidate_input(element):
                return element
        if field is not None and field.input_element.is_connected:
            return field.input_element
        return None

    def _on_autofill(self, message: AutofillMessage) -> None:
        data = message.data
        target = None
        for locator in (data.locator, self._context_target):
            if locator:
                target = resolve_path(self._document, locator)
                if target is not None:
                    break
        if target is None:
            active = self._document.active_element
            if active is not None and active.tag_name.lower() == "input":
                target = active
        if target is None:
            return

        write_value(target, data.data)
        self.detach(target)
        if data.reserved:
            self._context_target = None
            self._send(StoreLocatorMessage(data=StoreLocatorData(hme=data.data, locator=element_path(target))))


async def mount_content_script(
    document: Document,
    bus: MessageBus,
    tab_id: int,
    store: PersistentStore,
    mutations: Optional[MutationSource] = None,
) -> AutofillTargetTracker:
    """Start tracking a tab's page and route its messages through the bus."""
    options = await get_options(store)
    tracker = AutofillTargetTracker(
        document,
        lambda message: bus.send_runtime(message, tab_id),
        options.autofill,
    )
    tracker.start(mutations)
    bus.add_tab_handler(tab_id, tracker.handle_message)
    return tracker
