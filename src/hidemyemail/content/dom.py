"""
DOM collaborators consumed by the content script.

The page's document, its elements and its mutation notifications are
capabilities supplied by the host; only the calls the tracker makes are
described here. Positional locators are XPath-like absolute paths such as
``/html[1]/body[1]/div[2]/input[1]``.
"""

from __future__ import annotations

from typing import Callable, Iterator, NamedTuple, Optional, Protocol

EMAIL_INPUT_ATTRIBUTES = ("type", "name", "id")


class Event:
    __slots__ = ("type", "bubbles", "target", "default_prevented")

    def __init__(self, type: str, bubbles: bool = False):
        self.type = type
        self.bubbles = bubbles
        self.target: Optional[Element] = None
        self.default_prevented = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def __repr__(self) -> str:
        return f"Event(type={self.type!r})"


EventListener = Callable[[Event], None]


class Element(Protocol):
    tag_name: str
    parent: Optional[Element]
    children: list[Element]
    value: str
    text: str

    @property
    def is_connected(self) -> bool: ...

    def get_attribute(self, name: str) -> Optional[str]: ...

    def set_attribute(self, name: str, value: str) -> None: ...

    def remove_attribute(self, name: str) -> None: ...

    def insert_after(self, node: Element) -> None:
        """Insert ``node`` as the next sibling of this element."""

    def remove(self) -> None:
        """Detach from the tree; a no-op when already detached."""

    def add_event_listener(self, type: str, listener: EventListener) -> None: ...

    def remove_event_listener(self, type: str, listener: EventListener) -> None: ...

    def dispatch_event(self, event: Event) -> None: ...


class Document(Protocol):
    root: Element
    body: Element
    host: str

    @property
    def active_element(self) -> Optional[Element]: ...

    def get_element_by_id(self, element_id: str) -> Optional[Element]: ...

    def create_element(self, tag_name: str) -> Element: ...


class MutationBatch(NamedTuple):
    added: list[Element]
    removed: list[Element]


class MutationSource(Protocol):
    def subscribe(self, callback: Callable[[MutationBatch], None]) -> Callable[[], None]:
        """Deliver subtree add/remove batches. Returns an unsubscribe function."""


def iter_subtree(element: Element) -> Iterator[Element]:
    stack = [element]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def is_candidate_input(element: Element) -> bool:
    if element.tag_name.lower() != "input":
        return False
    return any((element.get_attribute(attr) or "").lower() == "email" for attr in EMAIL_INPUT_ATTRIBUTES)


def find_candidate_inputs(element: Element) -> list[Element]:
    return [el for el in iter_subtree(element) if is_candidate_input(el)]


def element_path(element: Element) -> str:
    segments = []
    node: Optional[Element] = element
    while node is not None:
        tag = node.tag_name.lower()
        parent = node.parent
        if parent is None:
            index = 1
        else:
            same_tag = [child for child in parent.children if child.tag_name.lower() == tag]
            index = next(i for i, child in enumerate(same_tag, start=1) if child is node)
        segments.append(f"{tag}[{index}]")
        node = parent
    return "/" + "/".join(reversed(segments))


def _parse_segment(segment: str) -> tuple[str, int]:
    if segment.endswith("]") and "[" in segment:
        tag, _, index = segment[:-1].partition("[")
        return tag.lower(), int(index)
    return segment.lower(), 1


def resolve_path(document: Document, path: str) -> Optional[Element]:
    """Find the element a locator points at, or None when the page changed shape."""
    segments = [s for s in path.split("/") if s]
    if not segments:
        return None
    try:
        parsed = [_parse_segment(s) for s in segments]
    except ValueError:
        return None

    root_tag, root_index = parsed[0]
    node = document.root
    if node.tag_name.lower() != root_tag or root_index != 1:
        return None
    for tag, index in parsed[1:]:
        same_tag = [child for child in node.children if child.tag_name.lower() == tag]
        if index < 1 or index > len(same_tag):
            return None
        node = same_tag[index - 1]
    return node
