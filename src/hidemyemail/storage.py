"""
Persistent key/value store shared by every context.

No locking and no transactions: writes are last-write-wins and readers see
whatever was last written. Listeners get ``{key: StorageChange}`` after each
write, the way extension storage reports ``onChanged``.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Protocol, Union

from pydantic import ValidationError

from hidemyemail.errors import StorageError
from hidemyemail.models.store import ClientState, NotifierSettings, Options, PopupState, SessionData

logger = logging.getLogger(__name__)

POPUP_STATE_KEY = "popupState"
CLIENT_STATE_KEY = "clientState"
OPTIONS_KEY = "iCloudHmeOptions"
SESSION_KEY = "session"
LOCATOR_KEY_PREFIX = "hme_xpath_"
DISCORD_WEBHOOK_KEY = "discordWebhook"
DEBUG_DISCORD_WEBHOOK_KEY = "debugDiscordWebhook"
NAME_KEY = "name"


class StorageChange(NamedTuple):
    old_value: Any
    new_value: Any


StorageListener = Callable[[dict[str, StorageChange]], Union[None, Awaitable[None]]]


class PersistentStore(Protocol):
    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def set_many(self, values: dict[str, Any]) -> None: ...

    async def remove(self, key: str) -> None: ...

    def subscribe(self, listener: StorageListener) -> Callable[[], None]: ...


class _ListenerMixin:
    def __init__(self) -> None:
        self._listeners: list[StorageListener] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """Add a change listener. Returns a cleanup function."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def _notify(self, changes: dict[str, StorageChange]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                result = listener(changes)
            except Exception:
                logger.exception("Storage listener failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: "asyncio.Task[None]") -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Storage listener failed: %s", task.exception())


class MemoryStore(_ListenerMixin):
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        super().__init__()
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._data.get(key, default))

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: dict[str, Any]) -> None:
        changes = {}
        for key, value in values.items():
            changes[key] = StorageChange(self._data.get(key), copy.deepcopy(value))
            self._data[key] = copy.deepcopy(value)
        self._notify(changes)

    async def remove(self, key: str) -> None:
        if key in self._data:
            old = self._data.pop(key)
            self._notify({key: StorageChange(old, None)})

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStore(_ListenerMixin):
    """One JSON document on disk, rewritten atomically on every change."""

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self._path = Path(path)
        # Read-modify-write of the whole document; one writer at a time.
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        try:
            data = json.loads(self._path.read_text())
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable store at %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".store-", suffix=".json")
            with os.fdopen(fd, "w") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self._path)
        except (OSError, TypeError) as e:
            raise StorageError(f"Failed to write store {self._path}: {e}") from e

    async def get(self, key: str, default: Any = None) -> Any:
        data = await asyncio.to_thread(self._read)
        return data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: dict[str, Any]) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            changes = {key: StorageChange(data.get(key), value) for key, value in values.items()}
            data.update(values)
            await asyncio.to_thread(self._write, data)
        self._notify(changes)

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if key not in data:
                return
            old = data.pop(key)
            await asyncio.to_thread(self._write, data)
        self._notify({key: StorageChange(old, None)})


# ── Typed accessors ─────────────────────────────────────────────


async def get_popup_state(store: PersistentStore) -> PopupState:
    raw = await store.get(POPUP_STATE_KEY)
    try:
        return PopupState(raw) if raw is not None else PopupState.SIGNED_OUT
    except ValueError:
        logger.warning("Unknown popup state %r in store, starting signed out", raw)
        return PopupState.SIGNED_OUT


async def set_popup_state(store: PersistentStore, state: PopupState) -> None:
    await store.set(POPUP_STATE_KEY, state.value)


async def get_client_state(store: PersistentStore) -> Optional[ClientState]:
    raw = await store.get(CLIENT_STATE_KEY)
    if raw is None:
        return None
    try:
        return ClientState.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding malformed client state")
        return None


async def set_client_state(store: PersistentStore, state: Optional[ClientState]) -> None:
    await store.set(CLIENT_STATE_KEY, state.to_wire() if state is not None else None)


async def get_options(store: PersistentStore) -> Options:
    raw = await store.get(OPTIONS_KEY)
    if raw is None:
        return Options()
    try:
        return Options.model_validate(raw)
    except ValidationError:
        return Options()


async def set_options(store: PersistentStore, options: Options) -> None:
    await store.set(OPTIONS_KEY, options.to_wire())


async def get_session_data(store: PersistentStore) -> SessionData:
    raw = await store.get(SESSION_KEY)
    try:
        return SessionData.model_validate(raw) if raw is not None else SessionData()
    except ValidationError:
        logger.warning("Discarding malformed session data")
        return SessionData()


async def set_session_data(store: PersistentStore, session: SessionData) -> None:
    await store.set(SESSION_KEY, session.to_wire())


def locator_key(hme: str) -> str:
    return f"{LOCATOR_KEY_PREFIX}{hme}"


async def get_locator(store: PersistentStore, hme: str) -> Optional[str]:
    return await store.get(locator_key(hme))


async def set_locator(store: PersistentStore, hme: str, locator: str) -> None:
    await store.set(locator_key(hme), locator)


async def get_notifier_settings(store: PersistentStore) -> NotifierSettings:
    return NotifierSettings(
        discord_webhook=await store.get(DISCORD_WEBHOOK_KEY),
        debug_discord_webhook=await store.get(DEBUG_DISCORD_WEBHOOK_KEY),
        name=await store.get(NAME_KEY),
    )
