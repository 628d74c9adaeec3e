"""
In-process message bus between the background worker, content scripts and
the popup.

Delivery is fire-and-forget: ``send_*`` schedules the hand-off on the running
loop and returns immediately. Each tab owns a FIFO channel drained by a
single task, so messages to one tab arrive in send order. Nothing orders
delivery across tabs or between a tab and the background.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from hidemyemail.errors import InvalidMessageError
from hidemyemail.models.messages import Message, RawMessage
from hidemyemail.transport.envelope import build_message, parse_message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message], Union[None, Awaitable[None]]]
RuntimeHandler = Callable[[Message, Optional[int]], Union[None, Awaitable[None]]]


async def _invoke(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class _TabChannel:
    def __init__(self, tab_id: int):
        self.tab_id = tab_id
        self.handlers: list[MessageHandler] = []
        self.queue: asyncio.Queue[RawMessage] = asyncio.Queue()
        self.worker: Optional[asyncio.Task[None]] = None

    async def drain(self) -> None:
        while True:
            raw = await self.queue.get()
            try:
                message = parse_message(raw)
                for handler in list(self.handlers):
                    try:
                        await _invoke(handler, message)
                    except Exception as e:
                        logger.error(f"Tab {self.tab_id} handler failed for {message.type}: {e}")
            except InvalidMessageError as e:
                logger.warning(f"Dropping message for tab {self.tab_id}: {e}")
            finally:
                self.queue.task_done()


class MessageBus:
    def __init__(self) -> None:
        self._tabs: dict[int, _TabChannel] = {}
        self._runtime_handlers: list[RuntimeHandler] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self.active_tab_id: Optional[int] = None

    def _channel(self, tab_id: int) -> _TabChannel:
        channel = self._tabs.get(tab_id)
        if channel is None:
            channel = self._tabs[tab_id] = _TabChannel(tab_id)
        return channel

    def add_runtime_handler(self, handler: RuntimeHandler) -> Callable[[], None]:
        """Register a background-side handler. Returns a cleanup function."""
        self._runtime_handlers.append(handler)

        def remove() -> None:
            try:
                self._runtime_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def add_tab_handler(self, tab_id: int, handler: MessageHandler) -> Callable[[], None]:
        """Register a content-script handler for one tab. Returns a cleanup function."""
        channel = self._channel(tab_id)
        channel.handlers.append(handler)

        def remove() -> None:
            try:
                channel.handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def send_runtime(self, message: Message, sender_tab_id: Optional[int] = None) -> None:
        """Send a message to the background context."""
        raw = build_message(message)

        async def _deliver() -> None:
            parsed = parse_message(raw)
            for handler in list(self._runtime_handlers):
                try:
                    await _invoke(handler, parsed, sender_tab_id)
                except Exception as e:
                    logger.error(f"Runtime handler failed for {parsed.type}: {e}")

        self._spawn(_deliver())

    def send_to_tab(self, tab_id: int, message: Message) -> None:
        """Queue a message for one tab's content script."""
        channel = self._channel(tab_id)
        channel.queue.put_nowait(build_message(message))
        if channel.worker is None or channel.worker.done():
            channel.worker = asyncio.get_running_loop().create_task(channel.drain())

    def send_to_active_tab(self, message: Message) -> None:
        if self.active_tab_id is None:
            logger.debug(f"No active tab for {message.type}")
            return
        self.send_to_tab(self.active_tab_id, message)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def join(self) -> None:
        """Wait until every message sent so far has been handled."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            for channel in list(self._tabs.values()):
                await channel.queue.join()
            settled = all(t.done() for t in self._tasks)
            if settled and all(c.queue.empty() for c in self._tabs.values()):
                return

    async def close(self) -> None:
        for channel in self._tabs.values():
            if channel.worker is not None:
                channel.worker.cancel()
        for task in list(self._tasks):
            task.cancel()
