"""
Operational alerts posted to a Discord-style webhook.

Best effort: a bounded number of attempts with a linear backoff, and a
final failure is only logged. ``notify`` never raises.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from hidemyemail.config import HTTP_TIMEOUT_S
from hidemyemail.storage import PersistentStore, get_notifier_settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_STEP_S = 1.0


class RetryingNotifier:
    def __init__(
        self,
        store: PersistentStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_step_s: float = DEFAULT_BACKOFF_STEP_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._max_attempts = max(1, max_attempts)
        self._backoff_step_s = backoff_step_s
        self._transport = transport
        self._sleep = sleep

    async def notify(self, text: str, debug: bool = False) -> bool:
        """Post ``text``; True once delivered, False after giving up."""
        try:
            settings = await get_notifier_settings(self._store)
        except Exception as e:
            logger.error(f"Failed to read notifier settings: {e}")
            return False

        url = settings.debug_discord_webhook if debug else settings.discord_webhook
        if not url:
            logger.error("No Discord webhook URL set in storage")
            return False

        payload = {"content": f"[{settings.name}] {text}" if settings.name else text}
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_S, transport=self._transport) as client:
            for attempt in range(1, self._max_attempts + 1):
                try:
                    resp = await client.post(url, json=payload)
                    if resp.status_code < 400:
                        return True
                    logger.warning(
                        f"Webhook attempt {attempt}/{self._max_attempts} failed with HTTP {resp.status_code}"
                    )
                except Exception as e:
                    logger.warning(f"Webhook attempt {attempt}/{self._max_attempts} failed: {e}")
                if attempt < self._max_attempts:
                    await self._sleep(self._backoff_step_s * attempt)

        logger.error(f"Failed to send to Discord after {self._max_attempts} attempts")
        return False

    def notify_in_background(self, text: str, debug: bool = False) -> "asyncio.Task[bool]":
        """Schedule ``notify`` without making the caller wait for it."""
        return asyncio.get_running_loop().create_task(self.notify(text, debug))
