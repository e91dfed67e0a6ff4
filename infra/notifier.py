# infra/notifier.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from infra.http_client import HttpClient, HttpError
from utils.logger import logger as default_logger


class DiscordNotifier:
    """
    Human-facing notification sink backed by a Discord webhook.

    ``notify`` is fire-and-forget: the message is logged immediately and the
    webhook delivery runs in a background task. Delivery failures are logged
    and never reach the caller.
    """

    def __init__(self,
                 webhook_url: Optional[str],
                 logger: Optional[logging.Logger] = None,
                 *,
                 http: Optional[HttpClient] = None,
                 ) -> None:
        self.log = logger or default_logger
        self.webhook_url = webhook_url or ""
        self._http = http
        if self._http is None and self.webhook_url:
            # webhook responses are 204 or 429 with Retry-After; HttpClient handles both
            self._http = HttpClient(self.webhook_url, logger=self.log, max_attempts=3)
        self._pending: Set[asyncio.Task] = set()

    def notify(self, content: str) -> None:
        self.log.info(f"[notify] {content}")
        if self._http is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.log.warning("notify called without a running loop, webhook delivery skipped")
            return
        task = loop.create_task(self._deliver(content))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, content: str) -> bool:
        """Awaitable variant: deliver now and report success."""
        self.log.info(f"[notify] {content}")
        return await self._deliver(content)

    async def _deliver(self, content: str) -> bool:
        if self._http is None:
            return False
        try:
            await self._http.post("", json_body={"content": content}, expect_json=False)
            return True
        except HttpError as e:
            self.log.error(f"Error sending notification to Discord: {e}")
        except Exception as e:  # pragma: no cover - never let the sink break callers
            self.log.exception(f"Unexpected error sending notification: {e}")
        return False

    async def drain(self) -> None:
        """Wait for deliveries already queued."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._http is not None:
            await self._http.close()
