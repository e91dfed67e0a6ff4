# handoff/engine.py
from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Optional, Tuple

from handoff.config import HandoffSettings
from handoff.errors import SessionError
from handoff.event_bus import (
    EventBus,
    TOPIC_SENT_OFFER_CHANGED,
    TOPIC_SESSION_FAILED,
    TOPIC_WEB_SESSION,
)
from handoff.services.deadline_service import DeadlineService
from handoff.services.lifecycle_service import LifecycleService
from handoff.services.marketplace_service import MarketplaceService
from handoff.services.offer_service import OfferService
from handoff.services.reaper_service import ReaperService
from handoff.services.reconcile_service import ReconcileService
from handoff.stores.offer_store import OfferStore
from infra import Notifier, OfferHandle, TradeClient
from utils.logger import logger as default_logger

InboxItem = Tuple[str, Any]

MSG_SESSION_READY = "session_ready"
MSG_SESSION_FAILED = "session_failed"
MSG_SNAPSHOT = "snapshot"
MSG_OFFER_CHANGED = "offer_changed"


class HandoffEngine:
    """
    Composition root and single owner of the OfferStore.

    Trading-client events and poll results are queued into one inbox and
    handled one at a time by the owner task, so registry mutations from the
    poll path and the event path never interleave. Network-bound work
    (fetching, per-trade pipelines, cancellations) runs in separate tasks.
    """

    def __init__(self,
                 settings: HandoffSettings,
                 marketplace: MarketplaceService,
                 trade_client: TradeClient,
                 notifier: Notifier,
                 event_bus: EventBus,
                 logger=None,
                 ) -> None:
        self.settings = settings
        self.bus = event_bus
        self.notifier = notifier
        self._log = logger or default_logger

        self.store = OfferStore()
        self.deadlines = DeadlineService(logger=self._log)
        self.offers = OfferService(trade_client, notifier, settings, logger=self._log)
        self.lifecycle = LifecycleService(
            marketplace, self.offers, self.store, notifier, settings, logger=self._log,
            latest_trade=lambda trade_id: self.reconcile.latest_trade(trade_id),
        )
        self.reconcile = ReconcileService(
            marketplace, self.lifecycle, self.offers, self.store, self.deadlines, notifier, settings, logger=self._log,
        )
        self.reaper = ReaperService(self.store, self.deadlines, self.offers, notifier, settings, logger=self._log)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._inbox: "asyncio.Queue[InboxItem]" = asyncio.Queue()
        self._owner_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()
        self._fatal: Optional[SessionError] = None

    # ---- lifecycle -----------------------------------------------------------
    async def start(self) -> None:
        if self._owner_task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self.bus.subscribe(TOPIC_WEB_SESSION, self._on_web_session)
        self.bus.subscribe(TOPIC_SESSION_FAILED, self._on_session_failed)
        self.bus.subscribe(TOPIC_SENT_OFFER_CHANGED, self._on_sent_offer_changed)
        self._owner_task = asyncio.create_task(self._drain(), name="handoff-owner")
        self._log.info("Handoff engine started, waiting for trading web session")

    async def run(self) -> None:
        """Start and block until stopped. Raises SessionError on fatal session failure."""
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            await self.stop()
        if self._fatal is not None:
            raise self._fatal

    def request_stop(self) -> None:
        """Ask a running ``run()`` to tear down. Safe from signal handlers."""
        self._stopped.set()

    async def stop(self) -> None:
        self._stopped.set()
        self.bus.unsubscribe(TOPIC_WEB_SESSION, self._on_web_session)
        self.bus.unsubscribe(TOPIC_SESSION_FAILED, self._on_session_failed)
        self.bus.unsubscribe(TOPIC_SENT_OFFER_CHANGED, self._on_sent_offer_changed)
        for task in (self._poll_task, self._owner_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None
        self._owner_task = None
        await self.reconcile.cancel_all()
        disarmed = self.deadlines.disarm_all()
        self._log.info(f"Handoff engine stopped, {disarmed} timer(s) disarmed, {len(self.store)} offer(s) tracked")

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # ---- event bus handlers (may run on the trading client's thread) ----------
    def _post(self, item: InboxItem) -> None:
        if self._loop is None or self._loop.is_closed():
            self._log.warning(f"Engine not running, dropping {item[0]}")
            return
        try:
            on_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            self._inbox.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._inbox.put_nowait, item)

    def _on_web_session(self, _payload: Any = None) -> None:
        self._post((MSG_SESSION_READY, None))

    def _on_session_failed(self, err: Any = None) -> None:
        self._post((MSG_SESSION_FAILED, err))

    def _on_sent_offer_changed(self, offer: OfferHandle) -> None:
        self._post((MSG_OFFER_CHANGED, offer))

    # ---- owner task ----------------------------------------------------------
    async def _drain(self) -> None:
        while True:
            kind, payload = await self._inbox.get()
            try:
                self._handle(kind, payload)
            except Exception as e:
                self._log.exception(f"Engine failed handling {kind}: {e}")
            finally:
                self._inbox.task_done()

    def _handle(self, kind: str, payload: Any) -> None:
        if kind == MSG_SNAPSHOT:
            self.reconcile.apply(payload)
        elif kind == MSG_OFFER_CHANGED:
            self.reaper.on_offer_changed(payload)
        elif kind == MSG_SESSION_READY:
            self._start_polling()
        elif kind == MSG_SESSION_FAILED:
            self._fail_session(payload)
        else:
            self._log.warning(f"Unknown inbox message {kind}")

    def _start_polling(self) -> None:
        if self.polling:
            # the client re-emits this after refreshing an expired session
            self._log.debug("Web session refreshed, polling already running")
            return
        self._log.info(f"Web session ready, polling marketplace every {self.settings.poll_interval_s}s")
        self._poll_task = asyncio.create_task(self._poll_loop(), name="handoff-poll")

    def _fail_session(self, err: Any) -> None:
        self._log.error(f"Trading client could not set session cookies: {err}")
        self.notifier.notify("Unable to set cookies for trade offer manager")
        self._fatal = SessionError(f"unable to set session cookies: {err}")
        self._stopped.set()

    async def _poll_loop(self) -> None:
        while True:
            snapshot = await self.reconcile.fetch()
            if snapshot is not None:
                self._inbox.put_nowait((MSG_SNAPSHOT, snapshot))
            await asyncio.sleep(self.settings.poll_interval_s)

    async def idle(self) -> None:
        """Wait until queued messages and started pipelines are done (tests)."""
        await asyncio.sleep(0)
        await self._inbox.join()
        await self.reconcile.wait_idle()
        await self._inbox.join()
