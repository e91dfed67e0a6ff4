# handoff/services/reconcile_service.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from handoff.config import HandoffSettings
from handoff.enums import OfferPhase
from handoff.errors import MarketplaceError, OfferCancelError
from handoff.models import MarketSnapshot, TrackedOffer, Trade
from handoff.services.deadline_service import DeadlineService
from handoff.services.lifecycle_service import LifecycleService
from handoff.services.marketplace_service import MarketplaceService
from handoff.services.offer_service import OfferService
from handoff.stores.offer_store import OfferStore
from infra import Notifier
from utils.logger import logger as default_logger
from utils.retry import call_with_retries
from utils.time import as_utc


@dataclass
class CycleReport:
    started: List[str] = field(default_factory=list)
    armed: List[str] = field(default_factory=list)
    retired: List[str] = field(default_factory=list)
    rejected: List[Optional[str]] = field(default_factory=list)


class ReconcileService:
    """
    Poll-and-diff: compares each marketplace snapshot with the OfferStore,
    starts a lifecycle pipeline for every unseen trade and keeps grace-period
    deadlines in line with the snapshot.

    ``fetch`` does the network part; ``apply`` is synchronous so the engine
    can run it on its single owner task.
    """

    def __init__(self,
                 marketplace: MarketplaceService,
                 lifecycle: LifecycleService,
                 offers: OfferService,
                 store: OfferStore,
                 deadlines: DeadlineService,
                 notifier: Notifier,
                 settings: HandoffSettings,
                 logger=None,
                 ) -> None:
        self._market = marketplace
        self._lifecycle = lifecycle
        self._offers = offers
        self._store = store
        self._deadlines = deadlines
        self._notifier = notifier
        self._settings = settings
        self._log = logger or default_logger

        self._latest: Dict[str, Trade] = {}
        self._inflight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._reported_rejects: Set[str] = set()

    # ---- polling ---------------------------------------------------------------
    async def fetch(self) -> Optional[MarketSnapshot]:
        try:
            return await call_with_retries(
                self._market.fetch_snapshot,
                attempts=self._settings.retry_attempts,
                delay_s=self._settings.retry_delay_s,
                retry_on=(MarketplaceError,),
                label="fetch trades to send",
            )
        except MarketplaceError as e:
            self._log.error(f"Skipping cycle: {e}")
            self._notifier.notify("Error while getting trades to send.")
            return None

    async def run_cycle(self) -> Optional[CycleReport]:
        snapshot = await self.fetch()
        if snapshot is None:
            return None
        return self.apply(snapshot)

    def apply(self, snapshot: MarketSnapshot) -> CycleReport:
        report = CycleReport()
        self._latest = snapshot.by_id()
        self._report_rejects(snapshot, report)

        for trade in snapshot.trades:
            if self._store.contains(trade.id) or trade.id in self._inflight:
                continue
            self._spawn(trade)
            report.started.append(trade.id)

        # grace periods are checked against the whole snapshot, not only new trades
        for trade in snapshot.trades:
            tracked = self._store.find(trade.id)
            if tracked is None:
                continue
            self._check_asset(tracked, trade)
            tracked.trade = trade
            if self._sync_grace(tracked, trade):
                report.armed.append(trade.id)

        for tracked in self._store.list_all():
            if tracked.phase is OfferPhase.CANCELLED and tracked.trade_id not in self._latest:
                self._store.retire(tracked.trade_id)
                report.retired.append(tracked.trade_id)

        if report.started or report.armed or report.retired:
            self._log.info(
                f"Cycle: {len(snapshot.trades)} listed, started={report.started} "
                f"armed={report.armed} retired={report.retired}"
            )
        return report

    def latest_trade(self, trade_id: str) -> Optional[Trade]:
        return self._latest.get(trade_id)

    @property
    def inflight(self) -> Set[str]:
        return set(self._inflight)

    # ---- per-trade pipelines ---------------------------------------------------
    def _spawn(self, trade: Trade) -> None:
        self._inflight.add(trade.id)
        task = asyncio.get_running_loop().create_task(self._process(trade), name=f"trade-{trade.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self, trade: Trade) -> None:
        try:
            tracked = await self._lifecycle.handle_trade(trade)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.exception(f"Unexpected error handling trade {trade.id}: {e}")
            self._notifier.notify(f"Unexpected error while handling trade {trade.id}. It will be retried next cycle.")
            return
        finally:
            self._inflight.discard(trade.id)

        if tracked is not None:
            self._sync_grace(tracked, self._latest.get(trade.id, trade))

    async def wait_idle(self) -> None:
        """Wait for running pipelines (tests, shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for t in list(self._tasks):
            t.cancel()
        await self.wait_idle()

    # ---- grace-period deadlines ------------------------------------------------
    def _sync_grace(self, tracked: TrackedOffer, trade: Trade) -> bool:
        """Arm (or re-arm on a changed start) the cancel deadline. True if armed."""
        if trade.grace_period_start is None or tracked.is_terminal or tracked.offer is None:
            return False
        fire_at = as_utc(trade.grace_period_start)
        if tracked.deadline is not None and tracked.grace_fire_at == fire_at:
            return False

        self._deadlines.disarm(tracked.deadline)
        trade_id = tracked.trade_id

        async def _cancel() -> None:
            await self._on_grace_deadline(trade_id)

        tracked.deadline = self._deadlines.arm(trade_id, fire_at, _cancel)
        tracked.grace_fire_at = fire_at
        self._log.info(f"Grace period for trade {trade_id} starts {fire_at.isoformat()}, cancel armed")
        return True

    async def _on_grace_deadline(self, trade_id: str) -> None:
        tracked = self._store.find(trade_id)
        if tracked is None or tracked.is_terminal:
            self._log.info(f"Grace deadline for trade {trade_id} fired with nothing to cancel")
            return
        try:
            await self._offers.cancel_offer(tracked.offer_id)
        except OfferCancelError as e:
            self._log.error(f"Grace cancel for trade {trade_id} failed: {e}")
            self._notifier.notify(str(e) or f"Error cancelling trade {trade_id}. Please cancel it manually.")
            return

        if tracked.phase in (OfferPhase.SENT, OfferPhase.CONFIRMED):
            tracked.advance(OfferPhase.CANCELLED)
        self._notifier.notify(f"Cancelled trade {trade_id} as grace period has started.")

    # ---- consistency -----------------------------------------------------------
    def _check_asset(self, tracked: TrackedOffer, trade: Trade) -> None:
        if trade.asset_id == tracked.asset_id or tracked.mismatch_reported:
            return
        tracked.mismatch_reported = True
        self._log.error(
            f"Trade {trade.id} lists asset {trade.asset_id}, offer {tracked.offer_id} carries {tracked.asset_id}"
        )
        self._notifier.notify(
            f"Trade {trade.id} now lists asset {trade.asset_id} but offer {tracked.offer_id} carries "
            f"{tracked.asset_id}. Please check it manually."
        )

    def _report_rejects(self, snapshot: MarketSnapshot, report: CycleReport) -> None:
        listed = {r.trade_id for r in snapshot.rejected if r.trade_id is not None}
        # ids that dropped out of the snapshot may be reported again if they return
        self._reported_rejects &= listed
        fresh = [r for r in snapshot.rejected if r.trade_id is None or r.trade_id not in self._reported_rejects]
        for r in snapshot.rejected:
            report.rejected.append(r.trade_id)
            self._log.warning(f"Rejected marketplace entry {r.trade_id}: {r.error}")
        if fresh:
            self._reported_rejects.update(r.trade_id for r in fresh if r.trade_id is not None)
            ids = ", ".join(r.trade_id if r.trade_id is not None else "<no id>" for r in fresh)
            self._notifier.notify(f"Skipped malformed trade(s) from the marketplace: {ids}")
