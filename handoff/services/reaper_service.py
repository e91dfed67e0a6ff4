# handoff/services/reaper_service.py
from __future__ import annotations

from datetime import timedelta
from typing import Any

from handoff.config import HandoffSettings
from handoff.enums import OfferPhase, OfferState
from handoff.services.deadline_service import DeadlineService
from handoff.services.offer_service import OfferService
from handoff.stores.offer_store import OfferStore
from infra import Notifier, OfferHandle
from utils.logger import logger as default_logger
from utils.time import utc_now


def _is_accepted(state: Any) -> bool:
    try:
        return OfferState(int(getattr(state, "value", state))) is OfferState.ACCEPTED
    except (TypeError, ValueError):
        return False


class ReaperService:
    """
    Completion path: an accepted offer has its grace deadline disarmed, then
    stays registered for ``retire_after_s`` so lagging marketplace snapshots
    still hit the dedup check, then is retired.
    """

    def __init__(self, store: OfferStore, deadlines: DeadlineService, offers: OfferService, notifier: Notifier,
                 settings: HandoffSettings, logger=None) -> None:
        self._store = store
        self._deadlines = deadlines
        self._offers = offers
        self._notifier = notifier
        self._settings = settings
        self._log = logger or default_logger

    def on_offer_changed(self, offer: OfferHandle) -> bool:
        """Handle one sent-offer state change. True when it completed a trade."""
        if not _is_accepted(getattr(offer, "state", None)):
            return False
        tracked = self._store.find_by_offer_id(getattr(offer, "id", None))
        if tracked is None:
            return False
        if tracked.phase is OfferPhase.ACCEPTED:
            return False
        if tracked.phase is OfferPhase.CANCELLED:
            self._log.warning(f"Offer {tracked.offer_id} reported accepted after being cancelled")
            self._notifier.notify(
                f"Offer {tracked.offer_id} for trade {tracked.trade_id} was reported accepted after it was cancelled. Please check it manually."
            )
            return False

        self._deadlines.disarm(tracked.deadline)
        tracked.deadline = None
        tracked.advance(OfferPhase.ACCEPTED)
        tracked.accepted_at = utc_now()
        self._offers.forget(tracked.offer_id)

        self._notifier.notify(
            f"Offer accepted for {tracked.trade.item_name} and trade {tracked.trade_id} is now completed."
        )

        trade_id = tracked.trade_id
        retire_at = tracked.accepted_at + timedelta(seconds=self._settings.retire_after_s)

        async def _retire() -> None:
            self._store.retire(trade_id)
            self._log.info(f"Trade {trade_id} retired")

        tracked.retire_handle = self._deadlines.arm(trade_id, retire_at, _retire)
        return True
