# handoff/services/lifecycle_service.py
from __future__ import annotations

from typing import Callable, Optional

from handoff.config import HandoffSettings
from handoff.enums import OfferPhase, TradeState
from handoff.errors import (
    AssetMismatchError,
    MarketplaceError,
    OfferConfirmError,
)
from handoff.models import TrackedOffer, Trade
from handoff.services.marketplace_service import MarketplaceService
from handoff.services.offer_service import OfferService
from handoff.stores.offer_store import OfferStore
from infra import Notifier
from utils.logger import logger as default_logger
from utils.retry import call_with_retries

TradeLookup = Callable[[str], Optional[Trade]]


class LifecycleService:
    """
    Drives one marketplace trade through accept → build → send → confirm.

    A trade is registered in the OfferStore only once its offer was sent;
    any earlier failure leaves it unregistered so the next poll retries it.
    """

    def __init__(self,
                 marketplace: MarketplaceService,
                 offers: OfferService,
                 store: OfferStore,
                 notifier: Notifier,
                 settings: HandoffSettings,
                 logger=None,
                 *,
                 latest_trade: Optional[TradeLookup] = None,
                 ) -> None:
        self._market = marketplace
        self._offers = offers
        self._store = store
        self._notifier = notifier
        self._settings = settings
        self._log = logger or default_logger
        self._latest_trade = latest_trade

    async def handle_trade(self, trade: Trade) -> Optional[TrackedOffer]:
        tracked = TrackedOffer.for_trade(trade)

        state = trade.trade_state
        if state is TradeState.QUEUED:
            if not await self._accept(trade):
                return None
        elif state is not TradeState.PENDING:
            self._log.debug(f"Trade {trade.id} in state {trade.state}, nothing to send")
            return None
        tracked.advance(OfferPhase.PENDING)

        try:
            self._check_asset(tracked)
        except AssetMismatchError as e:
            self._log.error(str(e))
            self._notifier.notify(
                f"Trade {trade.id} changed its item while being processed. Not sending an offer, please check it manually."
            )
            return None

        return await self._send(tracked)

    async def _accept(self, trade: Trade) -> bool:
        try:
            await call_with_retries(
                lambda: self._market.accept_trade(trade.id),
                attempts=self._settings.retry_attempts,
                delay_s=self._settings.retry_delay_s,
                retry_on=(MarketplaceError,),
                label=f"accept trade {trade.id}",
            )
        except MarketplaceError as e:
            self._log.error(f"Giving up accepting trade {trade.id}: {e}")
            self._notifier.notify("Error while accepting trade.")
            return False
        return True

    def _check_asset(self, tracked: TrackedOffer) -> None:
        latest = self._latest_trade(tracked.trade_id) if self._latest_trade else None
        if latest is None:
            latest = tracked.trade
        if latest.asset_id != tracked.asset_id:
            raise AssetMismatchError(
                "asset changed before commit",
                trade_id=tracked.trade_id, committed=tracked.asset_id, snapshot=latest.asset_id,
            )

    async def _send(self, tracked: TrackedOffer) -> Optional[TrackedOffer]:
        trade = tracked.trade
        try:
            offer = self._offers.build_offer(trade.trade_url, tracked.asset_id)
            status = await self._offers.send_offer(offer)
        except Exception as e:
            self._log.error(f"Sending offer for trade {trade.id} failed: {e}")
            self._notifier.notify("Error sending offer")
            return None

        tracked.offer = offer
        tracked.advance(OfferPhase.SENT)

        existing = self._store.find(trade.id)
        if existing is not None:
            # only reachable if two pipelines ran for one trade
            self._log.error(f"Trade {trade.id} already tracked by offer {existing.offer_id}, new offer {tracked.offer_id}")
            self._notifier.notify(
                f"Trade {trade.id} has two outbound offers ({existing.offer_id}, {tracked.offer_id}). Please cancel one manually."
            )
            return existing
        self._store.upsert(trade.id, tracked)
        self._notifier.notify(f"Offer sent for {trade.item_name} to {trade.buyer.username}")

        if self._offers.needs_confirmation(status):
            try:
                await self._offers.confirm_offer(offer)
            except OfferConfirmError as e:
                self._log.error(str(e))
                self._notifier.notify(f"Offer {tracked.offer_id} could not be confirmed. Please confirm it manually.")
                return tracked
            if tracked.phase is OfferPhase.SENT:
                tracked.advance(OfferPhase.CONFIRMED)
        return tracked
