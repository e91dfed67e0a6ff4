# handoff/services/offer_service.py
from __future__ import annotations

from typing import Dict, Optional

from handoff.config import HandoffSettings
from handoff.enums import SendStatus
from handoff.errors import OfferCancelError, OfferConfirmError, OfferNotFound, OfferSendError
from infra import Notifier, OfferHandle, TradeClient
from utils.logger import logger as default_logger
from utils.retry import call_with_retries


class OfferService:
    """
    Outbound offers through the trading client: build, send, confirm, look up
    and cancel. Sent offers are cached by id so cancellation does not depend
    on the client being able to find them again.
    """

    def __init__(self, trade_client: TradeClient, notifier: Notifier, settings: HandoffSettings, logger=None) -> None:
        self._client = trade_client
        self._notifier = notifier
        self._settings = settings
        self._log = logger or default_logger
        self._sent: Dict[str, OfferHandle] = {}

    def build_offer(self, trade_url: str, asset_id: str) -> OfferHandle:
        """New offer to ``trade_url`` carrying exactly one of our assets."""
        offer = self._client.create_offer(trade_url)
        self._client.add_item(offer, asset_id, self._settings.app_id, self._settings.context_id)
        return offer

    async def send_offer(self, offer: OfferHandle) -> str:
        try:
            status = await call_with_retries(
                lambda: self._client.send(offer),
                attempts=self._settings.retry_attempts,
                delay_s=self._settings.retry_delay_s,
                label="send offer",
            )
        except Exception as e:
            raise OfferSendError(f"sending offer failed: {e}") from e

        status = getattr(status, "value", status)
        if offer.id:
            self._sent[offer.id] = offer
        self._notifier.notify(f"Sent offer. Status: {status}.")
        return status

    async def confirm_offer(self, offer: OfferHandle) -> None:
        self._notifier.notify(f"Offer #{offer.id} needs confirmation.")
        try:
            await call_with_retries(
                lambda: self._client.confirm(offer),
                attempts=self._settings.retry_attempts,
                delay_s=self._settings.retry_delay_s,
                label=f"confirm offer {offer.id}",
            )
        except Exception as e:
            raise OfferConfirmError(f"confirming offer {offer.id} failed: {e}") from e
        self._notifier.notify(f"Offer {offer.id} confirmed")

    @staticmethod
    def needs_confirmation(status: str) -> bool:
        return status in (SendStatus.PENDING.value, SendStatus.NEEDS_CONFIRMATION.value)

    async def get_offer(self, offer_id: str) -> Optional[OfferHandle]:
        cached = self._sent.get(offer_id)
        if cached is not None:
            return cached
        return await self._client.get_offer(offer_id)

    async def cancel_offer(self, offer_id: Optional[str]) -> OfferHandle:
        """Single attempt; failures carry a manual-action message."""
        try:
            offer = await self.get_offer(offer_id) if offer_id else None
        except Exception as e:
            raise OfferCancelError(
                f"Error looking up offer {offer_id}: {e}. Please cancel it manually."
            ) from e
        if offer is None:
            raise OfferNotFound(
                f"Offer {offer_id} could not be found and therefore cannot be cancelled. Please cancel it manually."
            )
        try:
            await self._client.cancel(offer)
        except Exception as e:
            raise OfferCancelError(f"Error cancelling offer {offer_id}: {e}. Please cancel it manually.") from e
        self._sent.pop(offer_id, None)
        self._log.info(f"Offer {offer_id} cancelled")
        return offer

    def forget(self, offer_id: Optional[str]) -> None:
        if offer_id:
            self._sent.pop(offer_id, None)
