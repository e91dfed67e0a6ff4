# handoff/stores/offer_store.py
from typing import Dict, Iterator, List, Optional
from handoff.models import TrackedOffer

class OfferStore:
    """
    In-memory registry of in-flight offers keyed by marketplace trade id.

    Single owner: only touched from the engine's event loop, so no lock.
    """

    def __init__(self) -> None:
        self._by_trade: Dict[str, TrackedOffer] = {}

    def contains(self, trade_id: str) -> bool:
        return trade_id in self._by_trade

    def upsert(self, trade_id: str, tracked: TrackedOffer) -> None:
        """Insert or replace the record for ``trade_id``."""
        if tracked.trade_id != trade_id:
            raise ValueError(f"key {trade_id} does not match tracked trade {tracked.trade_id}")
        self._by_trade[trade_id] = tracked

    def find(self, trade_id: str) -> Optional[TrackedOffer]:
        return self._by_trade.get(trade_id)

    def find_by_offer_id(self, offer_id: Optional[str]) -> Optional[TrackedOffer]:
        if not offer_id:
            return None
        for tracked in self._by_trade.values():
            if tracked.offer_id == offer_id:
                return tracked
        return None

    def retire(self, trade_id: str) -> None:
        self._by_trade.pop(trade_id, None)

    def list_all(self) -> List[TrackedOffer]:
        return list(self._by_trade.values())

    def __len__(self) -> int:
        return len(self._by_trade)

    def __iter__(self) -> Iterator[TrackedOffer]:
        return iter(self.list_all())
