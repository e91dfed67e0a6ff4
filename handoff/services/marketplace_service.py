# handoff/services/marketplace_service.py
from __future__ import annotations

from typing import Any, Dict, List

from pydantic import ValidationError

from handoff.errors import MarketplaceError
from handoff.models import MarketSnapshot, RejectedEntry, Trade
from handoff.services.endpoints import Endpoints
from infra import HttpPort
from infra.http_client import HttpError
from utils.logger import logger as default_logger


def parse_snapshot(payload: Any) -> MarketSnapshot:
    """
    Validate a ``/me`` payload. Entries failing the Trade schema are
    quarantined in ``rejected`` instead of being passed inward.
    """
    if not isinstance(payload, dict):
        raise MarketplaceError(f"unexpected /me payload type {type(payload).__name__}")
    raw_trades = payload.get("trades_to_send")
    if raw_trades is None:
        raw_trades = []
    if not isinstance(raw_trades, list):
        raise MarketplaceError("trades_to_send is not a list")

    trades: List[Trade] = []
    rejected: List[RejectedEntry] = []
    for raw in raw_trades:
        raw_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            trades.append(Trade.model_validate(raw))
        except ValidationError as e:
            rejected.append(RejectedEntry(
                trade_id=str(raw_id) if raw_id is not None else None,
                error=f"{e.error_count()} validation error(s): "
                      + "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()),
                raw=raw if isinstance(raw, dict) else {"value": raw},
            ))

    pending = payload.get("pending_offers")
    return MarketSnapshot(
        trades=trades,
        rejected=rejected,
        pending_offers=pending if isinstance(pending, int) else None,
    )


class MarketplaceService:
    """
    Marketplace boundary: read the "trades to send" queue and accept trades.
    Retries are left to callers; every failure surfaces as MarketplaceError.
    """

    def __init__(self, http_client: HttpPort, endpoints: Endpoints, logger=None) -> None:
        self._http = http_client
        self._ep = endpoints
        self._log = logger or default_logger

    async def fetch_snapshot(self) -> MarketSnapshot:
        """GET /me → parsed snapshot of trades_to_send."""
        try:
            payload: Dict[str, Any] = await self._http.get(self._ep.me, retry=False)
        except HttpError as e:
            raise MarketplaceError(f"fetching trades to send failed: {e}", status=e.status) from e
        snapshot = parse_snapshot(payload)
        self._log.debug(
            f"Marketplace snapshot: {len(snapshot.trades)} trade(s), {len(snapshot.rejected)} rejected"
        )
        return snapshot

    async def accept_trade(self, trade_id: str) -> None:
        """POST /trades/{id}/accept. Idempotent on the marketplace side."""
        try:
            await self._http.post(self._ep.accept_path(trade_id), expect_json=False, retry=False)
        except HttpError as e:
            raise MarketplaceError(f"accepting trade {trade_id} failed: {e}", status=e.status) from e
        self._log.info(f"Accepted trade {trade_id} on marketplace")
