# handoff/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from handoff.enums import OfferPhase, TradeState
from handoff.errors import PhaseError


def _id_str(v: Any) -> Any:
    # marketplace ids arrive as either JSON strings or numbers
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ---- marketplace snapshot schema -------------------------------------------------

class Item(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    asset_id: str
    market_hash_name: str = ""
    item_name: Optional[str] = None
    wear_name: Optional[str] = None
    float_value: Optional[float] = None
    paint_seed: Optional[int] = None
    icon_url: Optional[str] = None
    inspect_link: Optional[str] = None

    @field_validator("asset_id", mode="before")
    @classmethod
    def check_asset_id(cls, v):
        v = _id_str(v)
        if isinstance(v, str) and not v.strip():
            raise ValueError("asset_id must not be empty")
        return v


class Contract(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    item: Item
    price: Optional[int] = None     # cents
    state: Optional[str] = None
    type: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _id_str(v)


class Buyer(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    steam_id: Optional[str] = None
    username: str = ""

    @field_validator("steam_id", mode="before")
    @classmethod
    def coerce_steam_id(cls, v):
        return _id_str(v)


class Trade(BaseModel):
    """One entry of the marketplace's ``trades_to_send`` list."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    state: str
    contract: Contract
    trade_url: str
    buyer: Buyer = Buyer()
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    contract_id: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    grace_period_start: Optional[datetime] = None
    manual_verification: bool = False

    @field_validator("id", "buyer_id", "seller_id", "contract_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        return _id_str(v)

    @field_validator("created_at", "expires_at", "grace_period_start", mode="before")
    @classmethod
    def blank_timestamps(cls, v):
        return _blank_to_none(v)

    @field_validator("trade_url")
    @classmethod
    def check_trade_url(cls, v: str):
        if not v.strip():
            raise ValueError("trade_url must not be empty")
        return v

    @property
    def trade_state(self) -> Optional[TradeState]:
        try:
            return TradeState(self.state)
        except ValueError:
            return None

    @property
    def asset_id(self) -> str:
        return self.contract.item.asset_id

    @property
    def item_name(self) -> str:
        return self.contract.item.market_hash_name or self.asset_id


@dataclass
class RejectedEntry:
    trade_id: Optional[str]
    error: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class MarketSnapshot:
    trades: List[Trade] = field(default_factory=list)
    rejected: List[RejectedEntry] = field(default_factory=list)
    pending_offers: Optional[int] = None

    def by_id(self) -> Dict[str, Trade]:
        return {t.id: t for t in self.trades}


# ---- engine-owned state --------------------------------------------------------

_TRANSITIONS: Dict[OfferPhase, frozenset] = {
    OfferPhase.QUEUED: frozenset({OfferPhase.PENDING}),
    OfferPhase.PENDING: frozenset({OfferPhase.SENT}),
    OfferPhase.SENT: frozenset({OfferPhase.CONFIRMED, OfferPhase.ACCEPTED, OfferPhase.CANCELLED}),
    OfferPhase.CONFIRMED: frozenset({OfferPhase.ACCEPTED, OfferPhase.CANCELLED}),
    OfferPhase.ACCEPTED: frozenset(),
    OfferPhase.CANCELLED: frozenset(),
}

TERMINAL_PHASES = frozenset({OfferPhase.ACCEPTED, OfferPhase.CANCELLED})


@dataclass
class TrackedOffer:
    trade: Trade
    asset_id: str
    offer: Any = None                   # OfferHandle once created
    phase: OfferPhase = OfferPhase.QUEUED
    deadline: Any = None                # DeadlineHandle for the grace-period cancel
    grace_fire_at: Optional[datetime] = None
    retire_handle: Any = None           # DeadlineHandle for post-acceptance retirement
    accepted_at: Optional[datetime] = None
    mismatch_reported: bool = False

    @classmethod
    def for_trade(cls, trade: Trade) -> "TrackedOffer":
        return cls(trade=trade, asset_id=trade.asset_id)

    @property
    def trade_id(self) -> str:
        return self.trade.id

    @property
    def offer_id(self) -> Optional[str]:
        return getattr(self.offer, "id", None) if self.offer is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def advance(self, phase: OfferPhase) -> bool:
        """Move forward; returns False when already there. Never moves back."""
        if phase == self.phase:
            return False
        if phase not in _TRANSITIONS[self.phase]:
            raise PhaseError(f"trade {self.trade_id}: illegal phase change {self.phase.value} -> {phase.value}")
        self.phase = phase
        return True
