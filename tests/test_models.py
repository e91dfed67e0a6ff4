# tests/test_models.py
from datetime import timezone

import pytest
from pydantic import ValidationError

from handoff.enums import OfferPhase, TradeState
from handoff.errors import PhaseError
from handoff.models import TrackedOffer, Trade

from fakes import make_trade, raw_trade


def test_trade_parses_marketplace_entry():
    t = make_trade("T1", asset_id="555", grace_period_start="2024-05-02T10:00:00Z")
    assert t.id == "T1"
    assert t.trade_state is TradeState.QUEUED
    assert t.asset_id == "555"
    assert t.item_name == "AK-47 | Redline (Field-Tested)"
    assert t.buyer.username == "buyer1"
    assert t.grace_period_start.tzinfo is not None
    assert t.grace_period_start.astimezone(timezone.utc).hour == 10


def test_numeric_ids_become_strings():
    raw = raw_trade("T1")
    raw["id"] = 42
    raw["contract"]["item"]["asset_id"] = 31337
    t = Trade.model_validate(raw)
    assert t.id == "42"
    assert t.asset_id == "31337"


def test_blank_grace_period_is_none():
    t = make_trade("T1", grace_period_start="")
    assert t.grace_period_start is None


def test_unknown_state_is_kept_but_not_mapped():
    t = make_trade("T1", state="disputed")
    assert t.state == "disputed"
    assert t.trade_state is None


def test_item_name_falls_back_to_asset_id():
    t = make_trade("T1", asset_id="77", name="")
    assert t.item_name == "77"


@pytest.mark.parametrize("mutate", [
    lambda r: r["contract"]["item"].update(asset_id=""),
    lambda r: r["contract"]["item"].pop("asset_id"),
    lambda r: r.update(trade_url="  "),
    lambda r: r.pop("contract"),
])
def test_malformed_entries_fail_validation(mutate):
    raw = raw_trade("T1")
    mutate(raw)
    with pytest.raises(ValidationError):
        Trade.model_validate(raw)


def test_tracked_offer_phases_only_move_forward():
    tracked = TrackedOffer.for_trade(make_trade("T1"))
    assert tracked.phase is OfferPhase.QUEUED
    assert tracked.asset_id == "123"
    assert tracked.advance(OfferPhase.PENDING)
    assert not tracked.advance(OfferPhase.PENDING)
    assert tracked.advance(OfferPhase.SENT)
    assert tracked.advance(OfferPhase.CONFIRMED)
    assert tracked.advance(OfferPhase.ACCEPTED)
    assert tracked.is_terminal
    with pytest.raises(PhaseError):
        tracked.advance(OfferPhase.CANCELLED)


def test_tracked_offer_cannot_skip_send():
    tracked = TrackedOffer.for_trade(make_trade("T1"))
    with pytest.raises(PhaseError):
        tracked.advance(OfferPhase.SENT)
    assert tracked.offer_id is None
