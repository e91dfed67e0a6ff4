# tests/conftest.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
import pytest_asyncio

from handoff.config import HandoffSettings
from handoff.services.deadline_service import DeadlineService
from handoff.services.lifecycle_service import LifecycleService
from handoff.services.offer_service import OfferService
from handoff.services.reaper_service import ReaperService
from handoff.services.reconcile_service import ReconcileService
from handoff.stores.offer_store import OfferStore
from infra.http_client import HttpClient

from fakes import FakeMarketplace, FakeNotifier, FakeTradeClient

BASE = "https://market.test/api/v1"


@pytest.fixture
def settings():
    # no real waiting between retries; short cooldown so retirement is observable
    return HandoffSettings(poll_interval_s=0.05, retry_attempts=3, retry_delay_s=0, retire_after_s=0.2)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client():
    return FakeTradeClient()


@pytest.fixture
def market():
    return FakeMarketplace()


@pytest.fixture
def store():
    return OfferStore()


@pytest.fixture
def deadlines():
    return DeadlineService()


@pytest.fixture
def offers(client, notifier, settings):
    return OfferService(client, notifier, settings)


@pytest.fixture
def lifecycle(market, offers, store, notifier, settings):
    holder = {}
    svc = LifecycleService(
        market, offers, store, notifier, settings,
        latest_trade=lambda trade_id: holder["reconcile"].latest_trade(trade_id) if "reconcile" in holder else None,
    )
    svc.holder = holder
    return svc


@pytest.fixture
def reconcile(market, lifecycle, offers, store, deadlines, notifier, settings):
    svc = ReconcileService(market, lifecycle, offers, store, deadlines, notifier, settings)
    lifecycle.holder["reconcile"] = svc
    return svc


@pytest.fixture
def reaper(store, deadlines, offers, notifier, settings):
    return ReaperService(store, deadlines, offers, notifier, settings)


@pytest_asyncio.fixture
async def http_client():
    """
    HttpClient under aioresponses; the session is closed after the test.
    """
    async with HttpClient(BASE, headers={"Authorization": "test-key"}, backoff_ms=1) as c:
        yield c
