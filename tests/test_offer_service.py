# tests/test_offer_service.py
import pytest

from handoff.errors import OfferCancelError, OfferConfirmError, OfferNotFound, OfferSendError
from handoff.services.offer_service import OfferService

from fakes import FakeNotifier, FakeTradeClient

URL = "https://steamcommunity.com/tradeoffer/new/?partner=1&token=abc"


def test_build_offer_adds_single_cs_item(offers, client):
    offer = offers.build_offer(URL, "555")
    assert offer.trade_url == URL
    assert offer.items == [("555", 730, 2)]
    assert client.created == [offer]


@pytest.mark.asyncio
async def test_send_offer_retries_then_succeeds(settings):
    client = FakeTradeClient(send_failures=2)
    notifier = FakeNotifier()
    svc = OfferService(client, notifier, settings)
    offer = svc.build_offer(URL, "555")

    status = await svc.send_offer(offer)
    assert status == "sent"
    assert client.send_calls == 3
    assert notifier.messages == ["Sent offer. Status: sent."]
    assert await svc.get_offer(offer.id) is offer


@pytest.mark.asyncio
async def test_send_offer_gives_up_after_three_attempts(settings):
    client = FakeTradeClient(send_failures=10)
    svc = OfferService(client, FakeNotifier(), settings)
    with pytest.raises(OfferSendError):
        await svc.send_offer(svc.build_offer(URL, "555"))
    assert client.send_calls == 3


@pytest.mark.asyncio
async def test_confirm_offer_notifies(settings):
    client = FakeTradeClient(send_status="pending", confirm_failures=1)
    notifier = FakeNotifier()
    svc = OfferService(client, notifier, settings)
    offer = svc.build_offer(URL, "555")
    status = await svc.send_offer(offer)
    assert svc.needs_confirmation(status)

    await svc.confirm_offer(offer)
    assert client.confirmed == [offer.id]
    assert notifier.messages[-2:] == [f"Offer #{offer.id} needs confirmation.", f"Offer {offer.id} confirmed"]


@pytest.mark.asyncio
async def test_confirm_offer_failure(settings):
    client = FakeTradeClient(send_status="pending", confirm_failures=5)
    svc = OfferService(client, FakeNotifier(), settings)
    offer = svc.build_offer(URL, "555")
    await svc.send_offer(offer)
    with pytest.raises(OfferConfirmError):
        await svc.confirm_offer(offer)


@pytest.mark.asyncio
async def test_cancel_offer_uses_cache(offers, client):
    offer = offers.build_offer(URL, "555")
    await offers.send_offer(offer)
    client.remote.clear()   # client lost track of it

    await offers.cancel_offer(offer.id)
    assert client.cancelled == [offer.id]


@pytest.mark.asyncio
async def test_cancel_unknown_offer(offers):
    with pytest.raises(OfferNotFound) as ei:
        await offers.cancel_offer("999")
    assert str(ei.value) == (
        "Offer 999 could not be found and therefore cannot be cancelled. Please cancel it manually."
    )


@pytest.mark.asyncio
async def test_cancel_failure_is_single_attempt(settings):
    client = FakeTradeClient(cancel_error=RuntimeError("offer already accepted"))
    svc = OfferService(client, FakeNotifier(), settings)
    offer = svc.build_offer(URL, "555")
    await svc.send_offer(offer)
    with pytest.raises(OfferCancelError) as ei:
        await svc.cancel_offer(offer.id)
    assert client.cancel_calls == 1
    assert "Please cancel it manually." in str(ei.value)


@pytest.mark.asyncio
async def test_forget_drops_cached_offer(offers, client):
    offer = offers.build_offer(URL, "555")
    await offers.send_offer(offer)
    client.remote.clear()
    offers.forget(offer.id)
    assert await offers.get_offer(offer.id) is None
