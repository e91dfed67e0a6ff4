# infra/__init__.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

from infra.http_client import HttpClient, HttpError
from infra.notifier import DiscordNotifier


# ========== 1) HTTP port: services depend on this, not on HttpClient ==========
class HttpPort(Protocol):
    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, *, retry: bool = True) -> Dict[str, Any]: ...
    async def post(self, path: str, json_body: Optional[Mapping[str, Any]] = None, *,
                   expect_json: bool = True, retry: bool = True) -> Dict[str, Any]: ...


# ========== 2) Trading-protocol client (external collaborator) ==========
class OfferHandle(Protocol):
    """Outbound offer as exposed by the trading client. ``id`` is set once sent."""
    id: Optional[str]
    state: Any


class TradeClient(Protocol):
    """
    Contract the engine needs from the trading protocol. Session handshake,
    guard codes and cookie refresh live behind it. Session readiness and offer
    state changes are published on the engine's EventBus:

    - ``session.web``         web session and cookies are usable
    - ``session.failed``      cookies could not be set (fatal)
    - ``offer.sent_changed``  payload is an OfferHandle whose state changed
    """
    def create_offer(self, trade_url: str) -> OfferHandle: ...
    def add_item(self, offer: OfferHandle, asset_id: str, app_id: int, context_id: int) -> None: ...
    async def send(self, offer: OfferHandle) -> str: ...
    async def confirm(self, offer: OfferHandle) -> None: ...
    async def cancel(self, offer: OfferHandle) -> None: ...
    async def get_offer(self, offer_id: str) -> Optional[OfferHandle]: ...


# ========== 3) Notification sink ==========
class Notifier(Protocol):
    def notify(self, content: str) -> None: ...


__all__ = [
    "HttpClient", "HttpError", "HttpPort",
    "OfferHandle", "TradeClient",
    "Notifier", "DiscordNotifier",
]
