# app/run_handoff.py
import asyncio, signal, os, sys, argparse
import importlib
import inspect

from utils import logger, load_cfg
from infra import HttpClient, DiscordNotifier
from handoff.config import HandoffSettings
from handoff.engine import HandoffEngine
from handoff.errors import SessionError
from handoff.event_bus import EventBus
from handoff.services.endpoints import make_endpoints_from_cfg
from handoff.services.marketplace_service import MarketplaceService

def env_default(name: str, default=None):
    return os.getenv(name, default)

def build_parser():
    p = argparse.ArgumentParser("handoff")
    p.add_argument("--config-path", default=env_default("HANDOFF_CONFIG", None))
    p.add_argument("--client-factory", default=env_default("HANDOFF_CLIENT_FACTORY", None),
                   help="module:callable returning a TradeClient, overrides trading_client.factory")
    return p

def load_client_factory(spec: str):
    """Resolve ``package.module:callable``."""
    if not spec or ":" not in spec:
        raise ValueError(f"trading client factory must look like 'module:callable', got {spec!r}")
    module_name, attr = spec.split(":", 1)
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"{module_name} has no attribute {attr}") from e

async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value

async def main() -> int:
    args = build_parser().parse_args()
    cfg = load_cfg(args.config_path)

    settings = HandoffSettings.from_cfg(cfg)
    endpoints = make_endpoints_from_cfg(cfg)
    market_cfg = cfg.get("marketplace", {})

    market_http = HttpClient(
        endpoints.rest_base,
        logger=logger,
        headers={"Authorization": market_cfg.get("api_key", "")},
        proxy_cfg=market_cfg.get("proxy"),
        timeout_ms=int(market_cfg.get("timeout_ms", 10000)),
    )
    notifier = DiscordNotifier(cfg.get("notifications", {}).get("webhook_url"), logger=logger)
    bus = EventBus()

    factory_spec = args.client_factory or cfg.get("trading_client", {}).get("factory")
    factory = load_client_factory(factory_spec)
    trade_client = await _maybe_await(factory(cfg, bus, notifier))

    engine = HandoffEngine(
        settings,
        MarketplaceService(market_http, endpoints, logger=logger),
        trade_client,
        notifier,
        bus,
        logger=logger,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.request_stop)
        except NotImplementedError:
            pass

    exit_code = 0
    try:
        await engine.start()
        # the client logs in and publishes session events on the bus
        login = getattr(trade_client, "login", None)
        if login is not None:
            await _maybe_await(login())
        await engine.run()
    except SessionError as e:
        logger.error(f"Fatal: {e}")
        exit_code = 1
    finally:
        close = getattr(trade_client, "close", None)
        if close is not None:
            try:
                await _maybe_await(close())
            except Exception as e:
                logger.warning(f"Trading client close failed: {e}")
        await notifier.aclose()
        await market_http.close()
    return exit_code

def cli() -> None:
    sys.exit(asyncio.run(main()))

if __name__ == "__main__":
    cli()
