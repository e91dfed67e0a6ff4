# handoff/services/endpoints.py
from dataclasses import dataclass

@dataclass
class Endpoints:
    # marketplace REST base
    rest_base: str = "https://csgofloat.com/api/v1"

    # REST paths
    me: str = "/me"
    trade_accept: str = "/trades/{trade_id}/accept"

    def accept_path(self, trade_id: str) -> str:
        return self.trade_accept.format(trade_id=trade_id)


def make_endpoints_from_cfg(cfg: dict) -> Endpoints:
    market_cfg = cfg.get("marketplace") or {}
    rest_base = str(market_cfg.get("rest_base") or Endpoints.rest_base).rstrip("/")
    paths = market_cfg.get("paths") or {}
    try:
        return Endpoints(rest_base=rest_base, **paths)
    except TypeError as e:
        raise ValueError(f"Invalid marketplace.paths in cfg: {e}") from e
