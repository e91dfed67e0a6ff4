# handoff/config.py
from dataclasses import dataclass, fields
from typing import Any, Mapping

@dataclass
class HandoffSettings:
    """Engine runtime configuration."""
    poll_interval_s: float = 60.0
    retry_attempts: int = 3             # accept / send / confirm
    retry_delay_s: float = 5.0          # fixed, not exponential
    retire_after_s: float = 300.0       # keep accepted offers registered this long

    app_id: int = 730                   # CS item namespace on the trading protocol
    context_id: int = 2

    @classmethod
    def from_cfg(cls, cfg: Mapping[str, Any]) -> "HandoffSettings":
        section = dict(cfg.get("handoff") or {})
        known = {f.name for f in fields(cls)}
        unknown = set(section) - set(known)
        if unknown:
            raise ValueError(f"Unknown handoff settings: {sorted(unknown)}")
        kwargs = {}
        for name, value in section.items():
            if value is None:
                continue
            default = getattr(cls, name)
            kwargs[name] = type(default)(value)
        return cls(**kwargs)
