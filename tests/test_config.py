# tests/test_config.py
import pytest

from handoff.config import HandoffSettings
from utils.config import load_cfg


def test_settings_defaults():
    s = HandoffSettings()
    assert s.poll_interval_s == 60.0
    assert s.retry_attempts == 3
    assert s.retry_delay_s == 5.0
    assert s.retire_after_s == 300.0
    assert (s.app_id, s.context_id) == (730, 2)


def test_settings_from_cfg_coerces_and_skips_none():
    s = HandoffSettings.from_cfg({"handoff": {"poll_interval_s": "30", "retry_attempts": 5, "retire_after_s": None}})
    assert s.poll_interval_s == 30.0
    assert s.retry_attempts == 5
    assert s.retire_after_s == 300.0


def test_settings_unknown_key_rejected():
    with pytest.raises(ValueError):
        HandoffSettings.from_cfg({"handoff": {"poll_every": 10}})


def test_load_cfg_resolves_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_MARKET_KEY", "secret-key")
    monkeypatch.delenv("TEST_MISSING_HOOK", raising=False)
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(
        "marketplace:\n"
        "  api_key: ${TEST_MARKET_KEY}\n"
        "notifications:\n"
        "  webhook_url: ${TEST_MISSING_HOOK}\n"
        "handoff:\n"
        "  poll_interval_s: 15\n",
        encoding="utf-8",
    )
    cfg = load_cfg(str(cfg_file))
    assert cfg["marketplace"]["api_key"] == "secret-key"
    assert cfg["notifications"]["webhook_url"] == ""
    assert HandoffSettings.from_cfg(cfg).poll_interval_s == 15.0


def test_shipped_config_loads():
    cfg = load_cfg()
    s = HandoffSettings.from_cfg(cfg)
    assert s.app_id == 730
