# tests/test_http_client.py
import asyncio
import json

import aiohttp
import pytest
from aioresponses import aioresponses, CallbackResult

from infra.http_client import HttpClient, HttpError, build_proxy

BASE = "https://market.test/api/v1"


@pytest.mark.asyncio
async def test_get_decodes_json_and_sends_auth_header(http_client: HttpClient):
    def _assert_request(url, **kwargs):
        headers = kwargs["headers"]
        assert headers["Authorization"] == "test-key"
        assert headers["Accept"] == "application/json"
        return CallbackResult(status=200, payload={"user": {"steam_id": "1"}, "trades_to_send": []})

    with aioresponses() as m:
        m.get(f"{BASE}/me", callback=_assert_request)
        resp = await http_client.get("/me")
        assert resp["trades_to_send"] == []


@pytest.mark.asyncio
async def test_post_sends_compact_json(http_client: HttpClient):
    def _assert_post(url, **kwargs):
        assert kwargs["data"] == json.dumps({"content": "hi"}, separators=(",", ":"))
        assert kwargs["headers"]["Content-Type"] == "application/json"
        return CallbackResult(status=204, body="")

    with aioresponses() as m:
        m.post(f"{BASE}/hook", callback=_assert_post)
        resp = await http_client.post("/hook", json_body={"content": "hi"}, expect_json=False)
        assert resp == {"raw": ""}


@pytest.mark.asyncio
async def test_retry_on_429_and_5xx(http_client: HttpClient, monkeypatch):
    """
    429 then 500 then success; backoff sleep replaced with a no-op.
    """
    monkeypatch.setattr(http_client, "_sleep_backoff", lambda *a, **k: asyncio.sleep(0))

    calls = {"n": 0}

    def _flaky(url, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return CallbackResult(status=429, body="slow down")
        if calls["n"] == 2:
            return CallbackResult(status=500, body="server error")
        return CallbackResult(status=200, payload={"ok": True})

    with aioresponses() as m:
        m.get(f"{BASE}/me", callback=_flaky, repeat=True)
        resp = await http_client.get("/me")
        assert resp["ok"] is True
        assert calls["n"] == 3


@pytest.mark.asyncio
async def test_no_retry_when_disabled(http_client: HttpClient):
    with aioresponses() as m:
        m.get(f"{BASE}/me", status=503, body="svc unavailable", repeat=True)
        with pytest.raises(HttpError) as ei:
            await http_client.get("/me", retry=False)
        assert ei.value.status == 503
        assert len(list(m.requests.values())[0]) == 1


@pytest.mark.asyncio
async def test_client_error_status_raises_without_retry(http_client: HttpClient):
    with aioresponses() as m:
        m.post(f"{BASE}/trades/T1/accept", status=403, body="forbidden")
        with pytest.raises(HttpError) as ei:
            await http_client.post("/trades/T1/accept", expect_json=False)
        assert ei.value.status == 403
        assert "forbidden" in str(ei.value)


@pytest.mark.asyncio
async def test_network_error_becomes_http_error(http_client: HttpClient, monkeypatch):
    monkeypatch.setattr(http_client, "_sleep_backoff", lambda *a, **k: asyncio.sleep(0))
    with aioresponses() as m:
        m.get(f"{BASE}/me", exception=aiohttp.ClientConnectionError("refused"), repeat=True)
        with pytest.raises(HttpError) as ei:
            await http_client.get("/me")
        assert ei.value.status == 599


@pytest.mark.asyncio
async def test_invalid_json_raises(http_client: HttpClient):
    with aioresponses() as m:
        m.get(f"{BASE}/me", status=200, body="<html>")
        with pytest.raises(HttpError, match="invalid json"):
            await http_client.get("/me")


def test_build_proxy():
    assert build_proxy(None) == (None, None)
    assert build_proxy({"host": ""}) == (None, None)
    url, auth = build_proxy({"protocol": "http:", "host": "proxy.local", "port": "8080",
                             "username": "u", "password": "p"})
    assert url == "http://proxy.local:8080"
    assert auth.login == "u"
    url, auth = build_proxy({"host": "proxy.local"})
    assert url == "https://proxy.local:443"
    assert auth is None
