# infra/http_client.py
from __future__ import annotations

import aiohttp
import asyncio
import json
import random
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode
import logging
from utils.logger import logger as default_logger

JSON_SEPARATORS = (",", ":")
RETRYABLE_STATUS = {429, 500, 502, 503, 504}

class HttpError(Exception):
    def __init__(self, status: int, message: str, payload: Optional[dict] = None):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.payload = payload or {}


def _json_dumps_compact(obj: Any) -> str:
    return json.dumps(obj, separators=JSON_SEPARATORS, ensure_ascii=False)

def _build_query(params: Optional[Mapping[str, Any]]) -> str:
    if not params:
        return ""
    return "?" + urlencode(params, doseq=True, safe=":/")

def _mask(s: Optional[str]) -> str:
    if not s:
        return ""
    if len(s) <= 8:
        return "*" * len(s)
    return s[:4] + "*" * (len(s) - 8) + s[-4:]

def build_proxy(proxy_cfg: Optional[Mapping[str, Any]]) -> tuple[Optional[str], Optional[aiohttp.BasicAuth]]:
    """
    Turn the ``proxy`` config block into aiohttp's ``proxy``/``proxy_auth`` pair.
    An empty host disables the proxy.
    """
    if not proxy_cfg or not proxy_cfg.get("host"):
        return None, None
    protocol = str(proxy_cfg.get("protocol") or "https:").rstrip(":/")
    port = int(proxy_cfg.get("port") or 443)
    url = f"{protocol}://{proxy_cfg['host']}:{port}"
    auth = None
    if proxy_cfg.get("username") and proxy_cfg.get("password"):
        auth = aiohttp.BasicAuth(proxy_cfg["username"], proxy_cfg["password"])
    return url, auth

class HttpClient:
    """
    Thin aiohttp wrapper: base url, default headers, optional proxy,
    JSON decoding and retry with backoff on 429/5xx/network errors.
    """
    def __init__(self,
                 base_url: str,
                 logger: Optional[logging.Logger] = None,
                 *,
                 headers: Optional[Mapping[str, str]] = None,
                 proxy_cfg: Optional[Mapping[str, Any]] = None,
                 timeout_ms: int = 10000,
                 max_attempts: int = 3,
                 backoff_ms: int = 500,
                 session: Optional[aiohttp.ClientSession] = None,
                 ) -> None:
        self.log = logger or default_logger
        self.base_url = base_url.rstrip("/")
        self.default_headers: Dict[str, str] = dict(headers or {})
        self.proxy, self.proxy_auth = build_proxy(proxy_cfg)
        self.session = session
        self._owned_session = session is None

        self.timeout_ms = int(timeout_ms)
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_ms = int(backoff_ms)

        auth_header = self.default_headers.get("Authorization")
        self.log.debug(
            f"HttpClient init base_url={self.base_url} proxy={self.proxy} auth={_mask(auth_header)}"
        )

    # ---- async context manager ----------------------------------------------------
    async def __aenter__(self) -> "HttpClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._owned_session and (self.session is None or self.session.closed):
            timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000.0)
            self.session = aiohttp.ClientSession(timeout=timeout, raise_for_status=False, trust_env=True)
        return self.session

    async def close(self) -> None:
        if self._owned_session and self.session is not None and not self.session.closed:
            await self.session.close()

    async def request(
            self,
            method: str,
            path: str,
            *,
            params: Optional[Mapping[str, Any]] = None,
            json_body: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None,
            expect_json: bool = True,
            timeout_ms: Optional[int] = None,
            retry: bool = True,
        ) -> Dict[str, Any]:
        """
        Single request entry point.
        - path: appended to base_url ("" targets base_url itself)
        - expect_json: decode body as JSON, otherwise return {"raw": text}
        - retry: back off and retry on 429/5xx and network errors
        Raises HttpError for non-2xx responses and exhausted network failures.
        """
        method = method.upper()
        url = self.base_url + path + _build_query(params)
        body_str = _json_dumps_compact(json_body) if json_body is not None else None
        req_headers = {"Accept": "application/json"}
        if body_str is not None:
            req_headers["Content-Type"] = "application/json"
        req_headers.update(self.default_headers)
        if headers:
            req_headers.update(headers)

        extra: Dict[str, Any] = {}
        if timeout_ms:
            extra["timeout"] = aiohttp.ClientTimeout(total=timeout_ms / 1000.0)
        session = self._ensure_session()

        attempt = 0
        while True:
            attempt += 1
            try:
                async with session.request(
                    method,
                    url,
                    data=body_str,
                    headers=req_headers,
                    proxy=self.proxy,
                    proxy_auth=self.proxy_auth,
                    **extra,
                ) as resp:
                    text = await resp.text()
                    status = resp.status
                    if status >= 400:
                        if retry and status in RETRYABLE_STATUS and attempt < self.max_attempts:
                            self.log.warning(f"{method} {url} returned {status}, retrying ({attempt}/{self.max_attempts})")
                            await self._sleep_backoff(attempt, resp.headers.get("Retry-After"))
                            continue
                        raise HttpError(status, text[:512])

                    if not expect_json:
                        return {"raw": text}
                    try:
                        return json.loads(text) if text else {}
                    except json.JSONDecodeError:
                        raise HttpError(status, f"invalid json: {text[:256]}")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if retry and attempt < self.max_attempts:
                    self.log.warning(f"Network error: {e} when requesting {url}, retrying...")
                    await self._sleep_backoff(attempt)
                    continue
                raise HttpError(599, f"Network error: {e}") from e

    async def _sleep_backoff(self, attempt: int, retry_after: Optional[str] = None) -> None:
        if retry_after:
            try:
                await asyncio.sleep(min(float(retry_after), 30.0))
                return
            except ValueError:
                pass
        base = self.backoff_ms * (2 ** (attempt - 1))
        jitter = random.randint(0, self.backoff_ms)
        await asyncio.sleep((base + jitter) / 1000.0)

    # ---- convenience wrappers -----------------------------------------------------
    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, *, retry: bool = True) -> Dict[str, Any]:
        return await self.request("GET", path, params=params, retry=retry)

    async def post(self, path: str, json_body: Optional[Mapping[str, Any]] = None, *,
                   expect_json: bool = True, retry: bool = True) -> Dict[str, Any]:
        return await self.request("POST", path, json_body=json_body, expect_json=expect_json, retry=retry)
