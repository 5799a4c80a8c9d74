"""JSON key/value cache with TTL.

The durable backend is an Upstash (Vercel KV) Redis REST endpoint. Whether it
is usable is decided on every call from fresh settings; when it is missing,
disabled or failing, reads and writes fall back to a process-local map.
Writes always land in the local map too, so a later KV outage still serves
the last fresh value.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from plasma_yields.core.config import Settings
from plasma_yields.core.logging import get_logger

log = get_logger("cache")


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class UpstashRestStore:
    """Minimal client for the Redis REST protocol (GET / SET EX)."""

    def __init__(
        self,
        url: str,
        token: str,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}
        self._timeout = timeout
        self._transport = transport

    async def _command(self, *args: Any) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(self.url, json=list(args), headers=self._headers)
            resp.raise_for_status()
            body = resp.json()
        if isinstance(body, dict) and body.get("error"):
            raise httpx.HTTPError(f"KV command failed: {body['error']}")
        return body.get("result") if isinstance(body, dict) else None

    async def get(self, key: str) -> Any:
        raw = await self._command("GET", key)
        if raw is None:
            return None
        return json.loads(raw) if isinstance(raw, str) else raw

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._command("SET", key, json.dumps(value), "EX", int(ttl_seconds))


class KeyValueCache:
    """Cache service shared by every adapter; build one per process."""

    def __init__(
        self,
        *,
        settings_factory: Callable[[], Settings] = Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings_factory = settings_factory
        self._transport = transport
        self._clock = clock
        self._memory: Dict[str, CacheEntry] = {}

    def _durable_store(self) -> Optional[UpstashRestStore]:
        cfg = self._settings_factory()
        if not cfg.kv_configured:
            return None
        return UpstashRestStore(cfg.KV_REST_API_URL, cfg.KV_REST_API_TOKEN, transport=self._transport)

    async def get(self, key: str) -> Any:
        store = self._durable_store()
        if store is not None:
            try:
                return await store.get(key)
            except (httpx.HTTPError, ValueError) as exc:
                log.warning(f"KV read failed for {key}, using memory fallback: {exc}")

        entry = self._memory.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        store = self._durable_store()
        if store is not None:
            try:
                await store.set(key, value, ttl_seconds)
            except (httpx.HTTPError, ValueError, TypeError) as exc:
                log.warning(f"KV write failed for {key}: {exc}")

        self._memory[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)
