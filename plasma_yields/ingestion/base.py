"""Adapter contract: cache-first load, live fetch, write-through."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar

import httpx

from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.config import settings
from plasma_yields.core.logging import get_logger
from plasma_yields.schemas.pool import Pool

log = get_logger("ingestion.base")

USER_AGENT = "yields.to-aggregator"

T = TypeVar("T")


class UpstreamError(Exception):
    """An upstream answered non-2xx, was unreachable, or sent garbage."""

    def __init__(self, source: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.source = source
        self.status = status


@dataclass
class LoadResult(Generic[T]):
    data: T
    cached: bool


class BaseAdapter(ABC, Generic[T]):
    """One upstream: fetch + normalize, fronted by the shared cache."""

    name: str
    cache_key: str
    ttl_seconds: int = 60 * 15
    user_agent: str = USER_AGENT

    def __init__(
        self,
        cache: KeyValueCache,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self.cache = cache
        self._transport = transport
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    @abstractmethod
    async def fetch(self) -> T:
        """Live upstream call, normalized. Raises UpstreamError."""

    def encode(self, data: T) -> Any:
        return data

    def decode(self, payload: Any) -> T:
        return payload

    def pools(self, data: T) -> List[Pool]:
        """Pools contributed to an aggregation batch (none for metrics sources)."""
        return []

    def cacheable(self, data: T) -> bool:
        return True

    async def load(self, refresh: bool = False, ttl_seconds: Optional[int] = None) -> LoadResult[T]:
        if not refresh:
            cached = await self.cache.get(self.cache_key)
            if cached is not None:
                return LoadResult(self.decode(cached), cached=True)

        data = await self.fetch()
        if self.cacheable(data):
            await self.cache.set(self.cache_key, self.encode(data), ttl_seconds or self.ttl_seconds)
        return LoadResult(data, cached=False)

    async def load_or_empty(self, refresh: bool = False) -> LoadResult[T]:
        """Best-effort read for render paths: upstream failure yields an empty payload."""
        try:
            return await self.load(refresh=refresh)
        except UpstreamError as exc:
            log.warning(f"{self.name} unavailable for read path: {exc}")
            return LoadResult(self.decode(None), cached=False)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        )

    async def get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        resp = await self.get_response(client, url, params=params)
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamError(self.name, f"Malformed JSON from {url}", resp.status_code) from exc

    async def get_response(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise UpstreamError(self.name, f"Request to {url} failed: {exc}") from exc
        if resp.is_error:
            raise UpstreamError(self.name, f"{url} returned {resp.status_code}", resp.status_code)
        return resp


class PoolAdapter(BaseAdapter[List[Pool]]):
    """Adapter whose payload is a list of normalized pools."""

    def encode(self, data: List[Pool]) -> Any:
        return [pool.to_json() for pool in data]

    def decode(self, payload: Any) -> List[Pool]:
        return [Pool.model_validate(item) for item in payload or []]

    def pools(self, data: List[Pool]) -> List[Pool]:
        return data
