"""SumCap chain metrics: the four dashboard series and the full snapshot walk."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from plasma_yields.core.config import settings
from plasma_yields.core.logging import get_logger
from .base import BaseAdapter, UpstreamError

log = get_logger("ingestion.chain_metrics")

ENDPOINTS = {
    "users": "users",
    "transactions": "transactions",
    "contracts": "contract-data",
    "blocks": "block-data",
}

SNAPSHOT_PATHS = [
    "/block-data",
    "/chain-flows",
    "/contract-data",
    "/dex-data",
    "/net-flows",
    "/project-flows",
    "/projects",
    "/public-sale",
    "/stablecoin-supply",
    "/stablecoin-users",
    "/stablecoin-volume",
    "/token-dex-data",
    "/transactions",
    "/usdt0-supply",
    "/users",
    "/xpl-brackets",
    "/xpl-holders",
    "/xpl-price",
    "/xpl-top-15",
]


class ChainMetricsAdapter(BaseAdapter[Dict[str, Any]]):
    """Users / transactions / contracts / blocks series; partial data is allowed."""

    name = "chain-metrics"
    cache_key = "sumcap:plasma:chain-metrics:v1"
    ttl_seconds = 60 * 20
    user_agent = "yields.to-app"

    def __init__(self, *args, base_url: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = (base_url or settings.SUMCAP_API_BASE).rstrip("/")

    async def fetch(self) -> Dict[str, Any]:
        async with self.client() as client:
            results = await asyncio.gather(
                *(self._series(client, path) for path in ENDPOINTS.values()),
                return_exceptions=True,
            )

        data: Dict[str, Any] = {}
        errors: List[str] = []
        for key, result in zip(ENDPOINTS, results):
            if isinstance(result, Exception):
                data[key] = []
                errors.append(f"{key}: {result}")
            else:
                data[key] = result

        if len(errors) == len(ENDPOINTS):
            raise UpstreamError(self.name, "; ".join(errors))
        if errors:
            log.warning(f"Chain metrics partially unavailable: {errors}")
        data["errors"] = errors or None
        return data

    def cacheable(self, data: Dict[str, Any]) -> bool:
        # Only cache complete responses so a flaky endpoint recovers on the next request
        return not data.get("errors")

    async def _series(self, client: httpx.AsyncClient, path: str) -> List[Any]:
        try:
            resp = await client.get(f"{self.base_url}/{path}")
        except httpx.HTTPError as exc:
            raise UpstreamError(self.name, str(exc) or exc.__class__.__name__) from exc
        if resp.is_error:
            raise UpstreamError(self.name, f"HTTP {resp.status_code}", resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError(self.name, "Malformed JSON", resp.status_code) from exc
        series = body.get("data") if isinstance(body, dict) else None
        return series if isinstance(series, list) else []


@dataclass
class SnapshotResult:
    path: str
    url: str
    status: Optional[int]
    ok: bool
    payload: Any


async def fetch_snapshot_paths(
    *,
    base_url: str | None = None,
    paths: List[str] = SNAPSHOT_PATHS,
    delay_seconds: float = 0.2,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float | None = None,
) -> List[SnapshotResult]:
    """Walk every SumCap path one at a time, pausing between requests.

    The upstream is shared and rate-sensitive, so this is sequential on purpose.
    A failing path is recorded with its status and an empty payload.
    """
    base = (base_url or settings.SUMCAP_API_BASE).rstrip("/")
    results: List[SnapshotResult] = []
    async with httpx.AsyncClient(
        timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        transport=transport,
        headers={"User-Agent": "yields.to-aggregator"},
    ) as client:
        for index, path in enumerate(paths):
            url = f"{base}{path}"
            status: Optional[int] = None
            payload: Any = None
            try:
                resp = await client.get(url)
                status = resp.status_code
                try:
                    payload = resp.json()
                except ValueError:
                    payload = None
                ok = resp.is_success
            except httpx.HTTPError as exc:
                log.warning(f"SumCap {path} failed: {exc}")
                ok = False
            results.append(SnapshotResult(path=path, url=url, status=status, ok=ok, payload=payload))
            if delay_seconds and index < len(paths) - 1:
                await asyncio.sleep(delay_seconds)
    return results
