"""Chateau Capital vault metrics (chUSD / schUSD)."""

from __future__ import annotations

from typing import Any, Dict, List

from plasma_yields.core.logging import get_logger
from plasma_yields.schemas.pool import Pool
from .base import BaseAdapter, UpstreamError

log = get_logger("ingestion.chateau")

METRICS_URL = "https://app.chateau.capital/api/metrics"
APP_URL = "https://app.chateau.capital"


class ChateauAdapter(BaseAdapter[Dict[str, Any]]):
    """Proxies the metrics document; contributes one schUSD pool to batches."""

    name = "chateau"
    cache_key = "chateau:metrics:v1"
    ttl_seconds = 60 * 20

    async def fetch(self) -> Dict[str, Any]:
        async with self.client() as client:
            payload = await self.get_json(client, METRICS_URL)
        if not isinstance(payload, dict):
            raise UpstreamError(self.name, "Unexpected metrics payload shape")
        return payload

    def pools(self, data: Dict[str, Any]) -> List[Pool]:
        if not data:
            return []
        return [
            Pool(
                pool="chateau-schusd",
                source="chateau",
                project="Chateau Capital",
                symbol="schUSD",
                tvl_usd=data.get("chUsdTvl"),
                apy=data.get("schUsdFourWeekIRR"),
                url=APP_URL,
            )
        ]
