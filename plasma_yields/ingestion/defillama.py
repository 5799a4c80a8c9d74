"""DeFiLlama sources: Plasma yield pools and chain/protocol TVL."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from plasma_yields.core.logging import get_logger
from plasma_yields.normalization import coerce_tvl, top_by_tvl
from plasma_yields.schemas.pool import Pool
from .base import BaseAdapter, PoolAdapter, UpstreamError

log = get_logger("ingestion.defillama")

YIELDS_URL = "https://yields.llama.fi/pools"
CHAIN_TVL_URL = "https://api.llama.fi/charts/Plasma"
PROTOCOL_URL = "https://api.llama.fi/protocol/plasma-saving-vaults"
POOL_PAGE_URL = "https://defillama.com/yields/pool/{pool}"

CHAIN = "Plasma"
TOP_N = 50


class DefiLlamaYieldsAdapter(PoolAdapter):
    """Top Plasma pools by TVL from the DeFiLlama yields API."""

    name = "defillama"
    cache_key = "defillama:plasma:yields:top50:v1"
    ttl_seconds = 60 * 15

    async def fetch(self) -> List[Pool]:
        async with self.client() as client:
            payload = await self.get_json(client, YIELDS_URL, params={"chain": CHAIN})

        items = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise UpstreamError(self.name, "Unexpected yields payload shape")

        plasma = [item for item in items if isinstance(item, dict) and item.get("chain") == CHAIN]
        top = top_by_tvl(plasma, TOP_N, key=lambda item: item.get("tvlUsd"))
        pools = [self._normalize(item) for item in top]
        log.info(f"Fetched {len(pools)} Plasma pools from DeFiLlama ({len(items)} upstream)")
        return pools

    @staticmethod
    def _normalize(item: Dict[str, Any]) -> Pool:
        pool_id = str(item.get("pool") or f"defillama:{item.get('project')}:{item.get('symbol')}")
        return Pool(
            pool=pool_id,
            source="defillama",
            chain=item.get("chain") or CHAIN,
            project=item.get("project"),
            symbol=item.get("symbol"),
            tvl_usd=item.get("tvlUsd"),
            apy=item.get("apy"),
            apy_base=item.get("apyBase"),
            apy_reward=item.get("apyReward"),
            apy_pct_1d=item.get("apyPct1D"),
            apy_pct_7d=item.get("apyPct7D"),
            apy_pct_30d=item.get("apyPct30D"),
            apy_mean_30d=item.get("apyMean30d"),
            il_7d=item.get("il7d"),
            volume_usd_1d=item.get("volumeUsd1d"),
            volume_usd_7d=item.get("volumeUsd7d"),
            reward_tokens=item.get("rewardTokens"),
            url=POOL_PAGE_URL.format(pool=pool_id) if item.get("pool") else None,
        )


class DefiLlamaTvlAdapter(BaseAdapter[Dict[str, Any]]):
    """Chain-level and Plasma Saving Vaults TVL, latest and previous points."""

    name = "defillama-tvl"
    cache_key = "defillama:plasma:tvl:v1"
    ttl_seconds = 60 * 15

    async def fetch(self) -> Dict[str, Any]:
        async with self.client() as client:
            chain, protocol = await asyncio.gather(
                self.get_json(client, CHAIN_TVL_URL),
                self.get_json(client, PROTOCOL_URL),
                return_exceptions=True,
            )

        if isinstance(chain, Exception) and isinstance(protocol, Exception):
            raise UpstreamError(self.name, f"Chain and protocol TVL unavailable: {chain}")
        if isinstance(chain, Exception):
            log.error(f"Chain TVL fetch failed: {chain}")
            chain = []
        if isinstance(protocol, Exception):
            log.error(f"Protocol TVL fetch failed: {protocol}")
            protocol = {}

        return summarize_tvl(chain, protocol)


def _protocol_series(protocol: Any) -> List[Dict[str, Any]]:
    if not isinstance(protocol, dict):
        return []
    plasma = (protocol.get("chainTvls") or {}).get(CHAIN)
    if isinstance(plasma, list):
        return plasma
    if isinstance(plasma, dict) and isinstance(plasma.get("tvl"), list):
        return plasma["tvl"]
    return []


def _point(series: List[Any], index: int) -> Optional[Dict[str, Any]]:
    if len(series) < abs(index):
        return None
    point = series[index]
    return point if isinstance(point, dict) else None


def summarize_tvl(chain_series: Any, protocol: Any) -> Dict[str, Any]:
    chain_series = chain_series if isinstance(chain_series, list) else []
    protocol_series = _protocol_series(protocol)

    latest_chain = _point(chain_series, -1)
    prev_chain = _point(chain_series, -2)
    latest_protocol = _point(protocol_series, -1)

    return {
        "chain_latest_tvl_usd": coerce_tvl((latest_chain or {}).get("totalLiquidityUSD")),
        "chain_prev_tvl_usd": coerce_tvl((prev_chain or {}).get("totalLiquidityUSD")),
        "chain_last_date": _as_text((latest_chain or {}).get("date")),
        "protocol_latest_tvl_usd": coerce_tvl((latest_protocol or {}).get("totalLiquidityUSD")),
        "protocol_last_date": _as_text((latest_protocol or {}).get("date")),
    }


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)
