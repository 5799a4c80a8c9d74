"""Merkl incentive opportunities live on Plasma."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from plasma_yields.core.logging import get_logger
from plasma_yields.normalization import first_present, optional_str
from plasma_yields.schemas.pool import Pool
from .base import PoolAdapter, UpstreamError

log = get_logger("ingestion.merkl")

OPPORTUNITIES_URL = "https://api.merkl.xyz/v4/opportunities"
OPPORTUNITY_PAGE_URL = "https://app.merkl.xyz/opportunities/plasma/{type}/{identifier}"
PLASMA_CHAIN_ID = 9745
PAGE_SIZE = 100


def _token_symbols(tokens: Any) -> List[str]:
    if not isinstance(tokens, list):
        return []
    symbols = []
    for token in tokens:
        symbol = optional_str(token.get("symbol")) if isinstance(token, dict) else None
        if symbol and symbol not in symbols:
            symbols.append(symbol)
    return symbols


def _reward_tokens(opportunity: Dict[str, Any]) -> Optional[List[str]]:
    record = opportunity.get("rewardsRecord") or {}
    breakdowns = record.get("breakdowns") if isinstance(record, dict) else None
    tokens = [b.get("token") for b in breakdowns or [] if isinstance(b, dict)]
    symbols = _token_symbols(tokens)
    return symbols or None


def normalize_opportunity(opportunity: Dict[str, Any]) -> Optional[Pool]:
    identifier = optional_str(first_present(opportunity, ("identifier", "id")))
    if not identifier:
        return None

    protocol = opportunity.get("protocol")
    project = optional_str(protocol.get("name")) if isinstance(protocol, dict) else None
    symbol = "/".join(_token_symbols(opportunity.get("tokens"))) or optional_str(opportunity.get("name")) or ""
    kind = optional_str(opportunity.get("type")) or "UNKNOWN"

    apr = opportunity.get("apr")
    return Pool(
        pool=identifier,
        source="merkl",
        project=project or "Merkl",
        symbol=symbol,
        tvl_usd=opportunity.get("tvl"),
        apy=apr,
        apy_reward=apr,
        reward_tokens=_reward_tokens(opportunity),
        url=optional_str(opportunity.get("depositUrl"))
        or OPPORTUNITY_PAGE_URL.format(type=kind, identifier=identifier),
    )


class MerklAdapter(PoolAdapter):
    name = "merkl"
    cache_key = "merkl:plasma:opportunities:v1"
    ttl_seconds = 60 * 15

    async def fetch(self) -> List[Pool]:
        params = {"chainId": PLASMA_CHAIN_ID, "status": "LIVE", "items": PAGE_SIZE, "page": 0}
        async with self.client() as client:
            payload = await self.get_json(client, OPPORTUNITIES_URL, params=params)

        if not isinstance(payload, list):
            raise UpstreamError(self.name, "Unexpected opportunities payload shape")

        pools = [p for p in (normalize_opportunity(o) for o in payload if isinstance(o, dict)) if p]
        log.info(f"Fetched {len(pools)} Merkl opportunities")
        return pools
