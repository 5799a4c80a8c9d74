from typing import List

import httpx

from plasma_yields.core.cache import KeyValueCache
from plasma_yields.ingestion.base import BaseAdapter, LoadResult, PoolAdapter, UpstreamError
from plasma_yields.ingestion.chain_metrics import ChainMetricsAdapter
from plasma_yields.ingestion.chateau import ChateauAdapter
from plasma_yields.ingestion.defillama import DefiLlamaTvlAdapter, DefiLlamaYieldsAdapter
from plasma_yields.ingestion.merkl import MerklAdapter
from plasma_yields.ingestion.pendle import PendleAdapter
from plasma_yields.ingestion.stablewatch import StablewatchAdapter


def build_pool_adapters(
    cache: KeyValueCache,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> List[BaseAdapter]:
    """Every adapter that contributes pools to an aggregation batch."""
    return [
        DefiLlamaYieldsAdapter(cache, transport=transport),
        PendleAdapter(cache, transport=transport),
        MerklAdapter(cache, transport=transport),
        StablewatchAdapter(cache, transport=transport),
        ChateauAdapter(cache, transport=transport),
    ]


__all__ = [
    "BaseAdapter",
    "ChainMetricsAdapter",
    "ChateauAdapter",
    "DefiLlamaTvlAdapter",
    "DefiLlamaYieldsAdapter",
    "LoadResult",
    "MerklAdapter",
    "PendleAdapter",
    "PoolAdapter",
    "StablewatchAdapter",
    "UpstreamError",
    "build_pool_adapters",
]
