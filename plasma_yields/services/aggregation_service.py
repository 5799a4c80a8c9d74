"""Hourly multi-source snapshot: fetch everything, upsert one bucket."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import httpx
from sqlalchemy.orm import Session

from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.db import upsert
from plasma_yields.core.logging import get_logger
from plasma_yields.ingestion import build_pool_adapters
from plasma_yields.ingestion.base import BaseAdapter
from plasma_yields.ingestion.defillama import DefiLlamaTvlAdapter
from plasma_yields.ingestion.runner import IngestionRunner, SourceOutcome
from plasma_yields.models import PlasmaAggregate, PoolYieldSnapshot
from plasma_yields.normalization import top_by_tvl
from plasma_yields.schemas.api import FailedSource, SyncResponse
from plasma_yields.schemas.pool import Pool

log = get_logger("aggregation_service")

TOP_POOLS = 50
SNAPSHOT_KEY = ("ts", "pool", "source")
AGGREGATE_KEY = ("ts",)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def floor_to_hour(moment: datetime) -> datetime:
    """Hour bucket for a batch; runs inside the same hour share one ts."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def snapshot_row(pool: Pool, ts: datetime, updated_at: datetime) -> Dict[str, Any]:
    return {
        "ts": ts,
        "pool": pool.pool,
        "source": pool.source,
        "chain": pool.chain,
        "project": pool.project,
        "symbol": pool.symbol,
        "tvl_usd": pool.tvl_usd,
        "apy": pool.apy,
        "apy_base": pool.apy_base,
        "apy_pct30d": pool.apy_pct_30d,
        "updated_at": updated_at,
    }


def unique_pools(pools: Iterable[Pool], seen: Optional[Set[Tuple[str, str]]] = None) -> List[Pool]:
    """First occurrence per (pool, source); later duplicates are logged and dropped."""
    kept: List[Pool] = []
    seen = set() if seen is None else seen
    for pool in pools:
        key = (pool.pool, pool.source)
        if key in seen:
            log.warning(f"Dropping duplicate pool {pool.pool!r} from {pool.source} in this batch")
            continue
        seen.add(key)
        kept.append(pool)
    return kept


class AggregationService:
    """Runs every adapter (settle-all) and writes the hour bucket.

    Pool rows go to ``plasma_pool_yield_snapshots`` keyed on (ts, pool, source);
    the chain TVL summary and top pools go to ``plasma_aggregate`` keyed on ts.
    Source failures are reported in the summary, never raised.
    """

    def __init__(
        self,
        db: Session,
        cache: KeyValueCache,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        pool_adapters: Optional[Sequence[BaseAdapter]] = None,
        tvl_adapter: Optional[BaseAdapter] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.pool_adapters = list(pool_adapters) if pool_adapters is not None else build_pool_adapters(cache, transport=transport)
        self.tvl_adapter = tvl_adapter or DefiLlamaTvlAdapter(cache, transport=transport)
        self.clock = clock

    async def run(self) -> SyncResponse:
        now = self.clock()
        ts = floor_to_hour(now)
        log.info(f"Aggregation started for bucket {ts.isoformat()}")

        outcomes = await IngestionRunner([*self.pool_adapters, self.tvl_adapter]).run()
        pool_outcomes, tvl_outcome = outcomes[:-1], outcomes[-1]

        pools: List[Pool] = []
        written_by_source: Dict[str, int] = {}
        seen: Set[Tuple[str, str]] = set()
        for outcome in pool_outcomes:
            kept = unique_pools(outcome.pools, seen)
            written_by_source[outcome.source] = len(kept)
            pools.extend(kept)
        rows = [snapshot_row(pool, ts, now) for pool in pools]

        try:
            written = upsert(self.db, PoolYieldSnapshot, rows, SNAPSHOT_KEY)
            upsert(self.db, PlasmaAggregate, [self._aggregate_row(ts, now, pools, tvl_outcome)], AGGREGATE_KEY)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        failed = [
            FailedSource(source=o.source, status=o.status, error=o.error or "unknown error")
            for o in outcomes
            if not o.ok
        ]
        log.info(f"Aggregation finished: snapshots={written} failed={[f.source for f in failed]}")
        return SyncResponse(
            ok=True,
            upserted=ts.isoformat(),
            pools={o.source: written_by_source.get(o.source, 0) for o in pool_outcomes},
            failed=failed,
        )

    @staticmethod
    def _aggregate_row(
        ts: datetime,
        now: datetime,
        pools: List[Pool],
        tvl_outcome: SourceOutcome,
    ) -> Dict[str, Any]:
        tvl = tvl_outcome.data if tvl_outcome.ok and tvl_outcome.data else {}
        return {
            "ts": ts,
            "chain_latest_tvl_usd": tvl.get("chain_latest_tvl_usd", 0.0),
            "chain_prev_tvl_usd": tvl.get("chain_prev_tvl_usd", 0.0),
            "chain_last_date": tvl.get("chain_last_date"),
            "protocol_latest_tvl_usd": tvl.get("protocol_latest_tvl_usd", 0.0),
            "protocol_last_date": tvl.get("protocol_last_date"),
            "top_pools": [pool.to_json() for pool in top_by_tvl(pools, TOP_POOLS)],
            "updated_at": now,
        }
