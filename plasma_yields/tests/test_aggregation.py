"""Hourly aggregation, SumCap sync and health probe against SQLite"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from plasma_yields.ingestion.base import BaseAdapter, PoolAdapter, UpstreamError
from plasma_yields.ingestion.chain_metrics import fetch_snapshot_paths
from plasma_yields.ingestion.stablewatch import scrape_raw_pools
from plasma_yields.models import PlasmaAggregate, PoolYieldSnapshot, SourceHealthCheck, SumcapSnapshot
from plasma_yields.schemas.pool import Pool
from plasma_yields.services.aggregation_service import AggregationService, floor_to_hour
from plasma_yields.services.health_service import HealthProbe, ProbeTarget
from plasma_yields.services.sumcap_service import SumcapSyncService

NOW = datetime(2025, 3, 1, 14, 37, 12, tzinfo=timezone.utc)
SUMCAP_BASE = "https://api-plasma.sumcap.xyz/api"


class StaticPoolAdapter(PoolAdapter):
    def __init__(self, cache, name, pools):
        super().__init__(cache)
        self.name = name
        self.cache_key = f"test:{name}"
        self._pools = pools

    async def fetch(self):
        return list(self._pools)


class BrokenAdapter(PoolAdapter):
    def __init__(self, cache, name, status=503):
        super().__init__(cache)
        self.name = name
        self.cache_key = f"test:{name}"
        self.status = status

    async def fetch(self):
        raise UpstreamError(self.name, "service unavailable", self.status)


class StaticTvlAdapter(BaseAdapter):
    name = "defillama-tvl"
    cache_key = "test:tvl"

    async def fetch(self):
        return {
            "chain_latest_tvl_usd": 200.0,
            "chain_prev_tvl_usd": 150.0,
            "chain_last_date": "1740787200",
            "protocol_latest_tvl_usd": 50.0,
            "protocol_last_date": "1740787200",
        }


def pools(source, *specs):
    return [Pool(pool=name, source=source, symbol="USDT0", tvl_usd=tvl, apy=3.0) for name, tvl in specs]


def snapshot_count(db):
    return db.scalar(select(func.count()).select_from(PoolYieldSnapshot))


class TestFloorToHour:
    def test_floors_to_the_hour(self):
        assert floor_to_hour(NOW) == datetime(2025, 3, 1, 14, tzinfo=timezone.utc)

    def test_naive_is_treated_as_utc(self):
        assert floor_to_hour(datetime(2025, 3, 1, 14, 59)) == datetime(2025, 3, 1, 14, tzinfo=timezone.utc)


class TestAggregationService:
    def service(self, db, cache, adapters, clock=lambda: NOW):
        return AggregationService(db, cache, pool_adapters=adapters, tvl_adapter=StaticTvlAdapter(cache), clock=clock)

    @pytest.mark.asyncio
    async def test_failed_source_does_not_abort_batch(self, db_session, cache):
        adapters = [
            StaticPoolAdapter(cache, "defillama", pools("defillama", ("a", 10), ("b", 30))),
            BrokenAdapter(cache, "merkl"),
            StaticPoolAdapter(cache, "pendle", pools("pendle", ("c", 20))),
        ]
        result = await self.service(db_session, cache, adapters).run()

        assert result.ok is True
        assert result.upserted == "2025-03-01T14:00:00+00:00"
        assert result.pools == {"defillama": 2, "merkl": 0, "pendle": 1}
        assert [(f.source, f.status) for f in result.failed] == [("merkl", 503)]
        assert snapshot_count(db_session) == 3

        aggregate = db_session.scalars(select(PlasmaAggregate)).one()
        assert aggregate.chain_latest_tvl_usd == 200.0
        assert aggregate.chain_prev_tvl_usd == 150.0
        assert [p["pool"] for p in aggregate.top_pools] == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_rerun_in_same_hour_overwrites(self, db_session, cache):
        adapters = [StaticPoolAdapter(cache, "defillama", pools("defillama", ("a", 10), ("b", 30)))]
        await self.service(db_session, cache, adapters).run()
        first = snapshot_count(db_session)

        adapters = [StaticPoolAdapter(cache, "defillama", pools("defillama", ("a", 99), ("b", 30)))]
        later = datetime(2025, 3, 1, 14, 59, tzinfo=timezone.utc)
        await self.service(db_session, cache, adapters, clock=lambda: later).run()

        assert snapshot_count(db_session) == first == 2
        assert db_session.scalar(select(func.count()).select_from(PlasmaAggregate)) == 1
        db_session.expire_all()
        row = db_session.scalars(select(PoolYieldSnapshot).where(PoolYieldSnapshot.pool == "a")).one()
        assert row.tvl_usd == 99

    @pytest.mark.asyncio
    async def test_next_hour_adds_a_bucket(self, db_session, cache):
        adapters = [StaticPoolAdapter(cache, "defillama", pools("defillama", ("a", 10)))]
        await self.service(db_session, cache, adapters).run()
        next_hour = datetime(2025, 3, 1, 15, 1, tzinfo=timezone.utc)
        await self.service(db_session, cache, adapters, clock=lambda: next_hour).run()
        assert snapshot_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_duplicate_pool_in_batch_is_collapsed(self, db_session, cache):
        adapters = [StaticPoolAdapter(cache, "defillama", pools("defillama", ("a", 10), ("a", 20)))]
        result = await self.service(db_session, cache, adapters).run()
        assert result.pools == {"defillama": 1}
        row = db_session.scalars(select(PoolYieldSnapshot)).one()
        assert row.tvl_usd == 10

    @pytest.mark.asyncio
    async def test_stablewatch_pools_sharing_a_name_are_all_stored(self, db_session, cache):
        scraped = scrape_raw_pools(
            'x=[{name:"USDT0 Vault",project:"Fluid",symbol:"USDT0",apy:5,tvl:100},'
            '{name:"USDT0 Vault",project:"Euler",symbol:"USDT0",apy:6,tvl:900},'
            '{name:"Other",project:"Aave",symbol:"USDT0",apy:2,tvl:1}]'
        )
        result = await self.service(db_session, cache, [StaticPoolAdapter(cache, "stablewatch", scraped)]).run()

        assert result.pools == {"stablewatch": 3}
        stored = db_session.execute(
            select(PoolYieldSnapshot.project, PoolYieldSnapshot.tvl_usd).order_by(PoolYieldSnapshot.tvl_usd)
        ).all()
        assert [tuple(row) for row in stored] == [("Aave", 1.0), ("Fluid", 100.0), ("Euler", 900.0)]

    @pytest.mark.asyncio
    async def test_same_pool_id_from_two_sources_is_kept(self, db_session, cache):
        adapters = [
            StaticPoolAdapter(cache, "defillama", pools("defillama", ("0xabc", 10))),
            StaticPoolAdapter(cache, "merkl", pools("merkl", ("0xabc", 10))),
        ]
        await self.service(db_session, cache, adapters).run()
        assert snapshot_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_top_pools_trimmed_to_fifty(self, db_session, cache):
        many = pools("defillama", *((f"p{i}", i) for i in range(80)))
        await self.service(db_session, cache, [StaticPoolAdapter(cache, "defillama", many)]).run()
        aggregate = db_session.scalars(select(PlasmaAggregate)).one()
        assert len(aggregate.top_pools) == 50
        assert aggregate.top_pools[0]["pool"] == "p79"

    @pytest.mark.asyncio
    async def test_every_source_failing_still_writes_aggregate(self, db_session, cache):
        adapters = [BrokenAdapter(cache, "defillama"), BrokenAdapter(cache, "pendle", status=None)]
        result = await self.service(db_session, cache, adapters).run()
        assert {f.source for f in result.failed} == {"defillama", "pendle"}
        assert snapshot_count(db_session) == 0
        assert db_session.scalar(select(func.count()).select_from(PlasmaAggregate)) == 1


class TestSumcapSync:
    @pytest.mark.asyncio
    async def test_paths_fetched_one_at_a_time(self, upstream):
        paths = ["/users", "/transactions", "/xpl-price"]
        for path in paths[:2]:
            upstream.json(f"{SUMCAP_BASE}{path}", {"data": []})

        results = await fetch_snapshot_paths(
            base_url=SUMCAP_BASE, paths=paths, delay_seconds=0, transport=upstream.transport
        )

        assert [r.path for r in results] == paths
        assert [r.ok for r in results] == [True, True, False]
        assert results[2].status == 404
        assert [r.url.path for r in upstream.requests] == [f"/api{p}" for p in paths]

    @pytest.mark.asyncio
    async def test_sync_upserts_per_endpoint(self, db_session, upstream):
        upstream.json(f"{SUMCAP_BASE}/users", {"data": [1, 2]})
        upstream.error(f"{SUMCAP_BASE}/blocks")
        service = SumcapSyncService(
            db_session,
            base_url=SUMCAP_BASE,
            paths=["/users", "/blocks"],
            delay_seconds=0,
            transport=upstream.transport,
            clock=lambda: NOW,
        )

        result = await service.run()
        await service.run()

        assert result.ts == "2025-03-01T14:00:00+00:00"
        assert result.count == 2
        assert [(f.path, f.status) for f in result.failed] == [("/blocks", None)]
        assert db_session.scalar(select(func.count()).select_from(SumcapSnapshot)) == 2
        users = db_session.scalars(select(SumcapSnapshot).where(SumcapSnapshot.endpoint == "/users")).one()
        assert users.payload == {"data": [1, 2]}


class TestHealthProbe:
    TARGETS = [
        ProbeTarget("up", "https://up.example.test/"),
        ProbeTarget("down", "https://down.example.test/", "Gated"),
        ProbeTarget("gone", "https://gone.example.test/"),
        ProbeTarget("body", "https://body.example.test/", "fallback", body_as_note=True),
    ]

    @pytest.mark.asyncio
    async def test_checks_and_persistence(self, db_session, upstream):
        upstream.text("https://up.example.test/", "ok")
        upstream.fail("https://down.example.test/", status=403)
        upstream.error("https://gone.example.test/")
        upstream.text("https://body.example.test/", "chain not supported", status=400)

        checks = await HealthProbe(db_session, targets=self.TARGETS, transport=upstream.transport).run()

        by_source = {c.source: c for c in checks}
        assert by_source["up"].ok is True and by_source["up"].status == 200
        assert by_source["down"].ok is False and by_source["down"].note == "Gated"
        assert by_source["gone"].ok is False and by_source["gone"].status is None
        assert by_source["body"].note == "chain not supported"
        assert db_session.scalar(select(func.count()).select_from(SourceHealthCheck)) == 4

    @pytest.mark.asyncio
    async def test_without_database(self, upstream):
        checks = await HealthProbe(None, targets=self.TARGETS[:1], transport=upstream.transport).run()
        assert checks[0].ok is False
        assert checks[0].status == 404
