"""API endpoint tests"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from plasma_yields.api.deps import get_db
from plasma_yields.api.routes.sources import clamp_ttl
from plasma_yields.main import app
from plasma_yields.models import PoolYieldSnapshot

CRON_SECRET = "s3cret"
YIELDS_URL = "https://yields.llama.fi/pools"
SITE_URL = "https://plasma.stablewatch.io/"
SUMCAP_BASE = "https://api-plasma.sumcap.xyz/api"

LLAMA_POOLS = {
    "data": [
        {"chain": "Plasma", "project": "Aave", "symbol": "USDT", "tvlUsd": 5_000_000, "apy": 4.2, "pool": "p1"},
        {"chain": "Other", "project": "X", "symbol": "Y", "tvlUsd": 1, "apy": 1, "pool": "p2"},
    ]
}


class TestAggregateSync:
    """Scheduler-triggered snapshot route"""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"headers": {"x-cron-secret": "wrong"}},
            {"params": {"secret": "wrong"}},
            {"headers": {"x-cron-secret": ""}},
        ],
    )
    def test_requires_secret(self, client, upstream, kwargs):
        response = client.get("/aggregate/sync", **kwargs)
        assert response.status_code == 401
        assert upstream.requests == []

    def test_secret_in_header_or_query(self, client, upstream):
        upstream.json(YIELDS_URL, LLAMA_POOLS)
        assert client.get("/aggregate/sync", headers={"x-cron-secret": CRON_SECRET}).status_code == 200
        assert client.get("/aggregate/sync", params={"secret": CRON_SECRET}).status_code == 200

    def test_partial_failure_is_still_200(self, client, upstream, db_session):
        upstream.json(YIELDS_URL, LLAMA_POOLS)

        response = client.get("/aggregate/sync", headers={"x-cron-secret": CRON_SECRET})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["pools"]["defillama"] == 1
        failed = {f["source"] for f in body["failed"]}
        assert {"pendle", "merkl", "stablewatch", "chateau", "defillama-tvl"} <= failed
        assert "defillama" not in failed
        assert db_session.scalar(select(func.count()).select_from(PoolYieldSnapshot)) == 1

    def test_idempotent_within_the_hour(self, client, upstream, db_session):
        upstream.json(YIELDS_URL, LLAMA_POOLS)
        client.get("/aggregate/sync", headers={"x-cron-secret": CRON_SECRET})
        first = client.get("/aggregate/sync", headers={"x-cron-secret": CRON_SECRET}).json()
        rows = db_session.scalars(select(PoolYieldSnapshot)).all()
        assert [(r.pool, r.source) for r in rows] == [("p1", "defillama")]
        assert first["upserted"].endswith(":00:00+00:00")

    def test_missing_database_is_500(self, client):
        app.dependency_overrides[get_db] = lambda: None
        response = client.get("/aggregate/sync", headers={"x-cron-secret": CRON_SECRET})
        assert response.status_code == 500
        assert response.json()["detail"] == "Database not configured"

    def test_unexpected_error_is_plain_text_500(self, client, upstream, db_session, monkeypatch):
        upstream.json(YIELDS_URL, LLAMA_POOLS)

        def broken_commit():
            raise RuntimeError("disk full")

        monkeypatch.setattr(db_session, "commit", broken_commit)
        response = client.get("/aggregate/sync", headers={"x-cron-secret": CRON_SECRET})
        assert response.status_code == 500
        assert response.text == "Sync failed: disk full"


class TestReadRoutes:
    def test_plasma_yields_then_cached(self, client, upstream):
        upstream.json(YIELDS_URL, LLAMA_POOLS)

        first = client.get("/yields/plasma", params={"refresh": 1}).json()
        second = client.get("/yields/plasma").json()

        assert [p["pool"] for p in first["data"]] == ["p1"]
        assert first["cached"] is False
        assert second["cached"] is True
        assert second["data"] == first["data"]
        assert first["data"][0]["tvlUsd"] == 5_000_000

    def test_plasma_yields_upstream_failure_is_502(self, client, upstream):
        upstream.fail(YIELDS_URL)
        response = client.get("/yields/plasma")
        assert response.status_code == 502
        assert "error" in response.json()

    def test_chateau_failure_is_502(self, client):
        response = client.get("/yields/chateau")
        assert response.status_code == 502

    def test_chateau_passthrough(self, client, upstream):
        upstream.json("https://app.chateau.capital/api/metrics", {"chUsdTvl": 1, "schUsdFourWeekIRR": 2})
        assert client.get("/yields/chateau").json() == {"chUsdTvl": 1, "schUsdFourWeekIRR": 2}

    def test_merkl_and_pendle_failures_are_502(self, client):
        assert client.get("/yields/merkl").status_code == 502
        assert client.get("/yields/pendle").status_code == 502

    def test_stablewatch_page_failure_is_502(self, client, upstream):
        upstream.error(SITE_URL)
        response = client.get("/sources/stablewatch")
        assert response.status_code == 502
        assert "error" in response.json()

    def test_stablewatch_empty_is_200(self, client, upstream):
        upstream.text(SITE_URL, "<html></html>")
        response = client.get("/sources/stablewatch", params={"refresh": 1, "ttl": 5})
        assert response.status_code == 200
        assert response.json() == {"data": [], "cached": False}

    @pytest.mark.parametrize(
        "ttl, lifetime",
        [
            (5, 60),
            (99999, 3600),
        ],
    )
    def test_stablewatch_ttl_is_clamped(self, client, upstream, clock, ttl, lifetime):
        upstream.text(SITE_URL, "<html></html>")
        assert client.get("/sources/stablewatch", params={"refresh": 1, "ttl": ttl}).json()["cached"] is False

        clock.advance(lifetime - 1)
        assert client.get("/sources/stablewatch").json()["cached"] is True

        clock.advance(2)
        assert client.get("/sources/stablewatch").json()["cached"] is False
        assert upstream.calls(SITE_URL) == 2

    def test_clamp_ttl_bounds(self):
        assert clamp_ttl(None) is None
        assert clamp_ttl(0) == 60
        assert clamp_ttl(900) == 900
        assert clamp_ttl(86_400) == 3600

    def test_sources_health(self, client):
        response = client.get("/sources/health")
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert len(body["checks"]) == 7
        assert all(c["ok"] is False for c in body["checks"])


class TestChainMetrics:
    def test_partial_data_with_errors(self, client, upstream):
        for path in ("users", "transactions", "contract-data"):
            upstream.json(f"{SUMCAP_BASE}/{path}", {"data": [{"v": 1}]})

        response = client.get("/chain-metrics")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "s-maxage=1200, stale-while-revalidate=1200"
        body = response.json()
        assert body["users"] == [{"v": 1}]
        assert body["blocks"] == []
        assert len(body["errors"]) == 1
        assert body["fetchedAt"]

    def test_all_failing_is_502(self, client):
        response = client.get("/chain-metrics")
        assert response.status_code == 502
        assert response.json()["errors"]


class TestSumcapRoute:
    def test_requires_secret(self, client):
        assert client.get("/sumcap/sync").status_code == 401


def test_invalid_endpoint(client):
    """Test invalid endpoint returns 404"""
    assert client.get("/invalid").status_code == 404


def test_routes_registered():
    """Every public route is mounted"""
    routes = {route.path for route in TestClient(app).app.routes}
    assert {"/aggregate/sync", "/sources/health", "/yields/plasma", "/chain-metrics", "/sumcap/sync"} <= routes
