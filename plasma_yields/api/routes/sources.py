"""Source routes - upstream health and the scraped Stablewatch dataset."""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from plasma_yields.api.deps import get_cache, get_db, get_transport
from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.logging import get_logger
from plasma_yields.ingestion import StablewatchAdapter, UpstreamError
from plasma_yields.schemas.api import HealthResponse, PoolsResponse
from plasma_yields.services.health_service import HealthProbe

router = APIRouter(prefix="/sources", tags=["sources"])
log = get_logger("sources_routes")

MIN_TTL = 60
MAX_TTL = 60 * 60


def clamp_ttl(ttl: Optional[int]) -> Optional[int]:
    if ttl is None:
        return None
    return max(MIN_TTL, min(MAX_TTL, ttl))


@router.get("/health", response_model=HealthResponse)
async def health(
    db: Optional[Session] = Depends(get_db),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    """
    Probe every known upstream once.

    Results are stored in ``source_health`` when a database is configured.
    Always 200; unreachable upstreams show up as ``ok: false``.
    """
    checks = await HealthProbe(db, transport=transport).run()
    return HealthResponse(ok=True, checks=checks)


@router.get("/stablewatch", response_model=PoolsResponse)
async def stablewatch(
    refresh: bool = Query(False, description="Bypass the cache"),
    ttl: Optional[int] = Query(None, description="Cache TTL in seconds, clamped to [60, 3600]"),
    cache: KeyValueCache = Depends(get_cache),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    adapter = StablewatchAdapter(cache, transport=transport)
    try:
        result = await adapter.load(refresh=refresh, ttl_seconds=clamp_ttl(ttl))
    except UpstreamError as exc:
        log.error(f"Stablewatch scrape failed: {exc}")
        return JSONResponse({"error": str(exc)}, status_code=502)
    return PoolsResponse(data=result.data, cached=result.cached)
