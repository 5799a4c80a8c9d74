"""Yield routes - direct, cache-first reads of single sources."""

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from plasma_yields.api.deps import get_cache, get_transport
from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.logging import get_logger
from plasma_yields.ingestion import ChateauAdapter, DefiLlamaYieldsAdapter, MerklAdapter, PendleAdapter, UpstreamError
from plasma_yields.schemas.api import PendleResponse, PoolsResponse

router = APIRouter(prefix="/yields", tags=["yields"])
log = get_logger("yields_routes")


def upstream_failure(exc: UpstreamError) -> JSONResponse:
    log.error(f"{exc.source} upstream failed: {exc}")
    return JSONResponse({"error": str(exc)}, status_code=502)


@router.get("/plasma", response_model=PoolsResponse)
async def plasma_yields(
    refresh: bool = Query(False, description="Bypass the cache"),
    cache: KeyValueCache = Depends(get_cache),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    """Top 50 DeFiLlama pools on Plasma by TVL."""
    try:
        result = await DefiLlamaYieldsAdapter(cache, transport=transport).load(refresh=refresh)
    except UpstreamError as exc:
        return upstream_failure(exc)
    return PoolsResponse(data=result.data, cached=result.cached)


@router.get("/pendle", response_model=PendleResponse)
async def pendle_yields(
    refresh: bool = Query(False, description="Bypass the cache"),
    cache: KeyValueCache = Depends(get_cache),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    """Pendle markets plus per-month APY/TVL averages."""
    try:
        result = await PendleAdapter(cache, transport=transport).load(refresh=refresh)
    except UpstreamError as exc:
        return upstream_failure(exc)
    return PendleResponse(data=result.data.pools, monthly=result.data.monthly, cached=result.cached)


@router.get("/merkl", response_model=PoolsResponse)
async def merkl_yields(
    refresh: bool = Query(False, description="Bypass the cache"),
    cache: KeyValueCache = Depends(get_cache),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    try:
        result = await MerklAdapter(cache, transport=transport).load(refresh=refresh)
    except UpstreamError as exc:
        return upstream_failure(exc)
    return PoolsResponse(data=result.data, cached=result.cached)


@router.get("/chateau")
async def chateau_metrics(
    cache: KeyValueCache = Depends(get_cache),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    """Chateau metrics document, passed through unchanged."""
    try:
        result = await ChateauAdapter(cache, transport=transport).load()
    except UpstreamError as exc:
        log.error(f"Chateau upstream failed: {exc}")
        return PlainTextResponse(f"Upstream error: {exc}", status_code=502)
    return result.data
