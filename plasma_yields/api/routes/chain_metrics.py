"""Chain metrics route - SumCap users/transactions/contracts/blocks."""

from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from plasma_yields.api.deps import get_cache, get_transport
from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.logging import get_logger
from plasma_yields.ingestion import ChainMetricsAdapter, UpstreamError
from plasma_yields.schemas.api import ChainMetricsResponse

router = APIRouter(tags=["chain-metrics"])
log = get_logger("chain_metrics_routes")

CACHE_CONTROL = "s-maxage=1200, stale-while-revalidate=1200"


@router.get("/chain-metrics", response_model=ChainMetricsResponse)
async def chain_metrics(
    response: Response,
    cache: KeyValueCache = Depends(get_cache),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    """
    Partial data is fine: failing series come back empty and are listed in
    ``errors``. Only when all four fail is the answer a 502.
    """
    fetched_at = datetime.now(timezone.utc).isoformat()
    try:
        result = await ChainMetricsAdapter(cache, transport=transport).load()
    except UpstreamError as exc:
        log.error(f"Chain metrics unavailable: {exc}")
        body = ChainMetricsResponse(errors=[f"all: {exc}"], fetchedAt=fetched_at)
        return JSONResponse(body.model_dump(), status_code=502)

    response.headers["Cache-Control"] = CACHE_CONTROL
    return ChainMetricsResponse(**result.data, fetchedAt=fetched_at)
