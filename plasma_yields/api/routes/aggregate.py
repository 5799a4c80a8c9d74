"""Aggregate routes - scheduler-triggered hourly snapshot."""

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from plasma_yields.api.deps import get_cache, get_transport, require_cron_secret, require_db
from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.logging import get_logger
from plasma_yields.schemas.api import SyncResponse
from plasma_yields.services.aggregation_service import AggregationService

router = APIRouter(prefix="/aggregate", tags=["aggregate"])
log = get_logger("aggregate_routes")


@router.get("/sync", response_model=SyncResponse, dependencies=[Depends(require_cron_secret)])
async def sync(
    db: Session = Depends(require_db),
    cache: KeyValueCache = Depends(get_cache),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    """
    Snapshot every source into the current hour bucket.

    Requires the shared secret as ``x-cron-secret`` header or ``secret`` query
    parameter. Individual source failures are listed under ``failed``; the
    response is still 200.
    """
    try:
        return await AggregationService(db, cache, transport=transport).run()
    except Exception as exc:  # noqa: BLE001
        log.exception(f"Aggregate sync failed: {exc}")
        return PlainTextResponse(f"Sync failed: {exc}", status_code=500)
