"""SumCap routes - legacy per-endpoint snapshot sync."""

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from plasma_yields.api.deps import get_transport, require_cron_secret, require_db
from plasma_yields.core.logging import get_logger
from plasma_yields.schemas.api import SumcapSyncResponse
from plasma_yields.services.sumcap_service import SumcapSyncService

router = APIRouter(prefix="/sumcap", tags=["sumcap"])
log = get_logger("sumcap_routes")


@router.get("/sync", response_model=SumcapSyncResponse, dependencies=[Depends(require_cron_secret)])
async def sync(
    db: Session = Depends(require_db),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
):
    """Walk all SumCap paths sequentially and store one row per path."""
    try:
        return await SumcapSyncService(db, transport=transport).run()
    except Exception as exc:  # noqa: BLE001
        log.exception(f"SumCap sync failed: {exc}")
        return PlainTextResponse(f"Sync failed: {exc}", status_code=500)
