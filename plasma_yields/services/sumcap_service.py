"""Legacy SumCap sync: every dashboard endpoint, one row per path per hour."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Sequence

import httpx
from sqlalchemy.orm import Session

from plasma_yields.core.db import upsert
from plasma_yields.core.logging import get_logger
from plasma_yields.ingestion.chain_metrics import SNAPSHOT_PATHS, fetch_snapshot_paths
from plasma_yields.models import SumcapSnapshot
from plasma_yields.schemas.api import SumcapFailure, SumcapSyncResponse
from plasma_yields.services.aggregation_service import floor_to_hour, utcnow

log = get_logger("sumcap_service")


class SumcapSyncService:
    def __init__(
        self,
        db: Session,
        *,
        base_url: str | None = None,
        paths: Sequence[str] = SNAPSHOT_PATHS,
        delay_seconds: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.base_url = base_url
        self.paths = list(paths)
        self.delay_seconds = delay_seconds
        self.transport = transport
        self.clock = clock

    async def run(self) -> SumcapSyncResponse:
        now = self.clock()
        ts = floor_to_hour(now)
        results = await fetch_snapshot_paths(
            base_url=self.base_url,
            paths=self.paths,
            delay_seconds=self.delay_seconds,
            transport=self.transport,
        )

        rows = [
            {
                "ts": ts,
                "endpoint": r.path,
                "status": r.status,
                "ok": r.ok,
                "payload": r.payload,
                "updated_at": now,
            }
            for r in results
        ]
        try:
            count = upsert(self.db, SumcapSnapshot, rows, ("ts", "endpoint"))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        failed: List[SumcapFailure] = [SumcapFailure(path=r.path, status=r.status) for r in results if not r.ok]
        log.info(f"SumCap sync stored {count} endpoints, {len(failed)} failed")
        return SumcapSyncResponse(ok=True, ts=ts.isoformat(), count=count, failed=failed)
