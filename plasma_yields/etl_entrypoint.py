"""Job entrypoint - run the pipeline jobs without the HTTP surface.

Usage:
    python -m plasma_yields.etl_entrypoint            # hourly snapshot (default)
    python -m plasma_yields.etl_entrypoint sync       # hourly snapshot
    python -m plasma_yields.etl_entrypoint health     # upstream health probe
    python -m plasma_yields.etl_entrypoint sumcap     # SumCap endpoint snapshot
"""

import asyncio
import sys
from typing import List, Optional

from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.db import SessionLocal, get_session_factory
from plasma_yields.core.logging import get_logger
from plasma_yields.services.aggregation_service import AggregationService
from plasma_yields.services.health_service import HealthProbe
from plasma_yields.services.sumcap_service import SumcapSyncService

logger = get_logger("etl_entrypoint")

JOBS = ("sync", "health", "sumcap")


async def run_sync() -> bool:
    with SessionLocal() as db:
        result = await AggregationService(db, KeyValueCache()).run()
    logger.info(f"Snapshot {result.upserted}: pools={result.pools} failed={[f.source for f in result.failed]}")
    return not result.failed


async def run_health() -> bool:
    factory = get_session_factory()
    db = factory() if factory else None
    try:
        checks = await HealthProbe(db).run()
    finally:
        if db is not None:
            db.close()
    for check in checks:
        logger.info(f"{check.source}: ok={check.ok} status={check.status}")
    return all(check.ok for check in checks)


async def run_sumcap() -> bool:
    with SessionLocal() as db:
        result = await SumcapSyncService(db).run()
    logger.info(f"SumCap {result.ts}: stored={result.count} failed={[f.path for f in result.failed]}")
    return not result.failed


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    job = args[0] if args else "sync"
    if job not in JOBS:
        logger.error(f"Invalid job: {job}. Must be one of: {', '.join(JOBS)}")
        return 2

    runner = {"sync": run_sync, "health": run_health, "sumcap": run_sumcap}[job]
    logger.info(f"Job {job} starting...")
    try:
        ok = asyncio.run(runner())
    except Exception as exc:
        logger.exception(f"Job {job} failed: {exc}")
        return 1

    logger.info(f"Job {job} completed (ok={ok})")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
