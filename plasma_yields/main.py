from pathlib import Path
from contextlib import asynccontextmanager
import asyncio
from typing import Optional

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from plasma_yields.api.routes import (
    aggregate_router,
    chain_metrics_router,
    sources_router,
    sumcap_router,
    yields_router,
)
from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.config import settings
from plasma_yields.core.db import SessionLocal
from plasma_yields.core.logging import get_logger
from plasma_yields.services.aggregation_service import AggregationService


log = get_logger("app")

_sync_task: Optional[asyncio.Task] = None


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    # configparser interpolation: escape % in passwords
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL.replace("%", "%%"))
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


async def run_snapshot(cache: KeyValueCache) -> None:
    with SessionLocal() as db:
        result = await AggregationService(db, cache).run()
    for failure in result.failed:
        log.error(f"Snapshot {result.upserted}: {failure.source} failed ({failure.status}): {failure.error}")
    log.info(f"Snapshot {result.upserted} stored: {result.pools}")


async def scheduled_sync_task(cache: KeyValueCache) -> None:
    """Hourly snapshot loop for deployments without an external cron."""
    interval = settings.SYNC_INTERVAL_SECONDS
    log.info(f"Scheduled sync task started (interval: {interval}s)")

    while True:
        try:
            await run_snapshot(cache)
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            log.info("Scheduled sync task cancelled")
            break
        except Exception as exc:
            log.exception(f"Scheduled sync task error: {exc}")
            await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _sync_task

    log.info(f"Starting application in {settings.ENV.upper()} mode")
    app.state.cache = KeyValueCache()
    log.info(f"Durable KV cache {'enabled' if settings.kv_configured else 'disabled, using in-process cache'}")

    if settings.database_configured:
        try:
            run_migrations()
        except Exception:
            log.exception("Failed to apply migrations on startup")
            raise
    else:
        log.warning("DATABASE_URL not set: sync routes will answer 500, health rows are not stored")

    if settings.SYNC_ENABLED and settings.database_configured:
        log.info("Starting scheduled sync background task...")
        _sync_task = asyncio.create_task(scheduled_sync_task(app.state.cache))
    else:
        log.info("Scheduled sync is disabled (SYNC_ENABLED=false or no database)")

    yield

    log.info("Shutting down services...")
    if _sync_task:
        _sync_task.cancel()
        try:
            await _sync_task
        except asyncio.CancelledError:
            pass
        _sync_task = None

    log.info("Application shutdown complete")


app = FastAPI(
    title="Plasma Yields Aggregator",
    description="Cache-fronted ETL for Plasma yield sources",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(aggregate_router)
app.include_router(chain_metrics_router)
app.include_router(sources_router)
app.include_router(sumcap_router)
app.include_router(yields_router)
