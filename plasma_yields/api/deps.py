"""API dependencies"""

import hmac
from typing import Generator, Optional

import httpx
from fastapi import Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.config import Settings, settings
from plasma_yields.core.db import get_session_factory


def get_settings() -> Settings:
    return settings


def get_db() -> Generator[Optional[Session], None, None]:
    """Database session, or None when no relational store is configured."""
    factory = get_session_factory()
    if factory is None:
        yield None
        return
    db = factory()
    try:
        yield db
    finally:
        db.close()


def require_db(db: Optional[Session] = Depends(get_db)) -> Session:
    if db is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database not configured")
    return db


def get_cache(request: Request) -> KeyValueCache:
    return request.app.state.cache


def get_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Outbound transport override; None means real network."""
    return None


def require_cron_secret(
    x_cron_secret: Optional[str] = Header(None),
    secret: Optional[str] = Query(None),
    cfg: Settings = Depends(get_settings),
) -> None:
    expected = cfg.AGGREGATOR_SECRET
    provided = x_cron_secret or secret
    if not expected or not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
