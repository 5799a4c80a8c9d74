"""Engine/session wiring and dialect-aware upsert support."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from plasma_yields.core.config import settings
from plasma_yields.core.logging import get_logger

log = get_logger("db")


@lru_cache(maxsize=1)
def _build_session_factory(database_url: str) -> sessionmaker:
    engine = create_engine(database_url, pool_pre_ping=True, future=True)
    log.info(f"Database engine created ({engine.dialect.name})")
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session_factory() -> Optional[sessionmaker]:
    """Return a session factory, or None when no DATABASE_URL is configured."""
    if not settings.DATABASE_URL:
        return None
    return _build_session_factory(settings.DATABASE_URL)


def SessionLocal() -> Session:
    factory = get_session_factory()
    if factory is None:
        raise RuntimeError("DATABASE_URL is not configured")
    return factory()


def upsert(
    db: Session,
    model: Any,
    rows: List[Dict[str, Any]],
    conflict_keys: Sequence[str],
) -> int:
    """INSERT ... ON CONFLICT (conflict_keys) DO UPDATE for every non-key column.

    Duplicate keys inside ``rows`` are collapsed first (first occurrence wins)
    because a single ON CONFLICT statement may not touch the same row twice.
    """
    rows = dedupe_rows(rows, conflict_keys)
    if not rows:
        return 0

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(rows)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(rows)
    else:
        raise RuntimeError(f"Upsert not supported for dialect {dialect!r}")

    update_cols = [col for col in rows[0].keys() if col not in conflict_keys]
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_keys),
        set_={col: stmt.excluded[col] for col in update_cols},
    )
    db.execute(stmt)
    return len(rows)


def dedupe_rows(rows: Iterable[Dict[str, Any]], keys: Sequence[str]) -> List[Dict[str, Any]]:
    seen = set()
    unique: List[Dict[str, Any]] = []
    for row in rows:
        marker = tuple(row.get(k) for k in keys)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(row)
    return unique
