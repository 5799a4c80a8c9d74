"""Hour-bucketed time series written by the sync jobs.

Every table's primary key is the upsert conflict target, so re-running a job
inside the same bucket overwrites rows instead of adding new ones.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, Integer, String, Boolean, func
from sqlalchemy.orm import Mapped, mapped_column

from plasma_yields.models.base import Base, JSONType


class PoolYieldSnapshot(Base):
    __tablename__ = "plasma_pool_yield_snapshots"

    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    pool: Mapped[str] = mapped_column(String, primary_key=True)
    source: Mapped[str] = mapped_column(String, primary_key=True)  # defillama | pendle | merkl | stablewatch | chateau

    chain: Mapped[str] = mapped_column(String, nullable=False, default="Plasma")
    project: Mapped[str | None] = mapped_column(String, nullable=True)
    symbol: Mapped[str | None] = mapped_column(String, nullable=True)
    tvl_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    apy: Mapped[float | None] = mapped_column(Float, nullable=True)
    apy_base: Mapped[float | None] = mapped_column(Float, nullable=True)
    apy_pct30d: Mapped[float | None] = mapped_column(Float, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class PlasmaAggregate(Base):
    """One row per hour: chain TVL delta plus the trimmed top-pools list."""

    __tablename__ = "plasma_aggregate"

    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)

    chain_latest_tvl_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    chain_prev_tvl_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    chain_last_date: Mapped[str | None] = mapped_column(String, nullable=True)
    protocol_latest_tvl_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    protocol_last_date: Mapped[str | None] = mapped_column(String, nullable=True)
    top_pools: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class SumcapSnapshot(Base):
    __tablename__ = "sumcap_snapshots"

    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    endpoint: Mapped[str] = mapped_column(String, primary_key=True)

    status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ok: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payload: Mapped[Any] = mapped_column(JSONType, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
