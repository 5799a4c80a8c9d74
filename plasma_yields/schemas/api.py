from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from plasma_yields.schemas.pool import Pool


class PoolsResponse(BaseModel):
    data: List[Pool]
    cached: bool


class PendleMonthlyRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pool: str
    month_date: str = Field(alias="monthDate")  # YYYY-MM-01
    apy: Optional[float] = None
    tvl_usd: Optional[float] = Field(default=None, alias="tvlUsd")
    datapoints: int
    project: str
    symbol: str


class PendleResponse(BaseModel):
    data: List[Pool]
    monthly: List[PendleMonthlyRecord]
    cached: bool


class FailedSource(BaseModel):
    source: str
    status: Optional[int] = None
    error: str


class SyncResponse(BaseModel):
    ok: bool
    upserted: str
    pools: Dict[str, int]
    failed: List[FailedSource] = []


class HealthCheck(BaseModel):
    source: str
    url: str
    status: Optional[int] = None
    ok: bool
    note: Optional[str] = None


class HealthResponse(BaseModel):
    ok: bool
    checks: List[HealthCheck]


class SumcapFailure(BaseModel):
    path: str
    status: Optional[int] = None


class SumcapSyncResponse(BaseModel):
    ok: bool
    ts: str
    count: int
    failed: List[SumcapFailure]


class ChainMetricsResponse(BaseModel):
    users: List[Any] = []
    transactions: List[Any] = []
    contracts: List[Any] = []
    blocks: List[Any] = []
    errors: Optional[List[str]] = None
    fetchedAt: str
