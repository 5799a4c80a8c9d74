"""Pendle markets on Plasma, plus monthly APY/TVL history per market."""

from __future__ import annotations

import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from plasma_yields.core.config import settings
from plasma_yields.core.logging import get_logger
from plasma_yields.normalization import classify_assets, parse_numeric
from plasma_yields.schemas.api import PendleMonthlyRecord
from plasma_yields.schemas.pool import Pool
from .base import BaseAdapter, UpstreamError

log = get_logger("ingestion.pendle")

PLASMA_CHAIN_ID = 9745
MARKET_URL = "https://app.pendle.finance/trade/pools/{address}?chain=plasma"


class PendleSnapshot(BaseModel):
    pools: List[Pool] = []
    monthly: List[PendleMonthlyRecord] = []


def _percent(value: Any) -> Optional[float]:
    """Pendle reports fractions (0.085); zero/absent is treated as unknown."""
    number = parse_numeric(value)
    if not number:
        return None
    return number * 100


def _symbol_of(token: Any) -> Optional[str]:
    if isinstance(token, dict) and isinstance(token.get("symbol"), str):
        return token["symbol"]
    return None


def extract_assets(market: Dict[str, Any]) -> List[str]:
    symbols: List[str] = []
    underlying = _symbol_of(market.get("underlyingAsset"))
    if underlying:
        symbols.append(underlying)
    pt = _symbol_of(market.get("pt"))
    if pt:
        clean = re.sub(r"^PT-", "", pt, flags=re.I)
        if clean not in symbols:
            symbols.append(clean)
    return classify_assets(*symbols)


def normalize_market(market: Dict[str, Any]) -> Optional[Pool]:
    address = market.get("address")
    tvl = parse_numeric((market.get("liquidity") or {}).get("usd"))
    if not address or not tvl or tvl <= 0:
        return None

    address = str(address)
    expiry = market.get("expiry")
    symbol = market.get("symbol") or market.get("name")
    if not symbol:
        pt = _symbol_of(market.get("pt")) or "PT"
        underlying = _symbol_of(market.get("underlyingAsset")) or "Unknown"
        symbol = f"{pt}-{underlying}"

    return Pool(
        pool=address,
        source="pendle",
        project="Pendle",
        symbol=symbol,
        assets=extract_assets(market),
        tvl_usd=tvl,
        apy=_percent(market.get("aggregatedApy")),
        apy_base=_percent(market.get("impliedApy")),
        apy_reward=_percent(market.get("underlyingRewardApy")),
        underlying_apy=_percent(market.get("underlyingApy")),
        lp_apy=_percent(market.get("lpApy")),
        expiry=str(expiry) if expiry else None,
        apy_pct_1d=market.get("impliedApyPct1D"),
        apy_pct_7d=market.get("impliedApyPct7D"),
        apy_pct_30d=market.get("impliedApyPct30D"),
        url=MARKET_URL.format(address=address),
    )


def _parse_ts(value: Any) -> Optional[datetime]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # seconds vs milliseconds
        seconds = value / 1000 if value > 10_000_000_000 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)
        except ValueError:
            return None
    return None


def history_points(payload: Any) -> List[Tuple[datetime, Optional[float], Optional[float]]]:
    """Accept columnar ``{timestamp: [...], impliedApy: [...], tvl: [...]}`` or row lists."""
    points: List[Tuple[datetime, Optional[float], Optional[float]]] = []

    if isinstance(payload, dict) and isinstance(payload.get("timestamp"), list):
        stamps = payload["timestamp"]
        apys = payload.get("impliedApy") or payload.get("maxApy") or []
        tvls = payload.get("tvl") or []
        for idx, stamp in enumerate(stamps):
            ts = _parse_ts(stamp)
            if ts is None:
                continue
            apy = apys[idx] if idx < len(apys) else None
            tvl = tvls[idx] if idx < len(tvls) else None
            points.append((ts, _percent(apy), parse_numeric(tvl)))
        return points

    rows: Iterable[Any] = []
    if isinstance(payload, dict) and isinstance(payload.get("results"), list):
        rows = payload["results"]
    elif isinstance(payload, list):
        rows = payload
    for row in rows:
        if not isinstance(row, dict):
            continue
        ts = _parse_ts(row.get("timestamp"))
        if ts is None:
            continue
        points.append((ts, _percent(row.get("impliedApy")), parse_numeric(row.get("tvl"))))
    return points


def aggregate_monthly(pool: Pool, points: List[Tuple[datetime, Optional[float], Optional[float]]]) -> List[PendleMonthlyRecord]:
    buckets: Dict[str, Dict[str, List[float]]] = defaultdict(lambda: {"apy": [], "tvl": [], "n": []})
    for ts, apy, tvl in points:
        bucket = buckets[ts.strftime("%Y-%m-01")]
        bucket["n"].append(1)
        if apy is not None:
            bucket["apy"].append(apy)
        if tvl is not None:
            bucket["tvl"].append(tvl)

    records = []
    for month in sorted(buckets):
        bucket = buckets[month]
        records.append(
            PendleMonthlyRecord(
                pool=pool.pool,
                month_date=month,
                apy=sum(bucket["apy"]) / len(bucket["apy"]) if bucket["apy"] else None,
                tvl_usd=sum(bucket["tvl"]) / len(bucket["tvl"]) if bucket["tvl"] else None,
                datapoints=len(bucket["n"]),
                project=pool.project,
                symbol=pool.symbol,
            )
        )
    return records


class PendleAdapter(BaseAdapter[PendleSnapshot]):
    name = "pendle"
    cache_key = "pendle:plasma:pools:v2"
    ttl_seconds = 60 * 20

    def __init__(self, *args, base_url: str | None = None, chain_id: int = PLASMA_CHAIN_ID, with_history: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = (base_url or settings.PENDLE_API_BASE).rstrip("/")
        self.chain_id = chain_id
        self.with_history = with_history

    def encode(self, data: PendleSnapshot) -> Any:
        return data.model_dump(by_alias=True, mode="json")

    def decode(self, payload: Any) -> PendleSnapshot:
        return PendleSnapshot.model_validate(payload or {})

    def pools(self, data: PendleSnapshot) -> List[Pool]:
        return data.pools

    async def fetch(self) -> PendleSnapshot:
        async with self.client() as client:
            payload = await self.get_json(client, f"{self.base_url}/v1/{self.chain_id}/markets")
            if isinstance(payload, dict) and isinstance(payload.get("results"), list):
                markets = payload["results"]
            elif isinstance(payload, list):
                markets = payload
            else:
                raise UpstreamError(self.name, "Unexpected markets payload shape")

            pools = [p for p in (normalize_market(m) for m in markets if isinstance(m, dict)) if p]
            monthly: List[PendleMonthlyRecord] = []
            if self.with_history:
                # One market at a time; the public API rate-limits bursts
                for pool in pools:
                    monthly.extend(await self._history(client, pool))

        log.info(f"Fetched {len(pools)} Pendle markets, {len(monthly)} monthly records")
        return PendleSnapshot(pools=pools, monthly=monthly)

    async def _history(self, client, pool: Pool) -> List[PendleMonthlyRecord]:
        url = f"{self.base_url}/v2/{self.chain_id}/markets/{pool.pool}/historical-data"
        try:
            payload = await self.get_json(client, url, params={"time_frame": "day"})
        except UpstreamError as exc:
            log.warning(f"Skipping Pendle history for {pool.pool}: {exc}")
            return []
        return aggregate_monthly(pool, history_points(payload))
