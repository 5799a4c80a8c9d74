"""Normalized pool record shared by all sources."""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from plasma_yields.normalization import classify_assets, coerce_tvl, detect_category, parse_numeric

PoolSource = Literal["defillama", "pendle", "merkl", "stablewatch", "chateau"]

_OPTIONAL_NUMBERS = (
    "apy",
    "apy_base",
    "apy_reward",
    "apy_pct_1d",
    "apy_pct_7d",
    "apy_pct_30d",
    "apy_mean_30d",
    "il_7d",
    "volume_usd_1d",
    "volume_usd_7d",
    "underlying_apy",
    "lp_apy",
)


class Pool(BaseModel):
    """One yield-bearing position on one protocol.

    ``(pool, source)`` identifies a row inside one aggregation batch.
    Serialized with camelCase aliases (``tvlUsd``, ``apyPct30d``...).
    """

    model_config = ConfigDict(populate_by_name=True)

    pool: str
    source: PoolSource
    chain: str = "Plasma"
    project: str = "Unknown"
    symbol: str = ""
    assets: List[str] = Field(default_factory=list)
    category: str = ""

    tvl_usd: float = Field(default=0.0, alias="tvlUsd")
    apy: Optional[float] = None
    apy_base: Optional[float] = Field(default=None, alias="apyBase")
    apy_reward: Optional[float] = Field(default=None, alias="apyReward")
    apy_pct_1d: Optional[float] = Field(default=None, alias="apyPct1d")
    apy_pct_7d: Optional[float] = Field(default=None, alias="apyPct7d")
    apy_pct_30d: Optional[float] = Field(default=None, alias="apyPct30d")
    apy_mean_30d: Optional[float] = Field(default=None, alias="apyMean30d")
    il_7d: Optional[float] = Field(default=None, alias="il7d")
    volume_usd_1d: Optional[float] = Field(default=None, alias="volumeUsd1d")
    volume_usd_7d: Optional[float] = Field(default=None, alias="volumeUsd7d")

    # Pendle-only extras
    underlying_apy: Optional[float] = Field(default=None, alias="underlyingApy")
    lp_apy: Optional[float] = Field(default=None, alias="lpApy")
    expiry: Optional[str] = None

    url: Optional[str] = None
    reward_tokens: Optional[List[str]] = Field(default=None, alias="rewardTokens")

    @field_validator("tvl_usd", mode="before")
    @classmethod
    def _tvl(cls, value: Any) -> float:
        return coerce_tvl(value)

    @field_validator(*_OPTIONAL_NUMBERS, mode="before")
    @classmethod
    def _finite_or_none(cls, value: Any) -> Optional[float]:
        return parse_numeric(value)

    @field_validator("project", "symbol", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("reward_tokens", mode="before")
    @classmethod
    def _tokens(cls, value: Any) -> Optional[List[str]]:
        if not isinstance(value, list):
            return None
        return [str(token) for token in value if token]

    @model_validator(mode="after")
    def _derive_tags(self) -> "Pool":
        if not self.project:
            self.project = "Unknown"
        if not self.assets:
            self.assets = classify_assets(self.symbol)
        if not self.category:
            self.category = detect_category(self.project)
        return self

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
