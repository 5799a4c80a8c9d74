"""Settle-all orchestration across adapters."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from plasma_yields.core.logging import get_logger
from plasma_yields.schemas.pool import Pool
from .base import BaseAdapter, UpstreamError

log = get_logger("ingestion.runner")


@dataclass
class SourceOutcome:
    source: str
    ok: bool
    data: Any = None
    pools: List[Pool] = field(default_factory=list)
    error: Optional[str] = None
    status: Optional[int] = None


class IngestionRunner:
    """Loads every adapter concurrently; one failure never cancels the others."""

    def __init__(self, adapters: Sequence[BaseAdapter], refresh: bool = True):
        self.adapters = list(adapters)
        self.refresh = refresh

    async def run(self) -> List[SourceOutcome]:
        results = await asyncio.gather(
            *(adapter.load(refresh=self.refresh) for adapter in self.adapters),
            return_exceptions=True,
        )

        outcomes: List[SourceOutcome] = []
        for adapter, result in zip(self.adapters, results):
            if isinstance(result, BaseException):
                status = result.status if isinstance(result, UpstreamError) else None
                log.error(f"Source={adapter.name} failed: {result}")
                outcomes.append(SourceOutcome(source=adapter.name, ok=False, error=str(result) or result.__class__.__name__, status=status))
                continue

            pools = adapter.pools(result.data)
            log.info(f"Source={adapter.name} pools={len(pools)} cached={result.cached}")
            outcomes.append(SourceOutcome(source=adapter.name, ok=True, data=result.data, pools=pools))
        return outcomes
