"""Upstream reachability probe, persisted to source_health when a DB is around."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from plasma_yields.core.config import settings
from plasma_yields.core.logging import get_logger
from plasma_yields.ingestion.base import USER_AGENT
from plasma_yields.models import SourceHealthCheck
from plasma_yields.schemas.api import HealthCheck

log = get_logger("health_service")

NOTE_LIMIT = 180


@dataclass(frozen=True)
class ProbeTarget:
    source: str
    url: str
    failure_note: Optional[str] = None
    # Return the response body (truncated) as the note when the check fails
    body_as_note: bool = False


TARGETS: List[ProbeTarget] = [
    ProbeTarget("defillama-yields", "https://yields.llama.fi/pools?chain=Plasma", "Unavailable or rate-limited"),
    ProbeTarget("defillama-chain-tvl", "https://api.llama.fi/charts/Plasma"),
    ProbeTarget("defillama-saving-vaults", "https://api.llama.fi/protocol/plasma-saving-vaults"),
    ProbeTarget("stablewatch-plasma-ui", "https://plasma.stablewatch.io/", "Public UI; scraped, no data export"),
    ProbeTarget(
        "merkl-opportunities",
        "https://api.merkl.xyz/v4/opportunities/?items=1&status=LIVE&chainId=9745",
        "Chain not supported or requires params",
        body_as_note=True,
    ),
    ProbeTarget("ethena-api", "https://api.ethena.fi/", "Likely requires auth / gated"),
    ProbeTarget("pendle-api", "https://api.pendle.finance/core/v2/markets", "No public route (404)"),
]


class HealthProbe:
    """One GET per upstream, no retries; every failure becomes ok=False."""

    def __init__(
        self,
        db: Optional[Session] = None,
        *,
        targets: Sequence[ProbeTarget] = TARGETS,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.db = db
        self.targets = list(targets)
        self._transport = transport
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def run(self) -> List[HealthCheck]:
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        ) as client:
            checks = await asyncio.gather(*(self._check(client, target) for target in self.targets))

        failing = [c.source for c in checks if not c.ok]
        log.info(f"Health probe: {len(checks) - len(failing)}/{len(checks)} ok, failing={failing}")
        self._persist(checks)
        return list(checks)

    async def _check(self, client: httpx.AsyncClient, target: ProbeTarget) -> HealthCheck:
        try:
            resp = await client.get(target.url)
        except httpx.HTTPError as exc:
            log.warning(f"Probe {target.source} unreachable: {exc}")
            return HealthCheck(source=target.source, url=target.url, status=None, ok=False, note=target.failure_note)

        note = None
        if resp.is_error:
            note = target.failure_note
            if target.body_as_note:
                note = resp.text[:NOTE_LIMIT] or target.failure_note
        return HealthCheck(
            source=target.source,
            url=target.url,
            status=resp.status_code,
            ok=resp.is_success,
            note=note,
        )

    def _persist(self, checks: Sequence[HealthCheck]) -> None:
        if self.db is None:
            return
        try:
            self.db.add_all([SourceHealthCheck(**check.model_dump()) for check in checks])
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            log.error(f"Failed to persist health checks: {exc}")
