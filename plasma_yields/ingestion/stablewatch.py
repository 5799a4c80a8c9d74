"""Stablewatch Plasma dashboard scraper.

Stablewatch has no public API. Its pools are embedded as object-literal arrays
inside the Next.js chunks the page loads, so the scraper:

1. fetches the page and collects ``/_next/static/chunks/`` script URLs,
2. tries app-page chunks first, at most five, one at a time,
3. bracket-scans each chunk for ``[{...},{...},{...}]`` literals and coaxes them
   into JSON,
4. keeps the first array whose sample object has an apy/apr key and a tvl key.

Nothing here is a contract with Stablewatch; the bundle can change under us
at any time. Everything fails soft to an empty list, which is cached like any
other result so we do not hammer the site while it is broken.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import urljoin

from plasma_yields.core.logging import get_logger
from plasma_yields.normalization import first_present, optional_str, parse_numeric
from plasma_yields.schemas.pool import Pool
from .base import PoolAdapter, UpstreamError

log = get_logger("ingestion.stablewatch")

SITE_URL = "https://plasma.stablewatch.io/"
CHUNK_MARKER = "/_next/static/chunks/"
PAGE_CHUNK_MARKER = "app/page"
MAX_CHUNKS = 5
MAX_ARRAYS_PER_CHUNK = 3
MIN_OBJECTS = 3
MAX_LITERAL_CHARS = 500_000

_SCRIPT_SRC_RE = re.compile(r"<script[^>]+src=[\"']([^\"']+)[\"']", re.I)
_BARE_KEY_RE = re.compile(r"([,{\s])([A-Za-z_$][\w$]*)\s*:")
_SINGLE_QUOTED_RE = re.compile(r"'([^'\"]*)'")

_APY_KEY_RE = re.compile(r"apy|apr", re.I)
_TVL_KEY_RE = re.compile(r"tvl", re.I)


def extract_script_sources(html: str) -> List[str]:
    return _SCRIPT_SRC_RE.findall(html)


def prioritize_chunks(sources: Iterable[str], base_url: str = SITE_URL) -> List[str]:
    """Absolute chunk URLs, main app-page chunks first."""
    chunks = [src for src in sources if CHUNK_MARKER in src]
    ordered = [s for s in chunks if PAGE_CHUNK_MARKER in s] + [s for s in chunks if PAGE_CHUNK_MARKER not in s]
    return [urljoin(base_url, src) for src in ordered]


def to_json_candidate(literal: str) -> str:
    quoted = _BARE_KEY_RE.sub(r'\1"\2":', literal)
    return _SINGLE_QUOTED_RE.sub(r'"\1"', quoted)


def _scan_array(text: str, start: int) -> Optional[Tuple[int, int]]:
    """(end index, top-level object count) for the array opening at ``start``.

    Brackets inside string literals are skipped. None if the array never
    closes or runs past MAX_LITERAL_CHARS.
    """
    depth = 0
    objects = 0
    quote: Optional[str] = None
    escaped = False
    stop = min(len(text), start + MAX_LITERAL_CHARS)
    for pos in range(start, stop):
        char = text[pos]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in "\"'`":
            quote = char
        elif char in "[{":
            if char == "{" and depth == 1:
                objects += 1
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 0:
                return pos, objects
    return None


def iter_object_array_literals(text: str, min_objects: int = MIN_OBJECTS) -> Iterator[str]:
    """Every ``[{...},{...},...]`` literal holding at least ``min_objects`` objects."""
    start = text.find("[{")
    while start != -1:
        scanned = _scan_array(text, start)
        if scanned is not None:
            end, objects = scanned
            if objects >= min_objects:
                yield text[start : end + 1]
        start = text.find("[{", start + 2)


def extract_json_arrays(text: str, limit: int = MAX_ARRAYS_PER_CHUNK) -> List[List[Any]]:
    arrays: List[List[Any]] = []
    for literal in iter_object_array_literals(text):
        try:
            parsed = json.loads(to_json_candidate(literal))
        except ValueError:
            continue
        if isinstance(parsed, list):
            arrays.append(parsed)
        if len(arrays) >= limit:
            break
    return arrays


def looks_like_pools(array: List[Any]) -> bool:
    sample = array[0] if array and isinstance(array[0], dict) else {}
    keys = list(sample.keys())
    return any(_APY_KEY_RE.search(k) for k in keys) and any(_TVL_KEY_RE.search(k) for k in keys)


def pool_identity(record: Dict[str, Any], name: Optional[str], project: Optional[str], symbol: Optional[str]) -> str:
    """Prefer the record's own id/address; fall back to project + display name.

    Display names like "USDT0 Vault" repeat across protocols, so the name alone
    is not a key.
    """
    explicit = first_present(record, ("id", "address", "vault"))
    if isinstance(explicit, (str, int)) and not isinstance(explicit, bool) and str(explicit).strip():
        return f"stablewatch:{explicit}"
    return f"stablewatch:{project or 'unknown'}:{name or symbol or 'unknown'}"


def normalize_record(record: Dict[str, Any]) -> Pool:
    name = optional_str(first_present(record, ("name", "pool", "title")))
    project = optional_str(first_present(record, ("project", "protocol")))
    symbol = optional_str(first_present(record, ("symbol", "token")))
    apr = first_present(record, ("apr", "apy", "apy30d"))
    tvl = first_present(record, ("tvl", "tvlUsd", "tvl_usd"))

    return Pool(
        pool=pool_identity(record, name, project, symbol),
        source="stablewatch",
        project=project or name or "Stablewatch",
        symbol=symbol or name or "",
        tvl_usd=parse_numeric(tvl),
        apy=parse_numeric(apr),
        url=optional_str(first_present(record, ("link", "url"))),
    )


def normalize_pools(arrays: Iterable[List[Any]]) -> List[Pool]:
    for array in arrays:
        if not isinstance(array, list) or not looks_like_pools(array):
            continue
        pools: List[Pool] = []
        seen = set()
        for idx, item in enumerate(array):
            if not isinstance(item, dict):
                continue
            pool = normalize_record(item)
            if pool.pool in seen:
                # same project and name listed twice; the position keeps both rows
                pool = pool.model_copy(update={"pool": f"{pool.pool}:{idx}"})
            seen.add(pool.pool)
            pools.append(pool)
        return pools
    return []


def scrape_raw_pools(script_text: str) -> List[Pool]:
    """Pools found in one script body, or [] when no array looks like a pool list."""
    return normalize_pools(extract_json_arrays(script_text))


class StablewatchAdapter(PoolAdapter):
    name = "stablewatch"
    cache_key = "stablewatch:plasma:pools:v2"
    ttl_seconds = 60 * 10
    user_agent = "yields.to-scraper"

    def __init__(self, *args, site_url: str = SITE_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.site_url = site_url

    async def fetch(self) -> List[Pool]:
        async with self.client() as client:
            resp = await self.get_response(client, self.site_url)
            chunks = prioritize_chunks(extract_script_sources(resp.text), self.site_url)
            log.debug(f"Stablewatch page lists {len(chunks)} chunks")

            for url in chunks[:MAX_CHUNKS]:
                text = await self._chunk_text(client, url)
                if text is None:
                    continue
                pools = scrape_raw_pools(text)
                if pools:
                    log.info(f"Scraped {len(pools)} Stablewatch pools from {url}")
                    return pools

        log.warning("No pool dataset found in Stablewatch chunks")
        return []

    async def _chunk_text(self, client, url: str) -> Optional[str]:
        try:
            resp = await self.get_response(client, url)
        except UpstreamError as exc:
            log.warning(f"Skipping chunk {url}: {exc}")
            return None
        return resp.text
