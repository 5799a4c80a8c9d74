"""Asset tags and project categories.

Both tables are curated policy, not algorithms. ASSET_RULES is evaluated top
to bottom and a matched span is blanked out before the next rule runs, so a
specific token (``USD0++``) has to sit above any shorter token it contains
(``USD0``).
"""

from __future__ import annotations

import re
from typing import Iterable, List, Literal, Pattern, Tuple

Category = Literal["DeFi", "RWA", "Protocol"]

ASSET_RULES: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"USD0\+\+", re.I), "USD0++"),
    (re.compile(r"USD0", re.I), "USD0"),
    (re.compile(r"USDT0", re.I), "USDT0"),
    (re.compile(r"USDT", re.I), "USDT"),
    (re.compile(r"USDC", re.I), "USDC"),
    (re.compile(r"SUSDE", re.I), "sUSDe"),
    (re.compile(r"USDE", re.I), "USDe"),
    (re.compile(r"SUSDS", re.I), "sUSDS"),
    (re.compile(r"USDS", re.I), "USDS"),
    (re.compile(r"SCHUSD", re.I), "schUSD"),
    (re.compile(r"USDAI", re.I), "USDAI"),
    (re.compile(r"DAI", re.I), "DAI"),
    (re.compile(r"WETH", re.I), "WETH"),
    (re.compile(r"ETH", re.I), "ETH"),
    (re.compile(r"WBTC", re.I), "WBTC"),
    (re.compile(r"BTC", re.I), "BTC"),
    # Wrapped/staked XPL variants all count as XPL exposure
    (re.compile(r"WAPL|WXPL|XPL", re.I), "XPL"),
]

FALLBACK_ASSET = "Other"

PROJECT_CATEGORY_MAP: dict[str, Category] = {
    "plasma saving vaults": "Protocol",
    "plasma usd vault": "Protocol",
    "pendle": "DeFi",
    "pendle plasma": "DeFi",
    "fluid": "DeFi",
    "aave": "DeFi",
    "aave-v3": "DeFi",
    "ethena": "DeFi",
    "ethena plasma": "DeFi",
    "merkl": "DeFi",
    "plasma rwa": "RWA",
    "usd0": "RWA",
    "chateau capital": "RWA",
}


def classify_assets(*texts: str | None, rules: Iterable[Tuple[Pattern[str], str]] = ASSET_RULES) -> List[str]:
    """Canonical asset tags found in ``texts``; never empty."""
    remaining = " ".join(t for t in texts if t)
    tags: List[str] = []
    for pattern, tag in rules:
        if not pattern.search(remaining):
            continue
        remaining = pattern.sub(" ", remaining)
        if tag not in tags:
            tags.append(tag)
    return tags or [FALLBACK_ASSET]


def detect_category(project: str | None) -> Category:
    normalized = (project or "").strip().lower()
    direct = PROJECT_CATEGORY_MAP.get(normalized)
    if direct:
        return direct
    if "rwa" in normalized:
        return "RWA"
    if "protocol" in normalized:
        return "Protocol"
    return "DeFi"
