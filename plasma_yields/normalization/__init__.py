from plasma_yields.normalization.classify import (
    ASSET_RULES,
    PROJECT_CATEGORY_MAP,
    classify_assets,
    detect_category,
)
from plasma_yields.normalization.values import (
    coerce_tvl,
    first_present,
    optional_str,
    parse_numeric,
    top_by_tvl,
)

__all__ = [
    "ASSET_RULES",
    "PROJECT_CATEGORY_MAP",
    "classify_assets",
    "detect_category",
    "coerce_tvl",
    "first_present",
    "optional_str",
    "parse_numeric",
    "top_by_tvl",
]
