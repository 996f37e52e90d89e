"""
Distance tier selection.

Pure functions shared by every place a fare is computed: the server-side
fare calculator, the vehicle pricing snapshot served to clients, and the
admin backfill. Nothing here touches the database or the web framework.

Bands are right-inclusive: 0-50km uses the "50km" rate, 50.01-100km the
"100km" rate, and so on; anything above 250km uses the open-ended "300km" rate.
"""

import math
from typing import Dict, List, Mapping, Optional, Tuple

TIER_KEYS: Tuple[str, ...] = ("50km", "100km", "150km", "200km", "250km", "300km")

# Upper bound (inclusive) of each band; the last band is unbounded
TIER_BOUNDS: Tuple[Tuple[str, Optional[float]], ...] = (
    ("50km", 50.0),
    ("100km", 100.0),
    ("150km", 150.0),
    ("200km", 200.0),
    ("250km", 250.0),
    ("300km", None),
)

# Tiers introduced after the original three-tier tables
BACKFILL_TIERS: Tuple[str, ...] = ("200km", "250km", "300km")
BACKFILL_SEED_TIER = "150km"


def select_tier(distance_km: float) -> str:
    """Map a trip distance to its band key."""
    if distance_km <= 0:
        return TIER_KEYS[0]
    for key, upper_bound in TIER_BOUNDS:
        if upper_bound is None or distance_km <= upper_bound:
            return key
    return TIER_KEYS[-1]


def _rate(rate_table: Optional[Mapping[str, float]], key: str) -> float:
    if not rate_table:
        return 0
    return rate_table.get(key) or 0


def fallback_order(tier: str) -> List[str]:
    """
    Order in which tiers are tried for a selected tier.

    The selected tier first, then upward toward 300km, then downward toward 50km.
    """
    index = TIER_KEYS.index(tier)
    upward = list(TIER_KEYS[index:])
    downward = list(reversed(TIER_KEYS[:index]))
    return upward + downward


def describe_rate(distance_km: float, rate_table: Optional[Mapping[str, float]]) -> Tuple[float, Optional[str]]:
    """
    Resolve the per-km rate for a distance and the tier it came from.

    Returns (0, None) when the table has no usable rate at all.
    """
    for key in fallback_order(select_tier(distance_km)):
        rate = _rate(rate_table, key)
        if rate > 0:
            return rate, key
    return 0, None


def select_rate(distance_km: float, rate_table: Optional[Mapping[str, float]]) -> float:
    """Per-km rate applicable to a distance, with adjacent-tier fallback."""
    rate, _ = describe_rate(distance_km, rate_table)
    return rate


def needs_backfill(rate_table: Optional[Mapping[str, float]]) -> bool:
    """Whether backfilling would change the table."""
    return backfill_tier_values(rate_table) != dict(rate_table or {})


def backfill_tier_values(rate_table: Optional[Mapping[str, float]]) -> Dict[str, float]:
    """
    Return a complete six-tier table.

    Missing 200/250/300km rates are seeded from the 150km rate (0 if that is
    absent too). Existing non-zero rates are never changed, so applying this
    twice gives the same table as applying it once.
    """
    table = dict(rate_table or {})
    seed = _rate(table, BACKFILL_SEED_TIER)
    for key in TIER_KEYS:
        if key in BACKFILL_TIERS:
            table[key] = _rate(table, key) or seed
        else:
            table[key] = _rate(table, key)
    return table


def round_half_up(value: float) -> int:
    """
    Round to the nearest whole currency unit, halves rounding up.

    Matches the browser's Math.round for the non-negative amounts fares
    produce; Python's round() would send 2.5 to 2.
    """
    return int(math.floor(value + 0.5))
