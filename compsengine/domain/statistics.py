# compsengine/domain/statistics.py
from __future__ import annotations

from typing import Sequence

from .parsing import round_half_up
from .types import ComparableProperty, ComparableSetStatistics, InventoryLevel, PriceRange

INVENTORY_LOW_MAX = 3
INVENTORY_MEDIUM_MAX = 6


def inventory_level(
    count: int,
    *,
    low_max: int = INVENTORY_LOW_MAX,
    medium_max: int = INVENTORY_MEDIUM_MAX,
) -> InventoryLevel:
    if count < low_max:
        return InventoryLevel.low
    if count < medium_max:
        return InventoryLevel.medium
    return InventoryLevel.high


def _mean(xs: Sequence[float]) -> int:
    if not xs:
        return 0
    return round_half_up(sum(xs) / len(xs))


def _median(xs: Sequence[int]) -> int:
    """Upper-middle element, so the median is always an observed price."""
    if not xs:
        return 0
    ordered = sorted(xs)
    return ordered[len(ordered) // 2]


def summarize(
    candidates: Sequence[ComparableProperty],
    *,
    low_max: int = INVENTORY_LOW_MAX,
    medium_max: int = INVENTORY_MEDIUM_MAX,
) -> ComparableSetStatistics:
    """
    Market statistics over a filtered comparable set.
    Empty input yields zeros everywhere, never NaN.
    """
    prices = [c.price for c in candidates if c.price > 0]
    ppsf = [c.price_per_sqft for c in candidates if c.price_per_sqft > 0]
    dom = [c.days_on_market for c in candidates]

    return ComparableSetStatistics(
        average_price=_mean(prices),
        average_price_per_sqft=_mean(ppsf),
        median_price=_median(prices),
        price_range=PriceRange(min=min(prices), max=max(prices)) if prices else PriceRange(),
        inventory_level=inventory_level(len(candidates), low_max=low_max, medium_max=medium_max),
        average_days_on_market=_mean(dom),
        count=len(candidates),
    )
