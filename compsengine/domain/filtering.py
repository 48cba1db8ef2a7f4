# compsengine/domain/filtering.py
"""
Candidate filter: ordered, independently testable exclusion rules.

Rules run in a fixed order and the first rule that rejects a candidate is the
one charged in the drop report, so "excluded N for price, M for recency" stays
meaningful in logs.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from .address import same_address
from .normalize import canonical_filter_type
from .types import ComparableProperty

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterCriteria:
    target_bedrooms: int | None = None
    target_bathrooms: float | None = None
    property_type: str | None = None

    price_floor: int = 100_000
    bedroom_tolerance: int = 1
    bathroom_tolerance: float = 2.0
    recency_years: int | None = 3  # None => any sale date accepted
    max_results: int = 20
    exclude_defaulted_price: bool = True

    @classmethod
    def from_settings(
        cls,
        *,
        target_bedrooms: int | None = None,
        target_bathrooms: float | None = None,
        property_type: str | None = None,
    ) -> "FilterCriteria":
        from ..config import settings

        recency: int | None = settings.COMPS_RECENCY_YEARS
        if settings.BATCHDATA_SANDBOX and settings.COMPS_SANDBOX_RELAX_RECENCY:
            recency = None

        return cls(
            target_bedrooms=target_bedrooms,
            target_bathrooms=target_bathrooms,
            property_type=property_type,
            price_floor=settings.COMPS_PRICE_FLOOR,
            bedroom_tolerance=settings.COMPS_BEDROOM_TOLERANCE,
            bathroom_tolerance=settings.COMPS_BATHROOM_TOLERANCE,
            recency_years=recency,
            max_results=settings.COMPS_MAX_RESULTS,
            exclude_defaulted_price=settings.COMPS_EXCLUDE_DEFAULTED_PRICE,
        )


@dataclass
class FilterReport:
    considered: int = 0
    kept: int = 0
    capped: int = 0
    drop_reasons: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def snapshot(self) -> dict[str, object]:
        return {
            "considered": self.considered,
            "kept": self.kept,
            "capped": self.capped,
            "drop_reasons": dict(self.drop_reasons),
        }


@dataclass(frozen=True)
class _Context:
    subject_address: str | None
    criteria: FilterCriteria
    today: date
    wanted_type: str | None


def years_before(d: date, years: int) -> date:
    try:
        return d.replace(year=d.year - years)
    except ValueError:
        # Feb 29 -> Feb 28
        return d.replace(year=d.year - years, day=28)


# -----------------------------
# Rules: return True when the candidate must be EXCLUDED
# -----------------------------
def is_subject_property(c: ComparableProperty, ctx: _Context) -> bool:
    return bool(ctx.subject_address) and same_address(c.address, ctx.subject_address)


def below_price_floor(c: ComparableProperty, ctx: _Context) -> bool:
    return c.price <= 0 or c.price < ctx.criteria.price_floor


def has_defaulted_price(c: ComparableProperty, ctx: _Context) -> bool:
    return ctx.criteria.exclude_defaulted_price and "price" in c.defaulted_fields


def outside_bedroom_tolerance(c: ComparableProperty, ctx: _Context) -> bool:
    target = ctx.criteria.target_bedrooms
    if target is None:
        return False
    return abs(c.bedrooms - target) > ctx.criteria.bedroom_tolerance


def outside_bathroom_tolerance(c: ComparableProperty, ctx: _Context) -> bool:
    target = ctx.criteria.target_bathrooms
    if target is None:
        return False
    return abs(c.bathrooms - target) > ctx.criteria.bathroom_tolerance


def is_stale_sale(c: ComparableProperty, ctx: _Context) -> bool:
    # Active inventory is always relevant.
    if c.sold_date is None:
        return False
    years = ctx.criteria.recency_years
    if years is None:
        return False
    return c.sold_date < years_before(ctx.today, years)


def wrong_property_type(c: ComparableProperty, ctx: _Context) -> bool:
    if ctx.wanted_type is None:
        return False
    return c.property_type.value != ctx.wanted_type


Rule = Callable[[ComparableProperty, _Context], bool]

RULES: tuple[tuple[str, Rule], ...] = (
    ("subject_property", is_subject_property),
    ("price_floor", below_price_floor),
    ("defaulted_price", has_defaulted_price),
    ("bedroom_tolerance", outside_bedroom_tolerance),
    ("bathroom_tolerance", outside_bathroom_tolerance),
    ("recency", is_stale_sale),
    ("property_type", wrong_property_type),
)


def filter_candidates(
    candidates: list[ComparableProperty],
    subject_address: str | None,
    criteria: FilterCriteria,
    *,
    today: date | None = None,
    report: FilterReport | None = None,
) -> list[ComparableProperty]:
    """
    Apply RULES in order, then sort by distance (stable) and cap at max_results.
    Filtering an already-filtered list with the same criteria returns it unchanged.
    """
    ctx = _Context(
        subject_address=subject_address,
        criteria=criteria,
        today=today or date.today(),
        wanted_type=canonical_filter_type(criteria.property_type),
    )
    rep = report if report is not None else FilterReport()
    rep.considered += len(candidates)

    kept: list[ComparableProperty] = []
    for c in candidates:
        reason = next((name for name, rule in RULES if rule(c, ctx)), None)
        if reason is not None:
            rep.drop_reasons[reason] += 1
            log.debug("excluded %s (%s)", c.address, reason)
            continue
        kept.append(c)

    kept.sort(key=lambda c: c.distance)
    if len(kept) > criteria.max_results:
        rep.capped += len(kept) - criteria.max_results
        kept = kept[: criteria.max_results]
    rep.kept += len(kept)

    if rep.drop_reasons:
        log.info("filter kept %d/%d; drop_reasons=%s", len(kept), len(candidates), dict(rep.drop_reasons))
    return kept
