# compsengine/domain/extraction.py
"""
Field extraction for upstream property payloads.

The provider reports the same fact under different key paths depending on the
data source (MLS, assessor, deed records, derived "intel") and listing status.
Each canonical attribute therefore has an ordered list of candidate paths, each
paired with a plausibility check. `extract` walks that list and returns the
first plausible value, or the documented default from DEFAULTS.

Both tables are plain data so the priority order can be audited and tested
path-by-path.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable

from .parsing import round_half_up, to_date, to_float
from .payload import RawProperty
from .types import PriceSource

log = logging.getLogger(__name__)

# Anything at or below this is a placeholder, not a transaction.
PRICE_PLAUSIBLE_MIN = 10_000
BEDROOMS_PLAUSIBLE = (1, 20)
BATHROOMS_PLAUSIBLE_MAX = 20.0
SQFT_PLAUSIBLE_MAX = 100_000
YEAR_BUILT_MIN = 1700

Validator = Callable[[Any], Any]


# -----------------------------
# Validators: return the coerced value, or None if implausible
# -----------------------------
def price_value(x: Any) -> int | None:
    f = to_float(x)
    if f is None or f <= PRICE_PLAUSIBLE_MIN:
        return None
    return round_half_up(f)


def bedroom_count(x: Any) -> int | None:
    f = to_float(x)
    lo, hi = BEDROOMS_PLAUSIBLE
    if f is None or f < lo or f > hi:
        return None
    return int(f)


def bathroom_count(x: Any) -> float | None:
    f = to_float(x)
    if f is None or f <= 0 or f > BATHROOMS_PLAUSIBLE_MAX:
        return None
    return f


def square_feet(x: Any) -> int | None:
    f = to_float(x)
    if f is None or f <= 0 or f > SQFT_PLAUSIBLE_MAX:
        return None
    return round_half_up(f)


def year_built(x: Any) -> int | None:
    f = to_float(x)
    if f is None:
        return None
    y = int(f)
    if y < YEAR_BUILT_MIN or y > date.today().year + 1:
        return None
    return y


def calendar_date(x: Any) -> date | None:
    return to_date(x)


def non_negative_int(x: Any) -> int | None:
    f = to_float(x)
    if f is None or f < 0:
        return None
    return int(f)


def non_negative_float(x: Any) -> float | None:
    f = to_float(x)
    if f is None or f < 0:
        return None
    return f


def score_0_100(x: Any) -> float | None:
    f = to_float(x)
    if f is None or f < 0 or f > 100:
        return None
    return f


def text(x: Any) -> str | None:
    if x is None or isinstance(x, (dict, list, bool)):
        return None
    s = " ".join(str(x).split())
    return s or None


# -----------------------------
# Declarative source tables
# -----------------------------
@dataclass(frozen=True)
class SourcePath:
    path: str  # dot path; "a.b+c.d" joins several parts with a space
    validator: Validator
    tag: str | None = None


@dataclass(frozen=True)
class Extracted:
    value: Any
    source: str  # winning path, or "default"
    defaulted: bool = False
    tag: str | None = None


_LISTING = PriceSource.listing.value
_SOLD = PriceSource.sold.value
_VALUATION = PriceSource.valuation.value


FIELD_RULES: dict[str, tuple[SourcePath, ...]] = {
    "id": (
        SourcePath("_id", text),
        SourcePath("id", text),
        SourcePath("propertyId", text),
    ),
    "address": (
        SourcePath("address.street", text),
        SourcePath("address.fullAddress", text),
        SourcePath("streetAddress", text),
        SourcePath("fullAddress", text),
        SourcePath("formattedAddress", text),
        SourcePath("addressLine", text),
        SourcePath("address.houseNumber+address.streetName", text),
    ),
    "city": (
        SourcePath("address.city", text),
        SourcePath("city", text),
    ),
    "state": (
        SourcePath("address.state", text),
        SourcePath("state", text),
        SourcePath("stateCode", text),
    ),
    "zip_code": (
        SourcePath("address.zip", text),
        SourcePath("address.zipCode", text),
        SourcePath("zipCode", text),
        SourcePath("zip", text),
    ),
    # Highest confidence first: real listing/transaction prices before estimates.
    "price": (
        SourcePath("mls.price", price_value, _LISTING),
        SourcePath("listing.price", price_value, _LISTING),
        SourcePath("listPrice", price_value, _LISTING),
        SourcePath("intel.lastSoldPrice", price_value, _SOLD),
        SourcePath("mls.soldPrice", price_value, _SOLD),
        SourcePath("sale.lastSale.price", price_value, _SOLD),
        SourcePath("deedHistory.0.salePrice", price_value, _SOLD),
        SourcePath("valuation.estimatedValue", price_value, _VALUATION),
        SourcePath("assessment.totalAssessedValue", price_value, _VALUATION),
        SourcePath("tax.assessedValue", price_value, _VALUATION),
    ),
    "bedrooms": (
        SourcePath("mls.bedroomCount", bedroom_count),
        SourcePath("building.bedroomCount", bedroom_count),
        SourcePath("listing.bedroomCount", bedroom_count),
        SourcePath("bedrooms", bedroom_count),
        SourcePath("bedroom_count", bedroom_count),
        SourcePath("general.bedroomCount", bedroom_count),
        SourcePath("assessment.bedroomCount", bedroom_count),
    ),
    "bathrooms": (
        SourcePath("building.bathroomCount", bathroom_count),
        SourcePath("mls.bathroomCount", bathroom_count),
        SourcePath("bathrooms", bathroom_count),
        SourcePath("bathroom_count", bathroom_count),
        SourcePath("general.bathroomCount", bathroom_count),
        SourcePath("assessment.bathroomCount", bathroom_count),
    ),
    "square_footage": (
        SourcePath("building.totalBuildingAreaSquareFeet", square_feet),
        SourcePath("mls.totalBuildingAreaSquareFeet", square_feet),
        SourcePath("building.livingAreaSquareFeet", square_feet),
        SourcePath("squareFootage", square_feet),
        SourcePath("livingArea", square_feet),
    ),
    "year_built": (
        SourcePath("building.yearBuilt", year_built),
        SourcePath("mls.yearBuilt", year_built),
        SourcePath("yearBuilt", year_built),
    ),
    "property_type": (
        SourcePath("building.propertyType", text),
        SourcePath("mls.propertyType", text),
        SourcePath("propertyType", text),
        SourcePath("general.propertyTypeDetail", text),
    ),
    "sold_date": (
        SourcePath("intel.lastSoldDate", calendar_date),
        SourcePath("mls.soldDate", calendar_date),
        SourcePath("sale.lastSale.saleDate", calendar_date),
        SourcePath("deedHistory.0.saleDate", calendar_date),
        SourcePath("deedHistory.0.recordingDate", calendar_date),
    ),
    "days_on_market": (
        SourcePath("mls.daysOnMarket", non_negative_int),
        SourcePath("listing.daysOnMarket", non_negative_int),
        SourcePath("daysOnMarket", non_negative_int),
    ),
    "distance": (
        SourcePath("distance", non_negative_float),
        SourcePath("distanceMiles", non_negative_float),
    ),
    "similarity": (
        SourcePath("similarityScore", score_0_100),
        SourcePath("confidenceScore", score_0_100),
    ),
}


# Substituted when no source path is plausible. Downstream arithmetic
# (price-per-sqft, offer modeling) must never see a missing number.
DEFAULTS: dict[str, Any] = {
    "id": None,  # normalizer falls back to the payload fingerprint
    "address": None,  # no default: unaddressed records are dropped
    "city": "",
    "state": "",
    "zip_code": "",
    "price": 500_000,
    "bedrooms": 3,
    "bathrooms": 2.0,
    "square_footage": 0,
    "year_built": 0,  # 0 = unknown
    "property_type": "Unknown",
    "sold_date": None,  # active listing
    "days_on_market": 0,
    "distance": 0.0,
    "similarity": 85.0,
}

# Tag used when the price comes from DEFAULTS.
DEFAULT_PRICE_TAG = _VALUATION

# Defaults that are expected often and not worth an INFO line.
_QUIET_DEFAULTS = {"sold_date", "days_on_market", "distance", "similarity", "id"}


def _read(payload: RawProperty, path: str) -> Any:
    if "+" not in path:
        return payload.lookup(path)
    parts = [payload.lookup(p) for p in path.split("+")]
    joined = " ".join(str(p).strip() for p in parts if p not in (None, ""))
    return joined or None


def resolve(payload: RawProperty, attribute: str, rules: tuple[SourcePath, ...]) -> Extracted:
    for rule in rules:
        raw = _read(payload, rule.path)
        if raw is None:
            continue
        value = rule.validator(raw)
        if value is None:
            log.debug("extract %s: rejected %s=%r (fp=%s)", attribute, rule.path, raw, payload.fingerprint)
            continue
        log.debug("extract %s: using %s (fp=%s)", attribute, rule.path, payload.fingerprint)
        return Extracted(value=value, source=rule.path, tag=rule.tag)

    default = DEFAULTS.get(attribute)
    tag = DEFAULT_PRICE_TAG if attribute == "price" else None
    if attribute in _QUIET_DEFAULTS or default is None:
        log.debug("extract %s: no plausible source, default=%r (fp=%s)", attribute, default, payload.fingerprint)
    else:
        log.info("extract %s: no plausible source, substituted default=%r (fp=%s)", attribute, default, payload.fingerprint)
    return Extracted(value=default, source="default", defaulted=True, tag=tag)


def extract(payload: RawProperty | dict[str, Any], attribute: str) -> Extracted:
    if attribute not in FIELD_RULES:
        raise KeyError(f"unknown attribute: {attribute!r}")
    if not isinstance(payload, RawProperty):
        payload = RawProperty.from_obj(payload) or RawProperty(data={}, fingerprint="empty")
    return resolve(payload, attribute, FIELD_RULES[attribute])


def extract_all(payload: RawProperty) -> dict[str, Extracted]:
    return {attr: resolve(payload, attr, rules) for attr, rules in FIELD_RULES.items()}
