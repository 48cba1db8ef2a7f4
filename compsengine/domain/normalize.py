# compsengine/domain/normalize.py
from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from .address import extract_address
from .errors import MalformedCandidate
from .extraction import Extracted, extract_all
from .parsing import round_half_up
from .payload import RawProperty
from .types import ComparableProperty, PriceSource, PropertyType

log = logging.getLogger(__name__)

# Exact synonyms, matched after upper-casing and collapsing separators to a space.
PROPERTY_TYPE_SYNONYMS: dict[str, PropertyType] = {
    "SINGLE FAMILY": PropertyType.single_family,
    "SINGLE FAMILY RESIDENTIAL": PropertyType.single_family,
    "SINGLE FAMILY RESIDENCE": PropertyType.single_family,
    "SFR": PropertyType.single_family,
    "SFH": PropertyType.single_family,
    "CONDO": PropertyType.condo,
    "CONDOMINIUM": PropertyType.condo,
    "TOWNHOUSE": PropertyType.townhouse,
    "TOWNHOME": PropertyType.townhouse,
    "TOWN HOUSE": PropertyType.townhouse,
    "MULTI FAMILY": PropertyType.multi_family,
    "MULTIFAMILY": PropertyType.multi_family,
    "APARTMENT": PropertyType.multi_family,
    "DUPLEX": PropertyType.multi_family,
    "LAND": PropertyType.land,
    "VACANT LAND": PropertyType.land,
    "LOT": PropertyType.land,
    "COMMERCIAL": PropertyType.commercial,
    "UNKNOWN": PropertyType.unknown,
}


def normalize_property_type(raw: object) -> PropertyType:
    """
    Map messy upstream property type strings onto the canonical set.
    Exact synonyms first, then keyword signals, then Unknown.
    """
    if raw is None:
        return PropertyType.unknown

    s = str(raw).strip().upper()
    s = re.sub(r"[\s_/|-]+", " ", s).strip()
    if not s:
        return PropertyType.unknown

    exact = PROPERTY_TYPE_SYNONYMS.get(s)
    if exact is not None:
        return exact

    # Order matters: "townhouse/condo" reads as a condo association unit
    if any(k in s for k in ("CONDO", "CONDOMINIUM")):
        return PropertyType.condo
    if any(k in s for k in ("TOWNHOUSE", "TOWNHOME", "TOWN HOME", "ROWHOUSE", "ROW HOUSE")):
        return PropertyType.townhouse
    if any(k in s for k in ("MULTI FAMILY", "MULTIFAMILY", "2 FAMILY", "3 FAMILY", "4 FAMILY", "PLEX", "APARTMENT")):
        return PropertyType.multi_family
    if any(k in s for k in ("VACANT", "ACREAGE", "LAND")):
        return PropertyType.land
    if any(k in s for k in ("COMMERCIAL", "RETAIL", "INDUSTRIAL", "OFFICE")):
        return PropertyType.commercial
    if any(k in s for k in ("SINGLE FAMILY", "SINGLEFAMILY", "DETACHED")):
        return PropertyType.single_family

    return PropertyType.unknown


def canonical_filter_type(raw: str | None) -> str | None:
    """Canonical type string for a caller-supplied filter; None when not supplied."""
    if raw is None or not str(raw).strip():
        return None
    return normalize_property_type(raw).value


def price_per_sqft(price: int, sqft: int) -> int:
    if not price or sqft <= 0:
        return 0
    return round_half_up(price / sqft)


def extract_insights(payload: RawProperty) -> dict[str, Any]:
    """Investor-relevant flags and figures; all optional upstream."""
    quick = payload.section("quickLists")
    valuation = payload.section("valuation")
    open_lien = payload.section("openLien")
    building = payload.section("building")
    lot = payload.section("lot")

    def _flag(d: dict[str, Any], key: str) -> bool:
        return bool(d.get(key) or False)

    def _num(v: Any) -> float:
        try:
            return float(v or 0)
        except (TypeError, ValueError):
            return 0.0

    return {
        # investment
        "cash_buyer": _flag(quick, "cashBuyer"),
        "fix_and_flip": _flag(quick, "fixAndFlip"),
        "high_equity": _flag(quick, "highEquity"),
        "low_equity": _flag(quick, "lowEquity"),
        "free_and_clear": _flag(quick, "freeAndClear"),
        # owner
        "absentee_owner": _flag(quick, "absenteeOwner"),
        "owner_occupied": _flag(quick, "ownerOccupied"),
        "corporate_owned": _flag(quick, "corporateOwned"),
        "trust_owned": _flag(quick, "trustOwned"),
        # market
        "recently_sold": _flag(quick, "recentlySold"),
        "active_listing": _flag(quick, "activeListing"),
        "failed_listing": _flag(quick, "failedListing"),
        "listed_below_market_price": _flag(quick, "listedBelowMarketPrice"),
        # financial
        "estimated_value": _num(valuation.get("estimatedValue")),
        "confidence_score": _num(valuation.get("confidenceScore")),
        "equity_percent": _num(valuation.get("equityPercent")),
        "ltv": _num(valuation.get("ltv")),
        "total_open_lien_balance": _num(open_lien.get("totalOpenLienBalance")),
        # features
        "pool": _flag(building, "pool"),
        "fireplace_count": int(_num(building.get("fireplaceCount"))),
        "garage_spaces": int(_num(building.get("garageParkingSpaceCount"))),
        "lot_size_sqft": _num(building.get("lotSizeSquareFeet") or lot.get("lotSizeSquareFeet")),
    }


def normalize(payload: RawProperty | dict[str, Any], subject_address: str | None = None) -> ComparableProperty | None:
    """
    Build the canonical record for one raw candidate.

    Returns None only when no address can be extracted: such a record cannot be
    deduplicated against the subject property. Every other missing field is
    covered by the defaults table and listed in `defaulted_fields`.
    """
    if not isinstance(payload, RawProperty):
        payload = RawProperty.from_obj(payload)
        if payload is None:
            return None

    try:
        address = extract_address(payload)
    except MalformedCandidate as e:
        log.info("dropping malformed candidate fp=%s: %s", e.fingerprint, e)
        return None

    f: dict[str, Extracted] = extract_all(payload)
    defaulted = tuple(name for name, got in f.items() if got.defaulted and name not in ("id", "address"))

    price = int(f["price"].value)
    sqft = int(f["square_footage"].value)
    price_source = PriceSource(f["price"].tag or PriceSource.valuation.value)

    comp = ComparableProperty(
        id=f["id"].value or f"fp-{payload.fingerprint}",
        address=address,
        city=f["city"].value,
        state=f["state"].value,
        zip_code=f["zip_code"].value,
        price=price,
        price_per_sqft=price_per_sqft(price, sqft),
        price_source=price_source,
        bedrooms=int(f["bedrooms"].value),
        bathrooms=float(f["bathrooms"].value),
        square_footage=sqft,
        year_built=int(f["year_built"].value),
        property_type=normalize_property_type(f["property_type"].value),
        sold_date=f["sold_date"].value,
        days_on_market=int(f["days_on_market"].value),
        distance=float(f["distance"].value),
        similarity=float(f["similarity"].value),
        insights=extract_insights(payload),
        defaulted_fields=defaulted,
    )

    if subject_address and log.isEnabledFor(logging.DEBUG):
        log.debug("normalized %s (subject=%s) price=%s via %s", comp.address, subject_address, price, f["price"].source)
    return comp


def normalize_many(payloads: Iterable[RawProperty | dict[str, Any]], subject_address: str | None = None) -> list[ComparableProperty]:
    out: list[ComparableProperty] = []
    for p in payloads:
        comp = normalize(p, subject_address)
        if comp is not None:
            out.append(comp)
    return out
