# compsengine/domain/types.py
from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any


class PropertyType(str, Enum):
    single_family = "Single Family"
    condo = "Condo"
    townhouse = "Townhouse"
    multi_family = "Multi Family"
    land = "Land"
    commercial = "Commercial"
    unknown = "Unknown"


class PriceSource(str, Enum):
    sold = "sold"
    listing = "listing"
    valuation = "valuation"


class InventoryLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


@dataclass(frozen=True)
class ComparableProperty:
    id: str
    address: str
    city: str
    state: str
    zip_code: str

    price: int
    price_per_sqft: int
    price_source: PriceSource

    bedrooms: int
    bathrooms: float
    square_footage: int
    year_built: int
    property_type: PropertyType

    sold_date: date | None = None
    days_on_market: int = 0
    distance: float = 0.0
    similarity: float = 85.0

    insights: dict[str, Any] | None = None
    defaulted_fields: tuple[str, ...] = ()

    @property
    def is_sold(self) -> bool:
        return self.sold_date is not None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["price_source"] = self.price_source.value
        d["property_type"] = self.property_type.value
        d["sold_date"] = self.sold_date.isoformat() if self.sold_date else None
        d["defaulted_fields"] = list(self.defaulted_fields)
        d["is_sold"] = self.is_sold
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ComparableProperty":
        sold = d.get("sold_date")
        return cls(
            id=str(d["id"]),
            address=d["address"],
            city=d.get("city", ""),
            state=d.get("state", ""),
            zip_code=d.get("zip_code", ""),
            price=int(d["price"]),
            price_per_sqft=int(d.get("price_per_sqft", 0)),
            price_source=PriceSource(d.get("price_source", PriceSource.valuation.value)),
            bedrooms=int(d.get("bedrooms", 0)),
            bathrooms=float(d.get("bathrooms", 0.0)),
            square_footage=int(d.get("square_footage", 0)),
            year_built=int(d.get("year_built", 0)),
            property_type=PropertyType(d.get("property_type", PropertyType.unknown.value)),
            sold_date=date.fromisoformat(sold) if sold else None,
            days_on_market=int(d.get("days_on_market", 0)),
            distance=float(d.get("distance", 0.0)),
            similarity=float(d.get("similarity", 85.0)),
            insights=d.get("insights"),
            defaulted_fields=tuple(d.get("defaulted_fields") or ()),
        )


@dataclass(frozen=True)
class PriceRange:
    min: int = 0
    max: int = 0


@dataclass(frozen=True)
class ComparableSetStatistics:
    average_price: int = 0
    average_price_per_sqft: int = 0
    median_price: int = 0
    price_range: PriceRange = field(default_factory=PriceRange)
    inventory_level: InventoryLevel = InventoryLevel.low
    average_days_on_market: int = 0
    count: int = 0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["inventory_level"] = self.inventory_level.value
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ComparableSetStatistics":
        pr = d.get("price_range") or {}
        return cls(
            average_price=int(d.get("average_price", 0)),
            average_price_per_sqft=int(d.get("average_price_per_sqft", 0)),
            median_price=int(d.get("median_price", 0)),
            price_range=PriceRange(min=int(pr.get("min", 0)), max=int(pr.get("max", 0))),
            inventory_level=InventoryLevel(d.get("inventory_level", InventoryLevel.low.value)),
            average_days_on_market=int(d.get("average_days_on_market", 0)),
            count=int(d.get("count", 0)),
        )


@dataclass(frozen=True)
class ComparableFilters:
    """Caller-facing filters for a comparables lookup."""
    bedrooms: int | None = None
    bathrooms: float | None = None
    square_footage: int | None = None
    radius_miles: float = 0.5
    property_type: str | None = None
    # Used for self-exclusion and address-based search strategies; not part of the cache key.
    subject_address: str | None = None


@dataclass(frozen=True)
class CacheKey:
    property_id: str
    zip_code: str
    bedrooms: int | None
    bathrooms: float | None
    square_footage: int | None
    radius: float
    property_type: str | None

    @classmethod
    def build(cls, property_id: str, zip_code: str, filters: ComparableFilters) -> "CacheKey":
        from .normalize import canonical_filter_type

        return cls(
            property_id=str(property_id).strip(),
            zip_code=str(zip_code).strip(),
            bedrooms=filters.bedrooms,
            bathrooms=filters.bathrooms,
            square_footage=filters.square_footage,
            radius=float(filters.radius_miles),
            property_type=canonical_filter_type(filters.property_type),
        )

    def digest(self) -> str:
        """
        Stable identity of the key. NULL-able parts stay distinct from zero
        (None serializes as null), so an unset filter never collides with 0.
        """
        blob = json.dumps(
            [
                self.property_id,
                self.zip_code,
                None if self.bedrooms is None else int(self.bedrooms),
                None if self.bathrooms is None else float(self.bathrooms),
                None if self.square_footage is None else int(self.square_footage),
                float(self.radius),
                self.property_type,
            ],
            separators=(",", ":"),
        )
        return hashlib.sha256(blob.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheInfo:
    from_cache: bool
    age_hours: int
    access_count: int
    is_stale: bool = False


@dataclass(frozen=True)
class ComparablesResult:
    comparables: list[ComparableProperty]
    statistics: ComparableSetStatistics
    cache_info: CacheInfo
    strategy: str | None = None
    note: str | None = None
