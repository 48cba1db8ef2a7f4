from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from .domain.types import ComparableFilters, ComparablesResult


class ComparablesRequest(BaseModel):
    property_id: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=3, max_length=10)

    bedrooms: int | None = Field(None, ge=0)
    bathrooms: float | None = Field(None, ge=0)
    square_footage: int | None = Field(None, ge=0)
    radius_miles: float | None = Field(None, gt=0)
    property_type: str | None = None
    subject_address: str | None = None

    prefer_fresh: bool = False

    def to_filters(self, default_radius: float) -> ComparableFilters:
        return ComparableFilters(
            bedrooms=self.bedrooms,
            bathrooms=self.bathrooms,
            square_footage=self.square_footage,
            radius_miles=self.radius_miles if self.radius_miles is not None else default_radius,
            property_type=self.property_type,
            subject_address=self.subject_address,
        )


class ComparableOut(BaseModel):
    id: str
    address: str
    city: str
    state: str
    zip_code: str
    price: int
    price_per_sqft: int
    price_source: str
    bedrooms: int
    bathrooms: float
    square_footage: int
    year_built: int
    property_type: str
    sold_date: date | None = None
    is_sold: bool
    days_on_market: int
    distance: float
    similarity: float
    insights: dict[str, Any] | None = None
    defaulted_fields: list[str] = []


class PriceRangeOut(BaseModel):
    min: int
    max: int


class StatisticsOut(BaseModel):
    average_price: int
    average_price_per_sqft: int
    median_price: int
    price_range: PriceRangeOut
    inventory_level: str
    average_days_on_market: int
    count: int


class CacheInfoOut(BaseModel):
    from_cache: bool
    age_hours: int
    access_count: int
    is_stale: bool


class ComparablesResponse(BaseModel):
    comparables: list[ComparableOut]
    statistics: StatisticsOut
    cache_info: CacheInfoOut
    strategy: str | None = None
    note: str | None = None

    @classmethod
    def from_result(cls, r: ComparablesResult) -> "ComparablesResponse":
        return cls(
            comparables=[ComparableOut(**c.to_dict()) for c in r.comparables],
            statistics=StatisticsOut(**r.statistics.to_dict()),
            cache_info=CacheInfoOut(
                from_cache=r.cache_info.from_cache,
                age_hours=r.cache_info.age_hours,
                access_count=r.cache_info.access_count,
                is_stale=r.cache_info.is_stale,
            ),
            strategy=r.strategy,
            note=r.note,
        )


class CacheStatsOut(BaseModel):
    total_entries: int
    total_api_cost_paid: float
    total_access_count: int
    avg_access_per_entry: float
    potential_api_cost: float
    total_savings: float
    savings_percentage: float
    cache_hit_ratio: float


class CacheReport(BaseModel):
    stats: CacheStatsOut
    recommendations: list[str]


class CacheMutationResult(BaseModel):
    deleted: int = Field(..., ge=0)
