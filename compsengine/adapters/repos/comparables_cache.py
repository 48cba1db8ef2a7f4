# compsengine/adapters/repos/comparables_cache.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.errors import CacheStoreError
from ...domain.types import CacheKey, ComparableProperty, ComparableSetStatistics
from ...models import ComparableSale

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_aware_utc(dt: datetime) -> datetime:
    """
    SQLite + SQLAlchemy hands back naive datetimes even for timezone=True columns.
    If naive, assume it's UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class CachePolicy:
    ttl_days: int = 30
    stale_days: int = 7
    data_source: str = "batchdata"

    @classmethod
    def from_settings(cls) -> "CachePolicy":
        from ...config import settings

        return cls(ttl_days=settings.CACHE_TTL_DAYS, stale_days=settings.CACHE_STALE_DAYS)


@dataclass(frozen=True)
class CacheEntry:
    id: int
    key: CacheKey
    comparables_data: str  # exact blob written by put()
    comparable_count: int
    created_at: datetime
    last_accessed_at: datetime
    access_count: int
    expires_at: datetime
    api_cost_charged: float
    note: str | None = None
    strategy: str | None = None

    def decode(self) -> tuple[list[ComparableProperty], ComparableSetStatistics]:
        doc = json.loads(self.comparables_data)
        comps = [ComparableProperty.from_dict(d) for d in doc.get("comparables") or []]
        stats = ComparableSetStatistics.from_dict(doc.get("stats") or {})
        return comps, stats

    def age_hours(self, now: datetime | None = None) -> int:
        now = now or _utcnow()
        return max(0, int((now - self.created_at).total_seconds() // 3600))

    def is_stale(self, stale_days: int, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        return self.created_at < now - timedelta(days=stale_days)


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    total_api_cost_paid: float
    total_access_count: int
    avg_access_per_entry: float
    potential_api_cost: float
    total_savings: float
    savings_percentage: float
    cache_hit_ratio: float

    def recommendations(self) -> list[str]:
        out: list[str] = []
        if self.total_entries and self.avg_access_per_entry < 2:
            out.append("Consider increasing cache expiry to improve efficiency")
        if self.potential_api_cost and self.savings_percentage < 50:
            out.append("Cache is saving less than 50% - consider optimization")
        if self.total_entries > 1000:
            out.append("Consider a more frequent expired-entry sweep")
        return out


def serialize_set(comparables: Sequence[ComparableProperty], statistics: ComparableSetStatistics) -> str:
    doc = {"comparables": [c.to_dict() for c in comparables], "stats": statistics.to_dict()}
    return json.dumps(doc, sort_keys=True, separators=(",", ":"))


def _to_entry(row: ComparableSale) -> CacheEntry:
    return CacheEntry(
        id=row.id,
        key=CacheKey(
            property_id=row.property_id,
            zip_code=row.zip_code,
            bedrooms=row.bedrooms,
            bathrooms=row.bathrooms,
            square_footage=row.square_footage,
            radius=row.radius,
            property_type=row.property_type,
        ),
        comparables_data=row.comparables_data,
        comparable_count=row.comparable_count,
        created_at=_ensure_aware_utc(row.created_at),
        last_accessed_at=_ensure_aware_utc(row.last_accessed_at),
        access_count=row.access_count,
        expires_at=_ensure_aware_utc(row.expires_at),
        api_cost_charged=row.api_cost_charged,
        note=row.note,
        strategy=row.strategy,
    )


class ComparablesCacheRepository:
    """
    Durable comparable-set cache. The caller owns the transaction (commit).
    All SQLAlchemy failures surface as CacheStoreError.
    """

    def __init__(self, session: AsyncSession, policy: CachePolicy | None = None) -> None:
        self.session = session
        self.policy = policy or CachePolicy()

    async def get(self, key: CacheKey, *, now: datetime | None = None) -> CacheEntry | None:
        """
        Hit only if expires_at > now. A hit bumps access_count and
        last_accessed_at in one UPDATE ... RETURNING, so the returned count is
        exactly this caller's increment.
        """
        now = now or _utcnow()
        try:
            stmt = (
                update(ComparableSale)
                .where(ComparableSale.key_digest == key.digest())
                .where(ComparableSale.expires_at > now)
                .values(access_count=ComparableSale.access_count + 1, last_accessed_at=now)
                .returning(ComparableSale)
                .execution_options(synchronize_session=False, populate_existing=True)
            )
            row = (await self.session.execute(stmt)).scalar_one_or_none()
            if row is None:
                log.debug("comparables cache miss: %s", key)
                return None
            entry = _to_entry(row)
        except SQLAlchemyError as e:
            raise CacheStoreError(f"cache read failed: {e}") from e

        log.debug("comparables cache hit: %s (access_count=%d)", key, entry.access_count)
        return entry

    async def put(
        self,
        key: CacheKey,
        comparables: Sequence[ComparableProperty],
        statistics: ComparableSetStatistics,
        cost: float,
        *,
        note: str | None = None,
        strategy: str | None = None,
        now: datetime | None = None,
    ) -> CacheEntry:
        """
        Insert-or-replace for the exact key; expires_at = now + TTL.
        A racing writer that inserted the same key first wins; the loser
        surfaces as CacheStoreError (unique key_digest).
        """
        now = now or _utcnow()
        blob = serialize_set(comparables, statistics)
        digest = key.digest()
        try:
            await self.session.execute(
                delete(ComparableSale)
                .where(ComparableSale.key_digest == digest)
                .execution_options(synchronize_session="fetch")
            )
            row = ComparableSale(
                key_digest=digest,
                property_id=key.property_id,
                zip_code=key.zip_code,
                bedrooms=key.bedrooms,
                bathrooms=key.bathrooms,
                square_footage=key.square_footage,
                radius=key.radius,
                property_type=key.property_type,
                comparables_data=blob,
                comparable_count=len(comparables),
                avg_sale_price=float(statistics.average_price),
                avg_price_per_sqft=float(statistics.average_price_per_sqft),
                avg_days_on_market=int(statistics.average_days_on_market),
                inventory_level=statistics.inventory_level.value,
                data_source=self.policy.data_source,
                strategy=strategy,
                note=note,
                created_at=now,
                updated_at=now,
                last_accessed_at=now,
                access_count=1,
                expires_at=now + timedelta(days=self.policy.ttl_days),
                api_cost_charged=float(cost),
            )
            self.session.add(row)
            await self.session.flush()
            entry = _to_entry(row)
        except SQLAlchemyError as e:
            raise CacheStoreError(f"cache write failed: {e}") from e

        log.debug("cached %d comparables for %s (expires %s)", len(comparables), key.zip_code, entry.expires_at.date())
        return entry

    async def invalidate(self, property_id: str, zip_code: str) -> int:
        """Delete every entry for the property/zip regardless of expiry."""
        try:
            res = await self.session.execute(
                delete(ComparableSale)
                .where(ComparableSale.property_id == str(property_id))
                .where(ComparableSale.zip_code == str(zip_code))
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            raise CacheStoreError(f"cache invalidate failed: {e}") from e
        return int(res.rowcount or 0)

    async def sweep_expired(self, *, now: datetime | None = None) -> int:
        now = now or _utcnow()
        try:
            res = await self.session.execute(
                delete(ComparableSale)
                .where(ComparableSale.expires_at < now)
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            raise CacheStoreError(f"cache sweep failed: {e}") from e
        n = int(res.rowcount or 0)
        log.info("swept %d expired comparable cache entries", n)
        return n

    async def stats(self, *, cost_per_search: float = 0.46) -> CacheStats:
        try:
            row = (
                await self.session.execute(
                    select(
                        func.count(ComparableSale.id),
                        func.coalesce(func.sum(ComparableSale.api_cost_charged), 0.0),
                        func.coalesce(func.sum(ComparableSale.access_count), 0),
                        func.coalesce(func.avg(ComparableSale.access_count), 0.0),
                    )
                )
            ).one()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"cache stats failed: {e}") from e

        entries, cost_paid, accesses, avg_access = int(row[0]), float(row[1]), int(row[2]), float(row[3])
        potential = accesses * cost_per_search
        savings = potential - cost_paid
        return CacheStats(
            total_entries=entries,
            total_api_cost_paid=round(cost_paid, 2),
            total_access_count=accesses,
            avg_access_per_entry=round(avg_access, 2),
            potential_api_cost=round(potential, 2),
            total_savings=round(savings, 2),
            savings_percentage=round((savings / potential) * 100, 2) if potential > 0 else 0.0,
            cache_hit_ratio=round(((accesses - entries) / accesses) * 100, 2) if accesses > 0 else 0.0,
        )

    async def find(self, property_id: str, zip_code: str) -> list[dict[str, Any]]:
        """Admin listing of entries for one property (no access bump)."""
        try:
            rows = (
                await self.session.execute(
                    select(ComparableSale)
                    .where(ComparableSale.property_id == str(property_id))
                    .where(ComparableSale.zip_code == str(zip_code))
                    .order_by(ComparableSale.last_accessed_at.desc())
                )
            ).scalars().all()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"cache lookup failed: {e}") from e
        return [
            {
                "id": r.id,
                "bedrooms": r.bedrooms,
                "bathrooms": r.bathrooms,
                "square_footage": r.square_footage,
                "radius": r.radius,
                "property_type": r.property_type,
                "comparable_count": r.comparable_count,
                "access_count": r.access_count,
                "created_at": _ensure_aware_utc(r.created_at).isoformat(),
                "expires_at": _ensure_aware_utc(r.expires_at).isoformat(),
                "note": r.note,
            }
            for r in rows
        ]
