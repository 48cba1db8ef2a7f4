# compsengine/service_layer/comparables.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters.clients.batchdata import BatchDataClient, build_search_strategies
from ..adapters.repos.comparables_cache import CacheEntry, CachePolicy, ComparablesCacheRepository
from ..domain.errors import NO_CANDIDATES_NOTE, CacheStoreError, UpstreamUnavailable
from ..domain.filtering import FilterCriteria, FilterReport, filter_candidates
from ..domain.normalize import normalize_many
from ..domain.statistics import INVENTORY_LOW_MAX, INVENTORY_MEDIUM_MAX, summarize
from ..domain.types import CacheInfo, CacheKey, ComparableFilters, ComparablesResult

log = logging.getLogger(__name__)


@dataclass
class ComparablesStats:
    """
    Per-call counters (also folded into the process-global ones).
    """
    hits: int = 0
    misses: int = 0
    fetch_success: int = 0
    fetch_empty: int = 0
    fetch_unavailable: int = 0
    cache_degraded: int = 0

    def snapshot(self) -> dict[str, int]:
        return asdict(self)


# Global counters for debug endpoint (process-lifetime, not persisted)
_GLOBAL = {
    "hits": 0,
    "misses": 0,
    "fetch_success": 0,
    "fetch_empty": 0,
    "fetch_unavailable": 0,
    "cache_degraded": 0,
}


def snapshot_global_stats() -> dict[str, int]:
    return dict(_GLOBAL)


def reset_global_stats() -> None:
    for k in list(_GLOBAL.keys()):
        _GLOBAL[k] = 0


def _count(stats: ComparablesStats | None, name: str) -> None:
    _GLOBAL[name] += 1
    if stats is not None:
        setattr(stats, name, getattr(stats, name) + 1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServicePolicy:
    request_timeout_s: float = 45.0
    default_radius_miles: float = 0.5
    inventory_low_max: int = INVENTORY_LOW_MAX
    inventory_medium_max: int = INVENTORY_MEDIUM_MAX

    @classmethod
    def from_settings(cls) -> "ServicePolicy":
        from ..config import settings

        return cls(
            request_timeout_s=settings.COMPS_REQUEST_TIMEOUT_S,
            default_radius_miles=settings.COMPS_DEFAULT_RADIUS_MILES,
            inventory_low_max=settings.COMPS_INVENTORY_LOW_MAX,
            inventory_medium_max=settings.COMPS_INVENTORY_MEDIUM_MAX,
        )


class ComparablesService:
    """
    Cache-first comparables lookup.

    hit   -> decoded cached set (access count bumped by the store)
    miss  -> search upstream, normalize, filter, summarize, cache, return
    Upstream unavailability raises UpstreamUnavailable and writes nothing.
    A failing cache store degrades to fresh data instead of failing the call.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: BatchDataClient,
        *,
        criteria: FilterCriteria | None = None,
        cache_policy: CachePolicy | None = None,
        policy: ServicePolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.client = client
        self.criteria = criteria or FilterCriteria()
        self.cache_policy = cache_policy or CachePolicy()
        self.policy = policy or ServicePolicy()
        self.clock = clock

    @classmethod
    def from_settings(cls, session_factory: async_sessionmaker[AsyncSession]) -> "ComparablesService":
        return cls(
            session_factory,
            BatchDataClient.from_settings(),
            criteria=FilterCriteria.from_settings(),
            cache_policy=CachePolicy.from_settings(),
            policy=ServicePolicy.from_settings(),
        )

    # -----------------------------
    # Cache access (degrades on CacheStoreError)
    # -----------------------------
    async def _cache_get(self, key: CacheKey, now: datetime, stats: ComparablesStats | None) -> CacheEntry | None:
        try:
            async with self.session_factory() as session:
                entry = await ComparablesCacheRepository(session, self.cache_policy).get(key, now=now)
                await session.commit()
                return entry
        except (CacheStoreError, SQLAlchemyError) as e:
            log.warning("comparables cache read degraded for %s/%s: %s", key.property_id, key.zip_code, e)
            _count(stats, "cache_degraded")
            return None

    async def _cache_put(self, key: CacheKey, result: ComparablesResult, cost: float, now: datetime, stats: ComparablesStats | None) -> None:
        try:
            async with self.session_factory() as session:
                await ComparablesCacheRepository(session, self.cache_policy).put(
                    key,
                    result.comparables,
                    result.statistics,
                    cost,
                    note=result.note,
                    strategy=result.strategy,
                    now=now,
                )
                await session.commit()
        except (CacheStoreError, SQLAlchemyError) as e:
            log.warning("comparables cache write degraded for %s/%s: %s", key.property_id, key.zip_code, e)
            _count(stats, "cache_degraded")

    def _from_entry(self, entry: CacheEntry, now: datetime) -> ComparablesResult:
        comps, statistics = entry.decode()
        return ComparablesResult(
            comparables=comps,
            statistics=statistics,
            cache_info=CacheInfo(
                from_cache=True,
                age_hours=entry.age_hours(now),
                access_count=entry.access_count,
                is_stale=entry.is_stale(self.cache_policy.stale_days, now),
            ),
            strategy=entry.strategy,
            note=entry.note,
        )

    # -----------------------------
    # Upstream fetch
    # -----------------------------
    async def _fetch(
        self,
        zip_code: str,
        filters: ComparableFilters,
        now: datetime,
        stats: ComparablesStats | None,
    ) -> tuple[ComparablesResult, float]:
        today = now.date()
        strategies = build_search_strategies(zip_code, filters, self.client.config, today=today)

        try:
            outcome = await asyncio.wait_for(
                self.client.search(strategies),
                timeout=self.policy.request_timeout_s,
            )
        except asyncio.TimeoutError as e:
            _count(stats, "fetch_unavailable")
            log.warning("comparables upstream timed out after %.1fs for zip %s", self.policy.request_timeout_s, zip_code)
            raise UpstreamUnavailable(f"upstream search timed out after {self.policy.request_timeout_s}s") from e

        if outcome.unavailable:
            _count(stats, "fetch_unavailable")
            log.warning("comparables upstream unavailable for zip %s: %s", zip_code, outcome.attempts_snapshot())
            raise UpstreamUnavailable("upstream comparables search unavailable", attempts=outcome.attempts_snapshot())

        normalized = normalize_many(outcome.candidates, filters.subject_address)
        criteria = replace(
            self.criteria,
            target_bedrooms=filters.bedrooms,
            target_bathrooms=filters.bathrooms,
            property_type=filters.property_type,
        )
        report = FilterReport()
        kept = filter_candidates(normalized, filters.subject_address, criteria, today=today, report=report)
        statistics = summarize(
            kept,
            low_max=self.policy.inventory_low_max,
            medium_max=self.policy.inventory_medium_max,
        )

        note = None
        if kept:
            _count(stats, "fetch_success")
        else:
            _count(stats, "fetch_empty")
            note = NO_CANDIDATES_NOTE
            log.info(
                "no comparables for zip %s after %d attempt(s); filter=%s",
                zip_code,
                len(outcome.attempts),
                report.snapshot(),
            )

        result = ComparablesResult(
            comparables=kept,
            statistics=statistics,
            cache_info=CacheInfo(from_cache=False, age_hours=0, access_count=1, is_stale=False),
            strategy=outcome.strategy,
            note=note,
        )
        cost = round(outcome.billed_calls * self.client.config.cost_per_search, 2)
        return result, cost

    # -----------------------------
    # Public operations
    # -----------------------------
    def _filters(self, filters: ComparableFilters | None) -> ComparableFilters:
        if filters is None:
            return ComparableFilters(radius_miles=self.policy.default_radius_miles)
        return filters

    async def get_comparables(
        self,
        property_id: str,
        zip_code: str,
        filters: ComparableFilters | None = None,
        *,
        force_refresh: bool = False,
        prefer_fresh: bool = False,
        stats: ComparablesStats | None = None,
    ) -> ComparablesResult:
        filters = self._filters(filters)
        key = CacheKey.build(property_id, zip_code, filters)
        now = self.clock()

        if not force_refresh:
            entry = await self._cache_get(key, now, stats)
            if entry is not None:
                if prefer_fresh and entry.is_stale(self.cache_policy.stale_days, now):
                    log.info("stale comparables for %s/%s; re-fetching", key.property_id, key.zip_code)
                else:
                    _count(stats, "hits")
                    return self._from_entry(entry, now)

        _count(stats, "misses")
        result, cost = await self._fetch(key.zip_code, filters, now, stats)
        await self._cache_put(key, result, cost, now, stats)
        return result

    async def refresh(
        self,
        property_id: str,
        zip_code: str,
        filters: ComparableFilters | None = None,
        *,
        stats: ComparablesStats | None = None,
    ) -> ComparablesResult:
        """Drop every cached set for the property, then fetch fresh."""
        try:
            removed = await self.invalidate(property_id, zip_code)
            log.info("refresh %s/%s: invalidated %d cached set(s)", property_id, zip_code, removed)
        except (CacheStoreError, SQLAlchemyError) as e:
            log.warning("comparables cache invalidate degraded for %s/%s: %s", property_id, zip_code, e)
            _count(stats, "cache_degraded")
        return await self.get_comparables(property_id, zip_code, filters, force_refresh=True, stats=stats)

    async def invalidate(self, property_id: str, zip_code: str) -> int:
        async with self.session_factory() as session:
            n = await ComparablesCacheRepository(session, self.cache_policy).invalidate(property_id, zip_code)
            await session.commit()
        return n

    async def sweep_expired(self) -> int:
        async with self.session_factory() as session:
            n = await ComparablesCacheRepository(session, self.cache_policy).sweep_expired(now=self.clock())
            await session.commit()
        return n

    async def cache_report(self) -> dict[str, Any]:
        async with self.session_factory() as session:
            s = await ComparablesCacheRepository(session, self.cache_policy).stats(
                cost_per_search=self.client.config.cost_per_search
            )
        return {"stats": asdict(s), "recommendations": s.recommendations()}

    async def entries(self, property_id: str, zip_code: str) -> list[dict[str, Any]]:
        async with self.session_factory() as session:
            return await ComparablesCacheRepository(session, self.cache_policy).find(property_id, zip_code)
