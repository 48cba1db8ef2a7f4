from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from compsengine.adapters.repos.comparables_cache import CachePolicy, ComparablesCacheRepository, serialize_set
from compsengine.domain.normalize import normalize_many
from compsengine.domain.statistics import summarize
from compsengine.domain.types import CacheKey, ComparableFilters
from compsengine.models import ComparableSale

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _key(**filters) -> CacheKey:
    return CacheKey.build("prop-1", "62701", ComparableFilters(**filters))


def _set(raw_candidate):
    comps = normalize_many([raw_candidate("1 Elm St"), raw_candidate("2 Elm St", price=480_000)])
    return comps, summarize(comps)


async def test_round_trip_bumps_access_count_and_keeps_blob(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    key = _key(bedrooms=3)

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        written = await repo.put(key, comps, stats, cost=0.46, strategy="zip_fallback", now=NOW)
        await session.commit()

    assert written.access_count == 1
    assert written.expires_at == NOW + timedelta(days=30)
    assert written.comparables_data == serialize_set(comps, stats)

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        hit = await repo.get(key, now=NOW + timedelta(hours=5))
        await session.commit()

    assert hit is not None
    assert hit.access_count == 2
    assert hit.comparables_data == written.comparables_data
    assert hit.age_hours(NOW + timedelta(hours=5)) == 5
    assert hit.strategy == "zip_fallback"

    got_comps, got_stats = hit.decode()
    assert got_comps == comps
    assert got_stats == stats


async def test_expired_entry_is_a_miss_and_is_swept(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    key = _key()

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session, CachePolicy(ttl_days=30))
        await repo.put(key, comps, stats, cost=0.46, now=NOW)
        await session.commit()

    later = NOW + timedelta(days=31)
    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        assert await repo.get(key, now=later) is None
        assert await repo.sweep_expired(now=NOW + timedelta(days=1)) == 0
        assert await repo.sweep_expired(now=later) == 1
        await session.commit()

    async with async_session_maker() as session:
        count = (await session.execute(select(func.count()).select_from(ComparableSale))).scalar_one()
    assert count == 0


async def test_null_and_zero_filters_do_not_collide(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        await repo.put(_key(bedrooms=0), comps[:1], stats, cost=0.46, now=NOW)
        await session.commit()

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        assert await repo.get(_key(), now=NOW) is None
        hit = await repo.get(_key(bedrooms=0), now=NOW)
        assert hit is not None and hit.comparable_count == 1


async def test_property_type_is_canonical_in_key(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        await repo.put(_key(property_type="SFR"), comps, stats, cost=0.46, now=NOW)
        await session.commit()
        assert await repo.get(_key(property_type="single family"), now=NOW) is not None


async def test_put_replaces_identical_key(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    key = _key(radius_miles=1.0)

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        await repo.put(key, comps, stats, cost=0.46, now=NOW)
        await session.commit()
        await repo.put(key, comps[:1], summarize(comps[:1]), cost=0.92, now=NOW + timedelta(hours=1))
        await session.commit()

        rows = (await session.execute(select(ComparableSale))).scalars().all()
        assert len(rows) == 1
        assert rows[0].comparable_count == 1
        assert rows[0].api_cost_charged == 0.92


async def test_invalidate_removes_all_filter_variants(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        await repo.put(_key(), comps, stats, cost=0.46, now=NOW)
        await repo.put(_key(bedrooms=4), comps, stats, cost=0.46, now=NOW)
        await repo.put(CacheKey.build("prop-2", "62701", ComparableFilters()), comps, stats, cost=0.46, now=NOW)
        await session.commit()

        assert await repo.invalidate("prop-1", "62701") == 2
        await session.commit()
        assert len(await repo.find("prop-2", "62701")) == 1


async def test_stats_and_recommendations(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        await repo.put(_key(), comps, stats, cost=0.46, now=NOW)
        await session.commit()
        for _ in range(3):
            await repo.get(_key(), now=NOW)
        await session.commit()

        s = await repo.stats(cost_per_search=0.46)

    assert s.total_entries == 1
    assert s.total_access_count == 4
    assert s.potential_api_cost == 1.84
    assert s.total_savings == 1.38
    assert s.savings_percentage == 75.0
    assert s.cache_hit_ratio == 75.0
    assert s.recommendations() == []


async def test_empty_store_stats(async_session_maker):
    async with async_session_maker() as session:
        s = await ComparablesCacheRepository(session).stats()
    assert s.total_entries == 0
    assert s.savings_percentage == 0.0
    assert s.recommendations() == []


async def test_each_hit_returns_its_own_increment(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    key = _key(bedrooms=3)

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        await repo.put(key, comps, stats, cost=0.46, now=NOW)
        await session.commit()

    async with async_session_maker() as session:
        repo = ComparablesCacheRepository(session)
        counts = [(await repo.get(key, now=NOW)).access_count for _ in range(3)]
        await session.commit()

    assert counts == [2, 3, 4]


def test_key_digest_ignores_numeric_spelling_but_not_null():
    assert _key(bathrooms=2).digest() == _key(bathrooms=2.0).digest()
    assert _key(bedrooms=0).digest() != _key().digest()
    assert _key(radius_miles=1).digest() != _key(radius_miles=0.5).digest()


async def test_duplicate_key_row_is_rejected(async_session_maker, raw_candidate):
    comps, stats = _set(raw_candidate)
    key = _key(bedrooms=3)

    async with async_session_maker() as session:
        await ComparablesCacheRepository(session).put(key, comps, stats, cost=0.46, now=NOW)
        await session.commit()

    async with async_session_maker() as session:
        session.add(
            ComparableSale(
                property_id="prop-1",
                zip_code="62701",
                bedrooms=3,
                key_digest=key.digest(),
                comparables_data="{}",
                expires_at=NOW + timedelta(days=30),
            )
        )
        with pytest.raises(IntegrityError):
            await session.flush()
