# compsengine/jobs/scheduler.py
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters.repos.comparables_cache import CachePolicy, ComparablesCacheRepository
from ..config import settings
from ..db import AsyncSessionLocal

log = logging.getLogger(__name__)

SWEEP_JOB_ID = "sweep_expired_cache"


async def sweep_expired_cache(session_factory: async_sessionmaker[AsyncSession] | None = None) -> int:
    """
    Reap expired comparable sets. Quiet when there is nothing to do.
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        n = await ComparablesCacheRepository(session, CachePolicy.from_settings()).sweep_expired()
        await session.commit()
    return n


def build_scheduler(session_factory: async_sessionmaker[AsyncSession] | None = None) -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    # coroutine job, awaited on the loop; cadence default: daily
    sched.add_job(
        sweep_expired_cache,
        "interval",
        minutes=settings.SCHED_SWEEP_INTERVAL_MINUTES,
        kwargs={"session_factory": session_factory},
        id=SWEEP_JOB_ID,
        replace_existing=True,
    )

    return sched
