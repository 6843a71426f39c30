"""
APScheduler wiring for the feed poller.

A single interval job calls ``PollingDriver.tick``; ``max_instances=1`` and
``coalesce=True`` keep cycles strictly sequential. The first cycle runs as
soon as the scheduler starts.

Used by ``python -m gator agg <interval>`` and by the FastAPI lifespan.
"""

import asyncio
import contextlib
import signal
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from gator.context import AppContext
from gator.fetchers.base import BaseFeedFetcher
from gator.fetchers.rss import RSSFeedFetcher
from gator.pipeline import CycleResult, FetchScheduler
from gator.store import FeedStore
from gator.utils.logging import get_logger

logger = get_logger(__name__)

JOB_ID = "poll_feeds"


class PollingDriver:
    """Runs cycles one at a time and lets the in-flight one finish on shutdown."""

    def __init__(self, scheduler: FetchScheduler):
        self.scheduler = scheduler
        self.cycles = 0
        self._inflight: asyncio.Future | None = None

    async def tick(self) -> CycleResult:
        self._inflight = asyncio.ensure_future(self.scheduler.run_one_cycle())
        # Shielded: cancelling the job must not interrupt a partial ingestion.
        result = await asyncio.shield(self._inflight)
        self.cycles += 1

        if result.ok:
            logger.info("cycle_complete", **result.as_log_fields())
        else:
            logger.warning("cycle_failed", **result.as_log_fields())
        return result

    async def drain(self) -> None:
        """Wait for the cycle in flight, if any."""
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            logger.info("waiting_for_inflight_cycle")
            await asyncio.wait([inflight])


def build_driver(ctx: AppContext, fetcher: BaseFeedFetcher | None = None) -> PollingDriver:
    store = FeedStore(ctx)
    fetcher = fetcher or RSSFeedFetcher(
        timeout=ctx.settings.fetch_timeout,
        user_agent=ctx.settings.fetch_user_agent,
    )
    return PollingDriver(FetchScheduler(store, fetcher))


def create_scheduler(driver: PollingDriver, interval: timedelta) -> AsyncIOScheduler:
    """Create and configure the APScheduler instance (not yet started)."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        driver.tick,
        "interval",
        seconds=interval.total_seconds(),
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=None,
        next_run_time=datetime.now(timezone.utc),
    )
    return scheduler


async def shutdown(scheduler: AsyncIOScheduler, driver: PollingDriver) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await driver.drain()
    logger.info("scheduler_stopped", cycles=driver.cycles)


async def run_forever(
    ctx: AppContext,
    interval: timedelta,
    stop: asyncio.Event | None = None,
    fetcher: BaseFeedFetcher | None = None,
) -> int:
    """
    Poll feeds every ``interval`` until SIGINT/SIGTERM or ``stop`` is set.

    Returns the number of cycles that ran.
    """
    stop = stop or asyncio.Event()
    driver = build_driver(ctx, fetcher)
    scheduler = create_scheduler(driver, interval)

    loop = asyncio.get_running_loop()
    handled: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop.set)
            handled.append(sig)

    scheduler.start()
    logger.info("scheduler_started", interval_seconds=interval.total_seconds())
    try:
        await stop.wait()
    finally:
        await shutdown(scheduler, driver)
        for sig in handled:
            loop.remove_signal_handler(sig)

    return driver.cycles
