from contextlib import asynccontextmanager

from fastapi import FastAPI

from gator.config import settings
from gator.context import AppContext
from gator.intervals import parse_interval
from gator.store import FeedStore
from gator.utils.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx = AppContext.from_settings(settings)
    await ctx.create_schema()
    app.state.ctx = ctx

    # Only poll in non-test environments
    scheduler = driver = None
    if settings.app_env != "test":
        from gator.scheduler import build_driver, create_scheduler

        driver = build_driver(ctx)
        scheduler = create_scheduler(driver, parse_interval(settings.poll_interval))
        scheduler.start()
        logger.info("scheduler_started", interval=settings.poll_interval)

    yield

    if scheduler is not None:
        from gator.scheduler import shutdown

        await shutdown(scheduler, driver)
    await ctx.close()


app = FastAPI(
    title="gator",
    description="RSS aggregator: polls followed feeds and stores new posts.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health", tags=["Health"])
async def health():
    """Liveness plus a glance at the poll queue."""
    store = FeedStore(app.state.ctx)
    next_feed = await store.next_feed_to_fetch()
    return {
        "status": "ok",
        "service": "gator",
        "environment": settings.app_env,
        "posts": await store.count_posts(),
        "next_feed": next_feed.url if next_feed else None,
    }
