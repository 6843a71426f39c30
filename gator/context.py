"""
Application context: the one database engine the process holds.

Created once at startup, passed explicitly to the store, closed on shutdown:

    async with AppContext.from_settings() as ctx:
        store = FeedStore(ctx)
        ...
"""

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from gator.config import Settings, settings as default_settings
from gator.db.models import Base
from gator.utils.logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build an async engine; SQLite gets foreign keys and, in memory, a single shared connection."""
    url = make_url(database_url)
    kwargs: dict = {"echo": echo}

    if url.get_backend_name() == "sqlite":
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_async_engine(url, **kwargs)

    if url.get_backend_name() == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class AppContext:
    """Holds the settings and database engine for the lifetime of the process."""

    def __init__(self, settings: Settings, engine: AsyncEngine):
        self.settings = settings
        self.engine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "AppContext":
        settings = settings or default_settings
        engine = create_engine_for(settings.database_url, echo=settings.log_level.lower() == "debug")
        logger.debug("app_context_created", backend=engine.dialect.name)
        return cls(settings, engine)

    async def create_schema(self) -> None:
        """Create tables that don't exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._closed:
            return
        await self.engine.dispose()
        self._closed = True
        logger.debug("app_context_closed")

    async def __aenter__(self) -> "AppContext":
        await self.create_schema()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
