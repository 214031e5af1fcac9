import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from flightlog.core.config import config
from flightlog.database.models import Base

logger = logging.getLogger("database")


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url)


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


class FlightDatabase:
    """
    Async SQLAlchemy engine plus session factory for the flight store.

    Writes for one user must go through ``user_lock`` so that the
    check-then-insert sequence of reconciliation never interleaves.
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or config.DATABASE_URL
        self.engine: AsyncEngine = self._create_engine(echo)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        # Entries vanish once no coroutine holds or waits on the lock
        self._user_locks = weakref.WeakValueDictionary()

    def _create_engine(self, echo: bool) -> AsyncEngine:
        kwargs = {"echo": echo}
        if _is_memory_sqlite(self.database_url):
            # One shared connection, otherwise every session sees its own empty database
            kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})

        engine = create_async_engine(self.database_url, **kwargs)

        if self.database_url.startswith("sqlite"):
            event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
        return engine

    async def init(self) -> None:
        """Create tables from the models."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database initialized: {self.engine.url.render_as_string(hide_password=True)}")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            yield session

    def user_lock(self, user_email: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_email)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_email] = lock
        return lock

    async def dispose(self) -> None:
        await self.engine.dispose()
