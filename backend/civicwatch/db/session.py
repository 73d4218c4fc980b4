import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from civicwatch.logging import get_logger
from civicwatch.settings import get_settings

settings = get_settings()
log = get_logger(__name__)

T = TypeVar("T")


def _enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    # pysqlite defers BEGIN until the first DML statement, so a read-then-write
    # sequence is not isolated. Take the database write lock at BEGIN instead;
    # concurrent transactions then serialize the way FOR UPDATE does on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"timeout": settings.DB_COMMAND_TIMEOUT_SECONDS},
        )
        _enable_sqlite_write_locking(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        connect_args={
            "timeout": settings.DB_POOL_TIMEOUT_SECONDS,
            "command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS,
        },
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


engine = build_engine(settings.DATABASE_URL, echo=settings.APP_DEBUG and settings.APP_ENV == "development")
AsyncSessionLocal = build_sessionmaker(engine)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


async def read_with_retries(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
) -> T:
    """Run an idempotent read, retrying transient database failures.

    Each attempt runs in a SAVEPOINT; a failed attempt rolls back only that
    savepoint, so the caller's transaction stays open for the next one.
    Never wrap writes with this: a retried write could append a second
    audit entry.
    """
    attempts = attempts or settings.DB_READ_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            async with db.begin_nested():
                return await operation()
        except (OperationalError, asyncio.TimeoutError) as exc:
            if attempt == attempts:
                log.error("db_read_failed", attempt=attempt, error=str(exc))
                raise
            log.warning("db_read_retry", attempt=attempt, error=str(exc))
            await asyncio.sleep(0.05 * 2 ** (attempt - 1))
    raise RuntimeError("unreachable")
