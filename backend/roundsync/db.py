import os
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool, StaticPool


engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[sessionmaker] = None
queue_engine: Optional[AsyncEngine] = None
QueueSessionLocal: Optional[sessionmaker] = None
Base = declarative_base()


def _normalize_url(database_url: str) -> str:
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return database_url


def _engine_kwargs(database_url: str) -> dict:
    engine_kwargs = {"echo": False}

    if database_url.startswith("sqlite+aiosqlite://"):
        # In-memory SQLite must reuse the same connection to persist schema/data.
        if ":memory:" in database_url:
            engine_kwargs["poolclass"] = StaticPool
        else:
            # File-backed SQLite: do not pool to avoid cross-loop / late GC issues.
            engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_pre_ping"] = True

    return engine_kwargs


def get_engine() -> AsyncEngine:
    """Return a lazily created SQLAlchemy engine.

    The engine is created on first use using the ``DATABASE_URL`` environment
    variable. Importing this module has no side effects so tests can set the
    environment variable at runtime. A ``RuntimeError`` is raised only if the
    function is called without ``DATABASE_URL`` being configured.
    """

    global engine, AsyncSessionLocal

    if engine is None:
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL environment variable is required")

        database_url = _normalize_url(database_url)
        engine = create_async_engine(database_url, **_engine_kwargs(database_url))
        AsyncSessionLocal = sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    return engine


def get_sessionmaker() -> sessionmaker:
    if AsyncSessionLocal is None:
        get_engine()

    assert AsyncSessionLocal is not None  # for type checkers
    return AsyncSessionLocal


def get_queue_sessionmaker() -> sessionmaker:
    """Return the session factory for the device-local offline queue store.

    ``QUEUE_DATABASE_URL`` points at a store that survives restarts on the
    scoring device (typically a SQLite file). Without it the queue shares the
    main database.
    """

    global queue_engine, QueueSessionLocal

    queue_url = os.getenv("QUEUE_DATABASE_URL")
    if not queue_url:
        return get_sessionmaker()

    if queue_engine is None:
        database_url = _normalize_url(queue_url)
        queue_engine = create_async_engine(
            database_url, **_engine_kwargs(database_url)
        )
        QueueSessionLocal = sessionmaker(
            queue_engine, class_=AsyncSession, expire_on_commit=False
        )

    assert QueueSessionLocal is not None
    return QueueSessionLocal


async def get_session() -> AsyncSession:
    """Provide a database session for FastAPI dependencies."""

    async with get_sessionmaker()() as session:
        yield session
