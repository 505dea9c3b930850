"""
Database engine and session management for the DigiNum payments backend.

Async SQLAlchemy over aiosqlite. Order transitions and webhook records are
written from concurrent requests, so every SQLite connection enforces
foreign keys and waits on a locked database instead of failing at once.
Tables are auto-created on server startup via init_db().
"""
import logging
import os

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──────────────────────────────────────────────────────────

def async_database_url(url: str) -> str:
    """sqlite:///... → sqlite+aiosqlite:///...; other URLs pass through."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


engine = create_async_engine(async_database_url(settings.database_url), echo=False)

if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# ── Helpers ─────────────────────────────────────────────────────────

def _ensure_sqlite_dir() -> None:
    url = make_url(engine.url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    directory = os.path.dirname(url.database)
    if directory:
        os.makedirs(directory, exist_ok=True)


async def init_db() -> None:
    """Create all tables. Called once on server startup."""
    import db_models  # noqa: F401

    _ensure_sqlite_dir()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created (or already exist)")


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def ping(db: AsyncSession) -> bool:
    """Round-trip a trivial query; used by the health endpoint."""
    result = await db.execute(text("SELECT 1"))
    return result.scalar() == 1
