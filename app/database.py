"""
Database engine and session scopes.

Postgres via asyncpg in deployments, aiosqlite in tests. The payment
pipeline commits explicitly at its transition boundaries; the scopes here
commit whatever is left when a request or job finishes cleanly.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """DATABASE_URL normalised for asyncpg (no sslmode query param, async driver)."""
    raw = settings.database_url
    if not raw:
        return ""

    url = make_url(raw)
    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername="postgresql+asyncpg")
    if "sslmode" in url.query:
        url = url.difference_update_query(["sslmode"])
    return url.render_as_string(hide_password=False)


def create_engine_if_configured() -> Optional[AsyncEngine]:
    """Build the engine, or None when DATABASE_URL is unset."""
    db_url = get_database_url()
    if not db_url:
        logger.warning("DATABASE_URL not configured. Database features disabled.")
        return None

    if db_url.startswith("sqlite"):
        return create_async_engine(db_url, echo=settings.debug)

    return create_async_engine(
        db_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        connect_args={"ssl": settings.is_production},
    )


engine = create_engine_if_configured()

async_session_maker = (
    async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    if engine
    else None
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


@asynccontextmanager
async def _session_scope() -> AsyncIterator[AsyncSession]:
    if not async_session_maker:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with _session_scope() as session:
        yield session


def get_db_context():
    """Session scope for Celery tasks and scripts."""
    return _session_scope()


async def ping_db() -> bool:
    """True when the database answers a trivial query."""
    if not engine:
        return False
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False


async def init_db() -> None:
    """Create tables directly (local development without Alembic)."""
    if not engine:
        logger.info("Skipping database initialization - DATABASE_URL not configured")
        return

    import app.models  # noqa: F401  registers mappers on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of pooled connections."""
    if engine:
        await engine.dispose()
