"""Connection pool and schema helpers for the PostgreSQL signal store."""

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fraudshield.config import settings
from fraudshield.db.models import Base

logger = structlog.get_logger()


def build_engine(database_url: str, debug: bool = False) -> AsyncEngine:
    # Each decision holds one connection for its whole unit of work
    return create_async_engine(
        database_url,
        echo=debug,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


engine = build_engine(settings.database_url, debug=settings.debug)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create every signal-store and ledger table. Use Alembic migrations in production."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", tables=sorted(Base.metadata.tables))


async def check_db() -> bool:
    """Check database connectivity."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.warning("database_check_failed", exc_info=True)
        return False


async def missing_tables() -> list[str]:
    """Names of signal-store tables the connected database does not have yet."""
    async with engine.connect() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    return sorted(set(Base.metadata.tables) - existing)


async def dispose_db() -> None:
    await engine.dispose()
    logger.info("database_pool_disposed")
