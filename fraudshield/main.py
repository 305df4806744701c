"""In-process entry point: wires settings, logging and the SQL signal store."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog

from fraudshield.config import settings
from fraudshield.db import database
from fraudshield.domains.fraud.config import FraudConfig
from fraudshield.domains.fraud.engine import FraudDecisionEngine
from fraudshield.domains.fraud.store.sql import SqlSignalStore
from fraudshield.shared.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(create_tables: bool = False) -> AsyncGenerator[FraudDecisionEngine, None]:
    """Yield a FraudDecisionEngine backed by PostgreSQL; dispose the pool on exit."""
    setup_logging(settings.log_level)

    logger.info(
        "fraudshield_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    if create_tables:
        await database.init_db()
    if not await database.check_db():
        logger.warning("fraudshield_database_unreachable")
    elif missing := await database.missing_tables():
        logger.warning("fraudshield_schema_incomplete", missing_tables=missing)

    config = FraudConfig.from_env()
    engine = FraudDecisionEngine(
        SqlSignalStore(
            database.async_session_factory,
            query_timeout=config.failure.timeout_seconds,
        ),
        config=config,
    )
    try:
        yield engine
    finally:
        await database.dispose_db()
        logger.info("fraudshield_stopped")
