"""Database initialization utilities."""

import logging

from econsent.db.base import Base
from econsent.db.session import engine

# Register models on Base.metadata
from econsent.models import consent_record  # noqa: F401

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

