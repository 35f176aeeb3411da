import logging

from marketplace.app.db.session import engine
from marketplace.app.db.base import Base

logger = logging.getLogger(__name__)


async def init_models(drop: bool = False) -> None:
    """Create every table known to the ORM metadata."""
    # Registers the model classes on Base.metadata
    from marketplace.app import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)

            logger.info("Connecting to the database to create tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Tables created.")
    except Exception as e:
        logger.error(f"Table creation failed: {e}")
        raise

