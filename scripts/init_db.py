# scripts/init_db.py
"""
Script to initialize database tables. Run from project root:
    python scripts/init_db.py
"""
import asyncio
import logging

from qurbani.config.settings import settings
from qurbani.infrastructure.db.session import create_engine_and_sessionmaker, init_models

logger = logging.getLogger(__name__)


async def init():
    engine, _ = create_engine_and_sessionmaker(settings)
    try:
        await init_models(engine)
    finally:
        await engine.dispose()
    logger.info("DB initialized")


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(init())
