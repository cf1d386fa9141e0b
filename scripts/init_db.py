"""
Create the billing tables and, optionally, the step types of one source.

    python scripts/init_db.py              # tables only
    python scripts/init_db.py --source 3   # tables + DOWNLOAD..ARCHIVE for source 3

Vendor usage tables are not created here.
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings
from core.logging import setup_logging
# Importing the package registers every model on Base.metadata
from models import Base, StepType, StepTypeName

logger = logging.getLogger(__name__)


async def seed_step_types(session_maker, source_id: int):
    async with session_maker() as session:
        result = await session.execute(select(StepType).where(StepType.source_id == source_id))
        if result.scalars().first() is not None:
            logger.info(f"Step types for source {source_id} already exist, skipping")
            return

        for order, name in enumerate(StepTypeName, start=1):
            session.add(StepType(source_id=source_id, name=name, step_order=order))
        await session.commit()
        logger.info(f"Created {len(StepTypeName)} step types for source {source_id}")


async def init_database(source_id=None):
    logger.info("Connecting to database...")
    engine = create_async_engine(settings.DATABASE_URL, echo=settings.ENVIRONMENT == "development")

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Tables created successfully.")

        if source_id is not None:
            session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            await seed_step_types(session_maker, source_id)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--source", type=int, help="create the step types of this source")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(args.source))
