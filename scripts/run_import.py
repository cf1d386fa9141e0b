"""
Script to run one import pass outside the HTTP service
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings
from core.exceptions import UsageImportError
from core.logging import setup_logging
from importer.engine import ImporterStep
from importer.repository import BillingDB
from importer.step_service import StepService
from importer.vendor_mapper import load_vendor_mapper
from schemas.billing import ImporterOptions

logger = logging.getLogger(__name__)


async def run_import() -> int:
    """Import the next eligible file; returns the process exit code"""
    engine = create_async_engine(settings.DATABASE_URL, echo=False)

    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    try:
        vendor_mapper = load_vendor_mapper(settings.VENDOR_MAPPER_PATH)
        options = ImporterOptions.from_settings(settings)
        billing_db = BillingDB(AsyncSessionLocal)
        importer_step = ImporterStep(
            StepService(billing_db, options), options, billing_db, batch_size=settings.IMPORT_BATCH_SIZE
        )

        step = await importer_step.execute_import_step(vendor_mapper)
        if step is None:
            logger.info("Nothing to import")
        else:
            logger.info(f"Import finished: step {step.step_id}, collection job {step.collection_job_id}")
        return 0

    except UsageImportError as e:
        logger.error(f"Import failed: {e.message}", extra={"error_context": e.to_dict()})
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_import()))
