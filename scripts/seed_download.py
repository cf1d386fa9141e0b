"""
Register a local file as the output of a finished DOWNLOAD step.

Starts a collection job for the source, copies the file into the input
folder and finishes the DOWNLOAD step with it, which makes the file
eligible for the next stage.

    python scripts/seed_download.py usage.csv --source 3 --user downloader
"""

import argparse
import asyncio
import sys
import os
import logging
from datetime import datetime

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings
from core.exceptions import UsageImportError
from core.logging import setup_logging
from importer import fileutil
from importer.repository import BillingDB
from importer.step_service import StepService
from models.base import StepTypeName
from schemas.billing import ImporterOptions

logger = logging.getLogger(__name__)


async def seed_download(source_file: str, source_id: int, user: str) -> int:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        billing_db = BillingDB(AsyncSessionLocal)
        download_type = await billing_db.step_types.fetch_by_source_and_name(source_id, StepTypeName.DOWNLOAD)

        options = ImporterOptions(
            source_id=source_id,
            step_type_id=download_type.step_type_id,
            input_folder=settings.INPUT_FOLDER,
            user=user,
        )
        step_service = StepService(billing_db, options)

        job, step = await step_service.start_collection_job(download_type)

        _, extension = os.path.splitext(source_file)
        new_name = f"download-{job.collection_job_id}-{datetime.utcnow():%Y%m%d%H%M%S}{extension}"

        try:
            with open(source_file, "rb") as stream:
                file_meta = fileutil.create_from_stream(stream, options.input_folder, lambda: new_name)
            step, file = await step_service.finish_step_with_new_file(step, file_meta)
        except (OSError, UsageImportError) as e:
            await step_service.fail_step(step, e)
            raise

        logger.info(
            f"Collection job {job.collection_job_id}: DOWNLOAD step {step.step_id} finished "
            f"with file {file.file_id} ({file_meta.full_path})"
        )
        return 0

    except (OSError, UsageImportError) as e:
        logger.error(f"Seeding failed: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("file", help="file to register")
    parser.add_argument("--source", type=int, default=settings.SOURCE_ID)
    parser.add_argument("--user", default="downloader")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(seed_download(args.file, args.source, args.user)))
