"""
State transitions of pipeline steps.

Every transition runs in its own unit of work and works on a copy of the
step it receives. When anything fails the unit of work is rolled back and
the error propagates; the caller's record still holds the pre-call
values and is the state to trust.
"""

import asyncio
import os
from datetime import datetime
from typing import BinaryIO, Optional, Tuple

from core.exceptions import (
    EmptyFailureReasonError,
    NoFileToTransform,
    NotFoundError,
    ValidationError,
    error_message,
    failure_reason,
)
from importer import fileutil
from importer.fileutil import FileMeta
from importer.repository import BillingDB
from models.base import StepStatus
from schemas.billing import (
    CollectionJobRecord,
    FileRecord,
    ImporterOptions,
    StepRecord,
    StepTypeRecord,
)
import logging

logger = logging.getLogger(__name__)


class StepService:
    """
    Step lifecycle operations shared by the pipeline stages.

    Responsibilities:
    - Start a collection job with its first step
    - Restart, finish and fail steps atomically
    - Pick the next input file eligible for a step type
    """

    def __init__(self, billing_db: BillingDB, options: ImporterOptions):
        if billing_db is None:
            raise ValidationError("StepService requires a billing database", context={"field_name": "billing_db"})
        if options is None:
            raise ValidationError("StepService requires options", context={"field_name": "options"})
        if not options.user:
            raise ValidationError("StepService requires a user", context={"field_name": "user"})

        self.billing_db = billing_db
        self.options = options

    async def start_collection_job(self, step_type: StepTypeRecord) -> Tuple[CollectionJobRecord, StepRecord]:
        """Create a collection job and its first step together"""
        user = self.options.user

        async with self.billing_db.new_transaction() as uow:
            job_id = await self.billing_db.collection_jobs.create(
                step_type.source_id, step_type.step_type_id, user, uow
            )
            step_id = await self.billing_db.steps.create(step_type.step_type_id, job_id, user, uow)

        logger.info(f"Started collection job {job_id} for source {step_type.source_id} with step {step_id}")

        job = await self.billing_db.collection_jobs.fetch(job_id)
        step = await self.billing_db.steps.fetch(step_id)
        return job, step

    async def restart_step(self, step: StepRecord) -> StepRecord:
        """Back to IN PROGRESS with file and error cleared and a fresh start date"""
        logger.debug(f"Restarting step {step.step_id} (status: {step.status.value})")

        restarted = step.model_copy(update={
            "status": StepStatus.IN_PROGRESS,
            "error": "",
            "file_id": None,
            "start_date": datetime.utcnow(),
        })

        async with self.billing_db.new_transaction() as uow:
            await self.billing_db.steps.update(restarted, self.options.user, uow)

        logger.debug(f"Step {step.step_id} restarted")
        return restarted

    async def finish_step_with_new_file(
        self, step: StepRecord, file_meta: FileMeta
    ) -> Tuple[StepRecord, FileRecord]:
        """
        Finish the step with the file described by file_meta.

        A file row with the same checksum is reused; otherwise one is
        created in the same transaction as the step update. A newly
        created file is fetched again after commit to return the full row.
        """
        logger.debug(
            f"Finishing step {step.step_id} with file {file_meta.file_name} "
            f"(checksum {file_meta.checksum})"
        )

        file: Optional[FileRecord] = None
        known_file_id = 0

        async with self.billing_db.new_transaction() as uow:
            try:
                file = await self.billing_db.files.fetch_by_checksum(file_meta.checksum, uow)
                known_file_id = file.file_id
                file_id = file.file_id
            except NotFoundError:
                file_id = await self.billing_db.files.create(
                    file_meta.checksum, file_meta.file_name, file_meta.file_path, self.options.user, uow
                )

            finished = self._finished(step, file_id)
            await self.billing_db.steps.update(finished, self.options.user, uow)

        if known_file_id < 1:
            file = await self.billing_db.files.fetch(file_id)

        logger.debug(f"Step {step.step_id} finished with file {file_id}")
        return finished, file

    async def finish_step_with_existing_file(self, step: StepRecord, file_id: int) -> StepRecord:
        """Finish the step pointing at an already tracked file"""
        logger.debug(f"Finishing step {step.step_id} with existing file {file_id}")

        finished = self._finished(step, file_id)

        async with self.billing_db.new_transaction() as uow:
            await self.billing_db.steps.update(finished, self.options.user, uow)

        return finished

    async def fail_step(self, step: StepRecord, error: Optional[BaseException]) -> StepRecord:
        """Mark the step as ERROR with the error's message and its cause"""
        if error is None or not error_message(error):
            raise EmptyFailureReasonError(step.step_id)

        reason = failure_reason(error)
        logger.debug(f"Setting step {step.step_id} to error: {reason}")

        failed = step.model_copy(update={
            "status": StepStatus.ERROR,
            "error": reason,
            "end_date": datetime.utcnow(),
        })

        async with self.billing_db.new_transaction() as uow:
            await self.billing_db.steps.update(failed, self.options.user, uow)

        return failed

    async def fetch_next_eligible_file(self, step_type: StepTypeRecord) -> Tuple[BinaryIO, StepRecord]:
        """
        Open the oldest file in the input folder that is ready for step_type.

        A file is ready when its checksum is tracked and the step that
        produced it is FINISHED with no FINISHED step of step_type in the
        same collection job.

        Returns:
            (binary stream, producing step); the caller closes the stream

        Raises:
            NoFileToTransform: nothing in the folder is eligible
        """
        input_folder = self.options.input_folder
        entries = fileutil.list_files_in_folder(input_folder)
        logger.info(f"There are {len(entries)} files in {input_folder} folder")

        # Oldest first; name breaks ties between equal mtimes
        entries.sort(key=lambda entry: (entry.stat().st_mtime, entry.name))

        for entry in entries:
            full_name = os.path.join(input_folder, entry.name)
            checksum = await asyncio.to_thread(fileutil.get_checksum_by_name, full_name)

            try:
                db_file = await self.billing_db.files.fetch_by_checksum(checksum)
            except NotFoundError:
                continue

            try:
                previous_step = await self.billing_db.steps.fetch_by_file_with_no_next_step(
                    db_file.file_id, step_type.step_type_id, self.options.user
                )
            except NotFoundError:
                continue

            logger.info(
                f"File eligible to be imported: {db_file.name} "
                f"(file_id={db_file.file_id}, checksum={db_file.checksum}, "
                f"previous_step_id={previous_step.step_id}, "
                f"previous_step_type={previous_step.step_type_id})"
            )
            return open(full_name, "rb"), previous_step

        raise NoFileToTransform(input_folder, step_type.step_type_id)

    @staticmethod
    def _finished(step: StepRecord, file_id: int) -> StepRecord:
        return step.model_copy(update={
            "file_id": file_id,
            "status": StepStatus.FINISHED,
            "error": "",
            "end_date": datetime.utcnow(),
        })
