"""
Importer Step - loads a finished transform output into the vendor usage table.

One execution:
1. Resolve the configured step type and check it belongs to the source
2. Pick the oldest eligible file produced by the previous stage
3. Start a new import step, or restart the unfinished one of the same job
4. Stream the delimited file into the vendor table in batches
5. Finish the step pointing at the imported file

A failure while importing leaves the step IN PROGRESS; the next execution
picks the same file again and restarts the step.
"""

import asyncio
import csv
import io
from typing import Any, BinaryIO, Iterable, List, Optional, Sequence

import pandas as pd
from pandas.errors import EmptyDataError, ParserError

from core.exceptions import (
    DataFormatError,
    InvalidStepTypeError,
    NoFileToTransform,
    NotFoundError,
    ValidationError,
)
from importer.repository import BillingDB
from importer.step_service import StepService
from importer.tracing import DEFAULT_OBSERVERS, Observer, traced
from schemas.billing import ImporterOptions, StepRecord, StepTypeRecord
from schemas.vendor import ColumnMapper, VendorMapper
import logging

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

EXECUTE_ACTION = "Execute Importer Step"
START_STEP_ACTION = "Create/Restart Import Step"


class ImporterStep:
    """
    Import stage of the usage pipeline.

    Responsibilities:
    - Select the next file to import
    - Own the lifecycle of the import step
    - Map input records to vendor table rows and bulk insert them
    """

    def __init__(
        self,
        step_service: StepService,
        options: ImporterOptions,
        billing_db: BillingDB,
        observers: Optional[Sequence[Observer]] = None,
        batch_size: int = DEFAULT_BATCH_SIZE
    ):
        if options is None:
            raise ValidationError("ImporterStep requires options", context={"field_name": "options"})
        if not options.user:
            raise ValidationError("ImporterStep requires a user", context={"field_name": "user"})
        if not options.input_folder:
            raise ValidationError("ImporterStep requires an input folder", context={"field_name": "input_folder"})
        if options.source_id < 1:
            raise ValidationError(
                "ImporterStep requires a valid source id",
                context={"field_name": "source_id", "source_id": options.source_id}
            )
        if step_service is None:
            raise ValidationError("ImporterStep requires a step service", context={"field_name": "step_service"})
        if billing_db is None:
            raise ValidationError("ImporterStep requires a billing database", context={"field_name": "billing_db"})
        if batch_size < 1:
            raise ValidationError(
                "Batch size must be positive",
                context={"field_name": "batch_size", "batch_size": batch_size}
            )

        self.step_service = step_service
        self.options = options
        self.billing_db = billing_db
        self.observers = list(DEFAULT_OBSERVERS if observers is None else observers)
        self.batch_size = batch_size

    async def execute_import_step(self, vendor_mapper: VendorMapper) -> Optional[StepRecord]:
        """
        Run one import.

        Returns:
            The FINISHED step, or None when no file was eligible

        Raises:
            InvalidStepTypeError: configured step type belongs to another source
            DataFormatError: the input cannot be mapped to the vendor table
            StorageError, NotFoundError, FileAccessError: propagated unchanged
        """
        with traced(
            self.observers,
            EXECUTE_ACTION,
            source_id=self.options.source_id,
            step_type_id=self.options.step_type_id,
            input_folder=self.options.input_folder,
        ) as trace:
            logger.debug("Starting Import Step execution")

            step_type = await self._get_step_type()

            try:
                stream, previous_step = await self.step_service.fetch_next_eligible_file(step_type)
            except NoFileToTransform as e:
                logger.info(e.message)
                return None

            with stream:
                step = await self._start_import_step(step_type, previous_step.collection_job_id)
                trace.context["step_id"] = step.step_id
                trace.context["collection_job_id"] = step.collection_job_id

                rows = await self._execute_import(stream, vendor_mapper)

            logger.debug(f"Imported {rows} rows; updating step {step.step_id} to FINISHED")
            finished = await self._finish(step, previous_step.file_id)

            logger.info(
                f"Import Step {finished.step_id} finished: {rows} rows from file {previous_step.file_id} "
                f"(collection_job_id={finished.collection_job_id})"
            )
            return finished

    async def _get_step_type(self) -> StepTypeRecord:
        step_type = await self.billing_db.step_types.fetch(self.options.step_type_id)

        if step_type.source_id != self.options.source_id:
            raise InvalidStepTypeError(
                "Invalid Step Type ID for the actual Source",
                context={
                    "step_type_id": step_type.step_type_id,
                    "expected_source_id": self.options.source_id,
                    "actual_source_id": step_type.source_id,
                }
            )
        return step_type

    async def _start_import_step(self, step_type: StepTypeRecord, collection_job_id: int) -> StepRecord:
        """Restart the unfinished step of this job, or create a new one"""
        with traced(
            self.observers,
            START_STEP_ACTION,
            step_type_id=step_type.step_type_id,
            collection_job_id=collection_job_id,
            source_id=step_type.source_id,
        ) as trace:
            try:
                unfinished = await self.billing_db.steps.fetch_unfinished(
                    step_type.source_id, step_type.step_type_id, self.options.user
                )
            except NotFoundError:
                unfinished = None

            if unfinished is not None and unfinished.collection_job_id == collection_job_id:
                trace.context["step_id"] = unfinished.step_id
                trace.context["previous_status"] = f"{unfinished.status.value} : {unfinished.error}"
                logger.info(
                    f"An unfinished Import Step will be restarted (step_id={unfinished.step_id}, "
                    f"collection_job_id={collection_job_id})"
                )
                return await self.step_service.restart_step(unfinished)

            return await self._create_import_step(step_type, collection_job_id)

    async def _create_import_step(self, step_type: StepTypeRecord, collection_job_id: int) -> StepRecord:
        user = self.options.user

        async with self.billing_db.new_transaction() as uow:
            step_id = await self.billing_db.steps.create(step_type.step_type_id, collection_job_id, user, uow)

            job = await self.billing_db.collection_jobs.fetch(collection_job_id, uow)
            job = job.model_copy(update={"current_step_type_id": step_type.step_type_id})
            await self.billing_db.collection_jobs.update(job, user, uow)

        logger.debug(f"Created Import Step {step_id} in collection job {collection_job_id}")
        return await self.billing_db.steps.fetch(step_id)

    async def _execute_import(self, stream: BinaryIO, vendor_mapper: VendorMapper) -> int:
        """Stream the records into the vendor table; returns the rows inserted"""
        mappers = vendor_mapper.ordered_mappers()
        imported = 0

        await asyncio.to_thread(self._check_record_widths, stream)

        for batch in self._read_batches(stream):
            rows = [self._map_record(record, mappers) for record in batch]
            imported += await self.billing_db.bulk_insert(
                vendor_mapper.sql_base, vendor_mapper.sql_values, rows
            )

        return imported

    @staticmethod
    def _check_record_widths(stream: BinaryIO) -> None:
        """
        Every record must have as many fields as the first one.

        The parser pads short records with empty strings, which cannot be
        told apart from empty fields afterwards, so the raw records are
        counted in a pass of their own. The stream is rewound afterwards.
        """
        text = io.TextIOWrapper(stream, encoding="utf-8", newline="")
        expected_width = None
        records_read = 0
        try:
            for record in csv.reader(text):
                # Blank lines are skipped by the parser as well
                if not record:
                    continue
                if expected_width is None:
                    expected_width = len(record)
                elif len(record) != expected_width:
                    raise DataFormatError(
                        "Record has the wrong number of fields",
                        context={
                            "records_read": records_read,
                            "expected_width": expected_width,
                            "record_width": len(record),
                        }
                    )
                records_read += 1
        except UnicodeDecodeError as e:
            raise DataFormatError(
                "Input file is not valid UTF-8",
                context={"records_read": records_read},
                original_exception=e
            )
        except csv.Error as e:
            raise DataFormatError(
                "Input file is not a valid delimited file",
                context={"records_read": records_read},
                original_exception=e
            )
        finally:
            text.detach()

        stream.seek(0)

    def _read_batches(self, stream: BinaryIO) -> Iterable[List[tuple]]:
        """Yield lists of at most batch_size records, every field as str"""
        records_read = 0
        try:
            with pd.read_csv(
                stream,
                header=None,
                dtype=str,
                keep_default_na=False,
                encoding="utf-8",
                chunksize=self.batch_size,
            ) as reader:
                for chunk in reader:
                    yield list(chunk.itertuples(index=False, name=None))
                    records_read += len(chunk)
        except EmptyDataError:
            # Empty input imports zero records
            return
        except (ParserError, UnicodeDecodeError) as e:
            raise DataFormatError(
                "Input file is not a valid delimited file",
                context={"records_read": records_read},
                original_exception=e
            )

    def _map_record(self, record: Sequence[Any], mappers: Sequence[ColumnMapper]) -> List[Any]:
        """Place each mapped field at its table index; the user goes last"""
        row: List[Any] = [None] * (len(mappers) + 1)

        for mapper in mappers:
            if mapper.csv_index >= len(record):
                raise DataFormatError(
                    "Record has no field at the mapped position",
                    context={"csv_index": mapper.csv_index, "record_width": len(record)}
                )
            row[mapper.table_index] = record[mapper.csv_index]

        row[-1] = self.options.user
        return row

    async def _finish(self, step: StepRecord, file_id: int) -> StepRecord:
        try:
            return await self.step_service.finish_step_with_existing_file(step, file_id)
        except Exception as e:
            logger.error(f"Failed to finish Import Step {step.step_id}: {e}")
            try:
                await self.step_service.fail_step(step, e)
            except Exception as update_error:
                raise update_error from e
            raise
