"""
Transactional access to the billing database.

Every write runs inside a UnitOfWork created for one logical operation:

    async with billing_db.new_transaction() as uow:
        step_id = await billing_db.steps.create(step_type_id, job_id, user, uow)
        await billing_db.collection_jobs.update(job, user, uow)

Leaving the block commits; an exception rolls back and propagates.
Reads open a short-lived session of their own unless a UnitOfWork is
passed, in which case they see its uncommitted writes.

All failures surface as StorageError (driver/SQL problems) or
NotFoundError (no matching row). The latter is an expected outcome on
several lookups and callers must handle it explicitly.
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import metrics
from core.exceptions import DataFormatError, NotFoundError, StorageError, ValidationError
from models import CollectionJob, File, Step, StepType
from models.base import CollectionJobStatus, StepStatus, StepTypeName
from schemas.billing import CollectionJobRecord, FileRecord, StepRecord, StepTypeRecord
import logging

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    One database transaction.

    Built per logical operation by BillingDB.new_transaction and never
    shared between concurrent tasks.
    """

    def __init__(self, session: AsyncSession):
        self._session = session
        self._closed = False

    async def execute(self, statement, params: Optional[Dict[str, Any]] = None):
        """Run a statement inside the transaction"""
        self._ensure_open()
        try:
            return await self._session.execute(statement, params)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to execute statement in transaction",
                context={"operation": "EXECUTE"},
                original_exception=e
            )

    async def add(self, entity):
        """Insert an ORM entity and flush so its primary key is populated"""
        self._ensure_open()
        try:
            self._session.add(entity)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to insert into {entity.__tablename__}",
                context={"operation": "INSERT", "table_name": entity.__tablename__},
                original_exception=e
            )
        return entity

    async def commit(self) -> None:
        self._ensure_open()
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to commit transaction",
                context={"operation": "COMMIT"},
                original_exception=e
            )
        finally:
            await self._close()

    async def rollback(self) -> None:
        self._ensure_open()
        try:
            await self._session.rollback()
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to rollback transaction",
                context={"operation": "ROLLBACK"},
                original_exception=e
            )
        finally:
            await self._close()

    async def commit_or_rollback(self, error: Optional[BaseException]) -> Optional[BaseException]:
        """
        Commit when error is None, roll back otherwise.

        Returns:
            The authoritative error: the commit/rollback failure if that
            operation failed, else the error passed in (None on success).
        """
        try:
            if error is None:
                await self.commit()
            else:
                await self.rollback()
        except StorageError as tx_error:
            if error is not None:
                tx_error.context["original_error"] = str(error)
            return tx_error
        return error

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self._closed:
            return False
        outcome = await self.commit_or_rollback(exc)
        if outcome is not None and outcome is not exc:
            raise outcome
        return False

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageError("There is no active transaction", context={"operation": "TRANSACTION"})

    async def _close(self) -> None:
        self._closed = True
        await self._session.close()


class _Repository:
    """Shared read helpers for the table repositories"""

    table_name = ""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _select(self, statement, uow: Optional[UnitOfWork] = None) -> list:
        if uow is not None:
            result = await uow.execute(statement)
            return list(result.scalars().all())

        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to query {self.table_name}",
                context={"operation": "SELECT", "table_name": self.table_name},
                original_exception=e
            )

    async def _select_one(self, statement, uow: Optional[UnitOfWork] = None, **lookup):
        rows = await self._select(statement.limit(1), uow)
        if not rows:
            raise NotFoundError(
                f"No {self.table_name} row found",
                context={"table_name": self.table_name, **lookup}
            )
        return rows[0]

    async def _update(self, statement, uow: UnitOfWork, **lookup) -> None:
        result = await uow.execute(statement.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            raise NotFoundError(
                f"No {self.table_name} row to update",
                context={"table_name": self.table_name, **lookup}
            )


class CollectionJobRepository(_Repository):
    """SQL operations over collection_job"""

    table_name = "collection_job"

    async def create(self, source_id: int, current_step_type_id: int, user: str, uow: UnitOfWork) -> int:
        """Create a collection job in IN PROGRESS; must run inside a unit of work"""
        job = CollectionJob(
            source_id=source_id,
            current_step_type_id=current_step_type_id,
            status=CollectionJobStatus.IN_PROGRESS,
            start_date=datetime.utcnow(),
            created_by=user,
        )
        await uow.add(job)
        return job.collection_job_id

    async def fetch(self, collection_job_id: int, uow: Optional[UnitOfWork] = None) -> CollectionJobRecord:
        job = await self._select_one(
            select(CollectionJob).where(CollectionJob.collection_job_id == collection_job_id),
            uow,
            collection_job_id=collection_job_id,
        )
        return CollectionJobRecord.model_validate(job)

    async def list_by_status(self, status: CollectionJobStatus) -> List[CollectionJobRecord]:
        jobs = await self._select(
            select(CollectionJob)
            .where(CollectionJob.status == status)
            .order_by(CollectionJob.collection_job_id)
        )
        return [CollectionJobRecord.model_validate(j) for j in jobs]

    async def update(self, job: CollectionJobRecord, user: str, uow: UnitOfWork) -> None:
        """Replace every mutable field of the job"""
        await self._update(
            update(CollectionJob)
            .where(CollectionJob.collection_job_id == job.collection_job_id)
            .values(
                status=job.status,
                current_step_type_id=job.current_step_type_id,
                end_date=job.end_date,
                modified_by=user,
            ),
            uow,
            collection_job_id=job.collection_job_id,
        )


class StepRepository(_Repository):
    """SQL operations over step"""

    table_name = "step"

    async def create(self, step_type_id: int, collection_job_id: int, user: str, uow: UnitOfWork) -> int:
        step = Step(
            step_type_id=step_type_id,
            collection_job_id=collection_job_id,
            status=StepStatus.IN_PROGRESS,
            start_date=datetime.utcnow(),
            error="",
            created_by=user,
        )
        await uow.add(step)
        return step.step_id

    async def fetch(self, step_id: int, uow: Optional[UnitOfWork] = None) -> StepRecord:
        step = await self._select_one(select(Step).where(Step.step_id == step_id), uow, step_id=step_id)
        return StepRecord.model_validate(step)

    async def list_by_collection_job(self, collection_job_id: int) -> List[StepRecord]:
        steps = await self._select(
            select(Step).where(Step.collection_job_id == collection_job_id).order_by(Step.step_id)
        )
        return [StepRecord.model_validate(s) for s in steps]

    async def fetch_unfinished(self, source_id: int, step_type_id: int, user: str) -> StepRecord:
        """
        The step of this type, created by user for source, that is not FINISHED.

        NotFoundError here is the normal "nothing to resume" case.
        """
        step = await self._select_one(
            select(Step)
            .join(StepType, Step.step_type_id == StepType.step_type_id)
            .where(
                Step.step_type_id == step_type_id,
                Step.created_by == user,
                Step.status != StepStatus.FINISHED,
                StepType.source_id == source_id,
            )
            .order_by(Step.step_id),
            source_id=source_id,
            step_type_id=step_type_id,
            user=user,
        )
        return StepRecord.model_validate(step)

    async def fetch_by_file_with_no_next_step(
        self, file_id: int, next_step_type_id: int, user: str
    ) -> StepRecord:
        """
        The FINISHED step that produced file_id, if its collection job has
        no FINISHED step of next_step_type_id yet.

        Example: download step 110 (job 10) produced file 100. Called with
        file_id=100 and next_step_type_id=2, it returns step 110 unless
        job 10 already holds a FINISHED step of type 2.

        user is only reported in the lookup context: the producing step
        belongs to the user of the previous stage.
        """
        consumed_jobs = select(Step.collection_job_id).where(
            Step.step_type_id == next_step_type_id,
            Step.status == StepStatus.FINISHED,
        )
        step = await self._select_one(
            select(Step)
            .where(
                Step.file_id == file_id,
                Step.status == StepStatus.FINISHED,
                Step.collection_job_id.not_in(consumed_jobs),
            )
            .order_by(Step.step_id),
            file_id=file_id,
            next_step_type_id=next_step_type_id,
            user=user,
        )
        return StepRecord.model_validate(step)

    async def update(self, step: StepRecord, user: str, uow: UnitOfWork) -> None:
        await self._update(
            update(Step)
            .where(Step.step_id == step.step_id)
            .values(
                start_date=step.start_date,
                end_date=step.end_date,
                file_id=step.file_id,
                status=step.status,
                error=step.error,
                modified_by=user,
            ),
            uow,
            step_id=step.step_id,
        )


class StepTypeRepository(_Repository):
    """Read-only access to step_type"""

    table_name = "step_type"

    async def fetch(self, step_type_id: int) -> StepTypeRecord:
        step_type = await self._select_one(
            select(StepType).where(StepType.step_type_id == step_type_id),
            step_type_id=step_type_id,
        )
        return StepTypeRecord.model_validate(step_type)

    async def list_by_source(self, source_id: int) -> List[StepTypeRecord]:
        step_types = await self._select(
            select(StepType).where(StepType.source_id == source_id).order_by(StepType.step_order)
        )
        return [StepTypeRecord.model_validate(s) for s in step_types]

    async def fetch_by_source_and_name(self, source_id: int, name: StepTypeName) -> StepTypeRecord:
        step_type = await self._select_one(
            select(StepType).where(StepType.source_id == source_id, StepType.name == name),
            source_id=source_id,
            name=name,
        )
        return StepTypeRecord.model_validate(step_type)

    async def fetch_by_source_and_order(self, source_id: int, order: int) -> StepTypeRecord:
        step_type = await self._select_one(
            select(StepType).where(StepType.source_id == source_id, StepType.step_order == order),
            source_id=source_id,
            step_order=order,
        )
        return StepTypeRecord.model_validate(step_type)


class FileRepository(_Repository):
    """SQL operations over file; rows are never updated or deleted"""

    table_name = "file"

    async def create(self, checksum: str, name: str, file_path: str, user: str, uow: UnitOfWork) -> int:
        file = File(checksum=checksum, name=name, file_path=file_path, created_by=user)
        await uow.add(file)
        return file.file_id

    async def fetch(self, file_id: int, uow: Optional[UnitOfWork] = None) -> FileRecord:
        file = await self._select_one(select(File).where(File.file_id == file_id), uow, file_id=file_id)
        return FileRecord.model_validate(file)

    async def fetch_by_checksum(self, checksum: str, uow: Optional[UnitOfWork] = None) -> FileRecord:
        """NotFoundError means no file with this content is tracked yet"""
        file = await self._select_one(select(File).where(File.checksum == checksum), uow, checksum=checksum)
        return FileRecord.model_validate(file)


def build_bulk_insert(
    insert_prefix: str, value_template: str, rows: Sequence[Sequence[Any]]
) -> Tuple[str, Dict[str, Any]]:
    """
    Build one multi-row INSERT from a prefix and a "(?, ?, ...)" template.

    Each "?" of the template becomes a named bind parameter, one group
    per row:
        INSERT INTO t (a, b) VALUES (:r0_c0, :r0_c1), (:r1_c0, :r1_c1)
    """
    parts = value_template.split("?")
    width = len(parts) - 1

    groups = []
    params: Dict[str, Any] = {}
    for r, row in enumerate(rows):
        if len(row) != width:
            raise DataFormatError(
                "Row width does not match the values template",
                context={"row_index": r, "row_width": len(row), "template_width": width}
            )
        group = parts[0]
        for c, value in enumerate(row):
            name = f"r{r}_c{c}"
            params[name] = value
            group += f":{name}" + parts[c + 1]
        groups.append(group)

    return f"{insert_prefix} {', '.join(groups)}", params


class BillingDB:
    """
    Entry point to the billing database.

    Holds one repository per table plus the transaction factory,
    bulk insert and health check.
    """

    def __init__(self, session_factory: async_sessionmaker):
        if session_factory is None:
            raise ValidationError(
                "BillingDB requires a session factory",
                context={"field_name": "session_factory"}
            )
        self._session_factory = session_factory
        self.collection_jobs = CollectionJobRepository(session_factory)
        self.steps = StepRepository(session_factory)
        self.step_types = StepTypeRepository(session_factory)
        self.files = FileRepository(session_factory)

    def new_transaction(self) -> UnitOfWork:
        return UnitOfWork(self._session_factory())

    async def commit_or_rollback(
        self, uow: Optional[UnitOfWork], error: Optional[BaseException]
    ) -> Optional[BaseException]:
        """Finish uow according to error; see UnitOfWork.commit_or_rollback"""
        if uow is None:
            return error
        return await uow.commit_or_rollback(error)

    async def bulk_insert(self, insert_prefix: str, value_template: str, rows: Sequence[Sequence[Any]]) -> int:
        """
        Insert all rows with one statement.

        Returns:
            Number of rows sent
        """
        if not rows:
            return 0

        statement, params = build_bulk_insert(insert_prefix, value_template, rows)

        try:
            async with self._session_factory() as session:
                await session.execute(text(statement), params)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                "Bulk insert failed",
                context={"operation": "INSERT", "rows": len(rows), "statement": insert_prefix},
                original_exception=e
            )

        metrics.record_bulk_insert(len(rows))
        logger.debug(f"Bulk inserted {len(rows)} rows")
        return len(rows)

    async def check(self) -> Dict[str, Any]:
        """Health probe: one round trip to the database"""
        start = time.perf_counter()
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
                dialect = session.bind.dialect.name
        except SQLAlchemyError as e:
            raise StorageError(
                "Billing database is unreachable",
                context={"operation": "SELECT"},
                original_exception=e
            )

        return {
            "dialect": dialect,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        }
