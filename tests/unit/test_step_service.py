"""
Unit tests for the step service with a mocked billing database
"""

import asyncio
import os
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import (
    EmptyFailureReasonError,
    NoFileToTransform,
    NotFoundError,
    StorageError,
    ValidationError,
)
from importer import fileutil
from importer.fileutil import FileMeta
from importer.repository import UnitOfWork
from importer.step_service import StepService
from models.base import StepStatus, StepTypeName
from schemas.billing import FileRecord, ImporterOptions, StepRecord, StepTypeRecord


@pytest.fixture
def mock_billing_db():
    billing_db = MagicMock()
    billing_db.new_transaction.side_effect = lambda: UnitOfWork(AsyncMock())
    billing_db.steps = AsyncMock()
    billing_db.files = AsyncMock()
    billing_db.collection_jobs = AsyncMock()
    return billing_db


@pytest.fixture
def unit_options(tmp_path):
    return ImporterOptions(source_id=3, step_type_id=4, input_folder=str(tmp_path), user="importer")


@pytest.fixture
def service(mock_billing_db, unit_options):
    return StepService(mock_billing_db, unit_options)


@pytest.fixture
def failed_step():
    return StepRecord(
        step_id=7,
        step_type_id=4,
        collection_job_id=2,
        start_date=datetime(2024, 1, 1),
        end_date=datetime(2024, 1, 1, 1),
        file_id=None,
        status=StepStatus.ERROR,
        error="bulk insert failed",
    )


@pytest.fixture
def import_type():
    return StepTypeRecord(step_type_id=4, source_id=3, name=StepTypeName.IMPORT, step_order=4)


def file_record(file_id, checksum="a" * 32):
    return FileRecord(file_id=file_id, checksum=checksum, name="usage.csv", file_path="/tmp")


def test_requires_collaborators(mock_billing_db, unit_options):
    with pytest.raises(ValidationError):
        StepService(None, unit_options)
    with pytest.raises(ValidationError):
        StepService(mock_billing_db, None)
    with pytest.raises(ValidationError):
        StepService(mock_billing_db, unit_options.model_copy(update={"user": ""}))


@pytest.mark.asyncio
async def test_restart_step_resets_state(service, mock_billing_db, failed_step):
    restarted = await service.restart_step(failed_step)

    assert restarted.status == StepStatus.IN_PROGRESS
    assert restarted.error == ""
    assert restarted.file_id is None
    assert restarted.start_date > failed_step.start_date
    mock_billing_db.steps.update.assert_awaited_once()
    assert mock_billing_db.steps.update.await_args.args[0] == restarted


@pytest.mark.asyncio
async def test_failed_transition_leaves_caller_record_unchanged(service, mock_billing_db, failed_step):
    snapshot = failed_step.model_copy()
    mock_billing_db.steps.update.side_effect = StorageError("update failed")

    with pytest.raises(StorageError):
        await service.restart_step(failed_step)

    assert failed_step == snapshot


@pytest.mark.asyncio
async def test_fail_step_records_message(service, mock_billing_db, failed_step):
    step = failed_step.model_copy(update={"status": StepStatus.IN_PROGRESS, "error": ""})

    failed = await service.fail_step(step, StorageError("connection lost"))

    assert failed.status == StepStatus.ERROR
    assert failed.error == "connection lost"
    assert failed.end_date is not None


@pytest.mark.asyncio
async def test_fail_step_without_reason(service, mock_billing_db, failed_step):
    with pytest.raises(EmptyFailureReasonError):
        await service.fail_step(failed_step, None)
    with pytest.raises(EmptyFailureReasonError):
        await service.fail_step(failed_step, ValidationError(""))

    mock_billing_db.steps.update.assert_not_awaited()


@pytest.mark.asyncio
async def test_finish_with_known_checksum_reuses_file(service, mock_billing_db, failed_step):
    existing = file_record(100)
    mock_billing_db.files.fetch_by_checksum.return_value = existing

    step, file = await service.finish_step_with_new_file(
        failed_step, FileMeta(file_name="usage.csv", file_path="/tmp", checksum=existing.checksum)
    )

    assert file == existing
    assert step.file_id == 100
    assert step.status == StepStatus.FINISHED
    mock_billing_db.files.create.assert_not_awaited()
    mock_billing_db.files.fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_finish_with_new_checksum_creates_and_refetches(service, mock_billing_db, failed_step):
    mock_billing_db.files.fetch_by_checksum.side_effect = NotFoundError("no file")
    mock_billing_db.files.create.return_value = 101
    mock_billing_db.files.fetch.return_value = file_record(101, "b" * 32)

    step, file = await service.finish_step_with_new_file(
        failed_step, FileMeta(file_name="usage.csv", file_path="/tmp", checksum="b" * 32)
    )

    assert step.file_id == 101
    assert file.file_id == 101
    mock_billing_db.files.create.assert_awaited_once()
    mock_billing_db.files.fetch.assert_awaited_once_with(101)


@pytest.mark.asyncio
async def test_finish_with_existing_file(service, mock_billing_db, failed_step):
    step = await service.finish_step_with_existing_file(failed_step, 55)

    assert step.file_id == 55
    assert step.status == StepStatus.FINISHED
    assert step.error == ""


@pytest.mark.asyncio
async def test_next_eligible_file_is_oldest_tracked(service, mock_billing_db, import_type, tmp_path):
    for name, mtime in (("new.csv", 3000), ("untracked.csv", 1000), ("old.csv", 2000)):
        path = tmp_path / name
        path.write_bytes(name.encode())
        os.utime(path, (mtime, mtime))

    tracked = {fileutil.get_checksum_by_name(tmp_path / n): n for n in ("new.csv", "old.csv")}

    async def fetch_by_checksum(checksum, uow=None):
        if checksum not in tracked:
            raise NotFoundError("no file")
        return file_record(len(tracked[checksum]), checksum)

    previous = StepRecord(
        step_id=1, step_type_id=1, collection_job_id=1, file_id=7, status=StepStatus.FINISHED
    )
    mock_billing_db.files.fetch_by_checksum.side_effect = fetch_by_checksum
    mock_billing_db.steps.fetch_by_file_with_no_next_step.return_value = previous

    stream, previous_step = await service.fetch_next_eligible_file(import_type)
    with stream:
        assert stream.read() == b"old.csv"
    assert previous_step == previous


@pytest.mark.asyncio
async def test_no_eligible_file(service, mock_billing_db, import_type, tmp_path):
    (tmp_path / "done.csv").write_bytes(b"done")
    mock_billing_db.files.fetch_by_checksum.return_value = file_record(1)
    mock_billing_db.steps.fetch_by_file_with_no_next_step.side_effect = NotFoundError("consumed")

    with pytest.raises(NoFileToTransform):
        await service.fetch_next_eligible_file(import_type)


@pytest.mark.asyncio
async def test_failed_fail_step_leaves_caller_record_unchanged(service, mock_billing_db, failed_step):
    step = failed_step.model_copy(update={"status": StepStatus.IN_PROGRESS, "error": "", "end_date": None})
    mock_billing_db.steps.update.side_effect = StorageError("update failed")

    with pytest.raises(StorageError):
        await service.fail_step(step, StorageError("bulk insert failed"))

    assert step.status == StepStatus.IN_PROGRESS
    assert step.error == ""
    assert step.end_date is None


@pytest.mark.asyncio
async def test_fail_step_keeps_driver_cause(service, mock_billing_db, failed_step):
    step = failed_step.model_copy(update={"status": StepStatus.IN_PROGRESS, "error": ""})
    error = StorageError(
        "Failed to execute statement in transaction",
        original_exception=RuntimeError("no such table: acme_usage"),
    )

    failed = await service.fail_step(step, error)

    assert failed.error == "Failed to execute statement in transaction: no such table: acme_usage"
    assert mock_billing_db.steps.update.await_args.args[0].error == failed.error


@pytest.mark.asyncio
async def test_checksums_are_computed_off_the_event_loop(
    service, mock_billing_db, import_type, tmp_path, monkeypatch
):
    (tmp_path / "usage.csv").write_bytes(b"mail,1,account-1\n")
    mock_billing_db.files.fetch_by_checksum.side_effect = NotFoundError("no file")

    offloaded = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

    with pytest.raises(NoFileToTransform):
        await service.fetch_next_eligible_file(import_type)

    assert offloaded == [fileutil.get_checksum_by_name]
