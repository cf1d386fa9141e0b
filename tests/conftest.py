"""
Pytest configuration and fixtures
"""

import io
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from core import metrics
from importer import fileutil
from importer.repository import BillingDB
from importer.step_service import StepService
from models import Base, StepType, StepTypeName
from schemas.billing import ImporterOptions, StepTypeRecord
from schemas.vendor import VendorMapper

SOURCE_ID = 3
IMPORT_USER = "importer"
DOWNLOAD_USER = "downloader"

USAGE_TABLE_DDL = """
CREATE TABLE acme_usage (
    usage_id INTEGER PRIMARY KEY AUTOINCREMENT,
    account VARCHAR(100) NOT NULL,
    service VARCHAR(100) NOT NULL,
    quantity VARCHAR(20) NOT NULL,
    created_by VARCHAR(100) NOT NULL
)
"""


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset_for_testing()
    yield
    metrics.reset_for_testing()


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite database, one per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        echo=False,
        poolclass=NullPool,  # Every session gets its own connection
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(USAGE_TABLE_DDL))

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for direct inspection of the tables"""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def billing_db(session_maker) -> BillingDB:
    return BillingDB(session_maker)


@pytest_asyncio.fixture(scope="function")
async def step_types(session_maker):
    """The five pipeline step types of SOURCE_ID, keyed by name"""
    async with session_maker() as session:
        rows = [
            StepType(source_id=SOURCE_ID, name=name, step_order=order)
            for order, name in enumerate(StepTypeName, start=1)
        ]
        # A step type of another source
        rows.append(StepType(source_id=SOURCE_ID + 1, name=StepTypeName.IMPORT, step_order=4))
        session.add_all(rows)
        await session.commit()

        records = {row.name: StepTypeRecord.model_validate(row) for row in rows[:-1]}
        records["OTHER_SOURCE_IMPORT"] = StepTypeRecord.model_validate(rows[-1])

    return records


@pytest.fixture
def input_folder(tmp_path):
    folder = tmp_path / "transforms"
    folder.mkdir()
    return folder


@pytest.fixture
def options(step_types, input_folder) -> ImporterOptions:
    return ImporterOptions(
        source_id=SOURCE_ID,
        step_type_id=step_types[StepTypeName.IMPORT].step_type_id,
        input_folder=str(input_folder),
        user=IMPORT_USER,
    )


@pytest.fixture
def step_service(billing_db, options) -> StepService:
    return StepService(billing_db, options)


@pytest.fixture
def vendor_mapper() -> VendorMapper:
    return VendorMapper.model_validate({
        "vendorID": SOURCE_ID,
        "vendorName": "acme",
        "sqlBase": "INSERT INTO acme_usage (account, service, quantity, created_by) VALUES",
        "sqlValues": "(?, ?, ?, ?)",
        "columnMappers": {
            "account": {"tableIndex": 0, "csvIndex": 2},
            "service": {"tableIndex": 1, "csvIndex": 0},
            "quantity": {"tableIndex": 2, "csvIndex": 1},
        },
    })


@pytest.fixture
def usage_csv():
    """Builds n records of "service,quantity,account" """
    def _build(rows: int) -> bytes:
        return "".join(f"mail,{i},account-{i}\n" for i in range(rows)).encode()

    return _build


@pytest.fixture
def finished_download(billing_db, step_types, input_folder):
    """
    Factory registering content as the output of a finished DOWNLOAD step,
    the way the download stage leaves it for the importer.
    """
    async def _create(content: bytes, file_name: str = "usage.csv"):
        download_type = step_types[StepTypeName.DOWNLOAD]
        downloader = StepService(
            billing_db,
            ImporterOptions(
                source_id=SOURCE_ID,
                step_type_id=download_type.step_type_id,
                input_folder=str(input_folder),
                user=DOWNLOAD_USER,
            ),
        )
        job, step = await downloader.start_collection_job(download_type)
        file_meta = fileutil.create_from_stream(io.BytesIO(content), str(input_folder), lambda: file_name)
        step, file = await downloader.finish_step_with_new_file(step, file_meta)
        return job, step, file

    return _create
