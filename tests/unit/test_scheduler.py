import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.exceptions import StorageError
from importer.scheduler import HealthMonitor, ImportScheduler


@pytest.mark.asyncio
async def test_health_monitor_caches_results():
    dependency = AsyncMock()
    dependency.check.return_value = {"dialect": "sqlite", "latency_ms": 0.4}
    monitor = HealthMonitor({"BillingDB": dependency})

    assert not monitor.checked
    results = await monitor.refresh()

    assert monitor.checked
    assert results[0].name == "BillingDB"
    assert results[0].description == "Billing Database Interface"
    assert results[0].healthy
    assert results[0].details["dialect"] == "sqlite"


@pytest.mark.asyncio
async def test_health_monitor_marks_failed_dependency():
    dependency = AsyncMock()
    dependency.check.side_effect = StorageError("Billing database is unreachable")
    monitor = HealthMonitor({"BillingDB": dependency})

    results = await monitor.refresh()

    assert not results[0].healthy
    assert results[0].error == "Billing database is unreachable"

    dependency.check.side_effect = None
    dependency.check.return_value = {}
    assert (await monitor.refresh())[0].healthy


@pytest.mark.asyncio
async def test_scheduler_registers_jobs():
    launcher = MagicMock()
    scheduler = ImportScheduler(HealthMonitor({}), launcher=launcher, import_interval_minutes=5)

    with patch.object(scheduler.scheduler, "start") as mock_start:
        scheduler.start()

    assert {job.id for job in scheduler.scheduler.get_jobs()} == {"health_job", "import_job"}
    mock_start.assert_called_once()


@pytest.mark.asyncio
async def test_scheduler_without_import_interval():
    scheduler = ImportScheduler(HealthMonitor({}), launcher=MagicMock(), import_interval_minutes=0)

    with patch.object(scheduler.scheduler, "start"):
        scheduler.start()

    assert [job.id for job in scheduler.scheduler.get_jobs()] == ["health_job"]


@pytest.mark.asyncio
async def test_scheduled_import_goes_through_launcher():
    launcher = MagicMock()
    launcher.launch.return_value = False
    scheduler = ImportScheduler(HealthMonitor({}), launcher=launcher, import_interval_minutes=5)

    await scheduler.run_import_job()

    launcher.launch.assert_called_once()


@pytest.mark.asyncio
async def test_health_job_refreshes_monitor():
    monitor = MagicMock()
    monitor.refresh = AsyncMock()
    scheduler = ImportScheduler(monitor)

    await scheduler.run_health_job()

    monitor.refresh.assert_awaited_once()
