"""
Background jobs running on the service's event loop: the dependency
health loop and the optional periodic import trigger.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.exceptions import error_message
from importer.gate import JobLauncher
from schemas.api import DependencyHealth
import logging

logger = logging.getLogger(__name__)

DEPENDENCY_DESCRIPTIONS = {
    "BillingDB": "Billing Database Interface",
}


class HealthMonitor:
    """
    Caches the latest check of each dependency.

    A dependency is any object with an async check() returning a dict of
    details; raising marks it unhealthy until the next check.
    """

    def __init__(self, dependencies: Dict[str, Any]):
        self.dependencies = dependencies
        self._results: Dict[str, DependencyHealth] = {}

    @property
    def checked(self) -> bool:
        return bool(self._results)

    async def refresh(self) -> List[DependencyHealth]:
        for name, dependency in self.dependencies.items():
            self._results[name] = await self._check(name, dependency)
        return self.results()

    def results(self) -> List[DependencyHealth]:
        return [self._results[name] for name in self.dependencies if name in self._results]

    async def _check(self, name: str, dependency) -> DependencyHealth:
        description = DEPENDENCY_DESCRIPTIONS.get(name, "")
        try:
            details = await dependency.check()
        except Exception as e:
            logger.error(f"Health check failed for {name}: {e}")
            return DependencyHealth(
                name=name,
                description=description,
                healthy=False,
                checked_at=datetime.utcnow(),
                error=error_message(e),
            )

        return DependencyHealth(
            name=name,
            description=description,
            healthy=True,
            checked_at=datetime.utcnow(),
            details=details or {},
        )


class ImportScheduler:
    """
    APScheduler wrapper for the service's periodic jobs.

    - health: refreshes the HealthMonitor every health_interval_seconds
    - import: triggers the launcher every import_interval_minutes (when > 0);
      a tick that finds a run in progress is skipped
    """

    def __init__(
        self,
        health_monitor: HealthMonitor,
        launcher: Optional[JobLauncher] = None,
        health_interval_seconds: int = 30,
        import_interval_minutes: int = 0
    ):
        self.scheduler = AsyncIOScheduler()
        self.health_monitor = health_monitor
        self.launcher = launcher
        self.health_interval_seconds = health_interval_seconds
        self.import_interval_minutes = import_interval_minutes

    async def run_health_job(self):
        """Job to refresh dependency health"""
        await self.health_monitor.refresh()

    async def run_import_job(self):
        """Job to trigger an import run"""
        if not self.launcher.launch():
            logger.info("Scheduler: import still running, skipping this tick")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_health_job,
            trigger=IntervalTrigger(seconds=self.health_interval_seconds),
            id="health_job",
            next_run_time=datetime.now(),
            replace_existing=True
        )

        if self.launcher is not None and self.import_interval_minutes > 0:
            self.scheduler.add_job(
                self.run_import_job,
                trigger=IntervalTrigger(minutes=self.import_interval_minutes),
                id="import_job",
                replace_existing=True
            )
            logger.info(f"Scheduled import every {self.import_interval_minutes} minutes")

        self.scheduler.start()
        logger.info("Import Scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Import Scheduler stopped")
