"""
Admission control for import executions.

At most one execution runs at a time. A trigger that arrives while one is
running is refused immediately instead of queued.
"""

import asyncio
import threading
from typing import Awaitable, Callable, Set

import logging

logger = logging.getLogger(__name__)


class RunGate:
    """Single-slot, non-blocking lock"""

    def __init__(self):
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def busy(self) -> bool:
        return self._lock.locked()


class JobLauncher:
    """
    Runs a job in the background behind a RunGate.

    The job is an async callable; its result is ignored and its errors are
    logged here, so a failing run never reaches the trigger's caller.
    """

    def __init__(self, job: Callable[[], Awaitable], gate: RunGate = None, name: str = "import"):
        self.job = job
        self.gate = gate or RunGate()
        self.name = name
        self._tasks: Set[asyncio.Task] = set()

    @property
    def busy(self) -> bool:
        return self.gate.busy

    def launch(self) -> bool:
        """
        Start the job unless one is already running.

        Returns:
            True when the job was scheduled, False when the gate was busy
        """
        if not self.gate.try_acquire():
            logger.info(f"Refused {self.name} run: another run is in progress")
            return False

        try:
            task = asyncio.get_running_loop().create_task(self._run())
        except RuntimeError:
            self.gate.release()
            raise

        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self) -> None:
        try:
            logger.info(f"Starting {self.name} run")
            await self.job()
            logger.info(f"Finished {self.name} run")
        except Exception:
            logger.exception(f"{self.name.capitalize()} run failed")
        finally:
            self.gate.release()

    async def wait_idle(self) -> None:
        """Wait for every launched run to complete"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
