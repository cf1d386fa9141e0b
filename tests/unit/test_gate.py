"""
Unit tests for the run gate and the background launcher
"""

import asyncio

import pytest

from importer.gate import JobLauncher, RunGate


def test_gate_is_single_slot():
    gate = RunGate()

    assert gate.try_acquire()
    assert gate.busy
    assert not gate.try_acquire()

    gate.release()
    assert not gate.busy
    assert gate.try_acquire()


@pytest.mark.asyncio
async def test_launch_refuses_while_running():
    release = asyncio.Event()
    calls = []

    async def job():
        calls.append(1)
        await release.wait()

    launcher = JobLauncher(job)

    assert launcher.launch()
    await asyncio.sleep(0)
    assert launcher.busy
    assert not launcher.launch()

    release.set()
    await launcher.wait_idle()

    assert not launcher.busy
    assert launcher.launch()
    await launcher.wait_idle()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_failing_job_releases_gate():
    async def job():
        raise RuntimeError("boom")

    launcher = JobLauncher(job)

    assert launcher.launch()
    await launcher.wait_idle()

    assert not launcher.busy
    assert launcher.launch()
    await launcher.wait_idle()


@pytest.mark.asyncio
async def test_concurrent_launches_admit_one():
    release = asyncio.Event()

    async def job():
        await release.wait()

    launcher = JobLauncher(job)
    results = [launcher.launch() for _ in range(5)]

    assert results.count(True) == 1

    release.set()
    await launcher.wait_idle()


def test_launch_outside_event_loop_releases_gate():
    async def job():
        pass

    launcher = JobLauncher(job)

    with pytest.raises(RuntimeError):
        launcher.launch()
    assert not launcher.busy
