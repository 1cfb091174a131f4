"""
Unit Tests for the worker process entry point.
"""

import asyncio

import pytest

from phi_claims.workers import main as worker_main
from phi_claims.workers.intake_worker import IntakeWorker


@pytest.fixture
def demo_container(container, monkeypatch):
    """Route main() to the shared demo container."""
    monkeypatch.setattr(worker_main, "build_container", lambda settings: container)
    return container


@pytest.mark.unit
class TestWorkerMain:
    """Process lifetime of the worker entry point."""

    @pytest.mark.asyncio
    async def test_crashed_poll_loop_exits_nonzero(self, settings, demo_container, monkeypatch):
        async def crash(self, stop_event):
            raise RuntimeError("poll loop bug")

        monkeypatch.setattr(IntakeWorker, "run", crash)

        exit_code = await asyncio.wait_for(worker_main.main(settings), timeout=5)

        assert exit_code == 1

    @pytest.mark.asyncio
    async def test_requested_stop_exits_cleanly(self, settings, demo_container, monkeypatch):
        async def stop_soon(self, stop_event):
            asyncio.get_running_loop().call_soon(stop_event.set)
            await stop_event.wait()

        monkeypatch.setattr(IntakeWorker, "run", stop_soon)

        exit_code = await asyncio.wait_for(worker_main.main(settings), timeout=5)

        assert exit_code == 0
