"""
Unit tests for ProcessSupervisor.

These spawn short-lived Python child processes, so they exercise the real
signal handling and exit watching.
"""

import asyncio
import signal
import sys
from pathlib import Path

import pytest

from deploywatch.errors import ProcessSpawnError
from deploywatch.process import ProcessSupervisor

SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]
STUBBORN = [
    sys.executable,
    "-c",
    "import signal, time, pathlib; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
    "pathlib.Path('ready').touch(); time.sleep(30)",
]


async def wait_for_file(path, timeout=5.0):
    for _ in range(int(timeout / 0.02)):
        if path.exists():
            return
        await asyncio.sleep(0.02)
    raise AssertionError(f"{path} never appeared")


class TestProcessSupervisor:
    """Test suite for ProcessSupervisor."""

    @pytest.fixture
    def supervisor(self, tmp_path):
        return ProcessSupervisor(working_dir=tmp_path, stop_timeout=2, kill_timeout=2)

    @pytest.mark.asyncio
    async def test_start_and_stop(self, supervisor):
        assert supervisor.start(SLEEPER)
        try:
            assert supervisor.is_running()
            assert supervisor.pid is not None
        finally:
            code = await supervisor.stop()

        assert code == -signal.SIGTERM
        assert not supervisor.is_running()
        assert supervisor.pid is None
        assert supervisor.last_exit_code == -signal.SIGTERM

    @pytest.mark.asyncio
    async def test_start_when_running_is_noop(self, supervisor):
        supervisor.start(SLEEPER)
        try:
            pid = supervisor.pid
            assert not supervisor.start(SLEEPER)
            assert supervisor.pid == pid
            assert supervisor.start_count == 1
        finally:
            await supervisor.stop()

    @pytest.mark.asyncio
    async def test_stop_without_process(self, supervisor):
        assert await supervisor.stop() is None
        assert supervisor.last_exit_code is None
        assert supervisor.start_count == 0

    @pytest.mark.asyncio
    async def test_crash_clears_handle(self, supervisor):
        """An unexpected exit is noticed and the handle cleared."""
        supervisor.start([sys.executable, "-c", "import sys; sys.exit(3)"])
        handle = supervisor._handle

        await asyncio.wait_for(handle.exited, timeout=5)

        assert not supervisor.is_running()
        assert supervisor.last_exit_code == 3

        # A fresh start is allowed after a crash
        assert supervisor.start(SLEEPER)
        await supervisor.stop()
        assert supervisor.start_count == 2

    @pytest.mark.asyncio
    async def test_runs_in_working_dir(self, supervisor, tmp_path):
        supervisor.start([sys.executable, "-c", "import os; open('cwd.txt', 'w').write(os.getcwd())"])
        await asyncio.wait_for(supervisor._handle.exited, timeout=5)

        assert Path((tmp_path / "cwd.txt").read_text()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_stop_escalates_to_kill(self, tmp_path):
        supervisor = ProcessSupervisor(working_dir=tmp_path, stop_timeout=0.5, kill_timeout=2)
        supervisor.start(STUBBORN)
        try:
            await wait_for_file(tmp_path / "ready")
        finally:
            code = await supervisor.stop()

        assert code == -signal.SIGKILL
        assert not supervisor.is_running()

    @pytest.mark.asyncio
    async def test_spawn_failure(self, supervisor, tmp_path):
        with pytest.raises(ProcessSpawnError):
            supervisor.start([str(tmp_path / "does-not-exist")])

        assert not supervisor.is_running()
        assert supervisor.start_count == 0

    @pytest.mark.asyncio
    async def test_status(self, supervisor):
        idle = supervisor.status()
        assert idle["running"] is False
        assert idle["pid"] is None

        supervisor.start(SLEEPER)
        try:
            status = supervisor.status()
            assert status["running"] is True
            assert status["pid"] == supervisor.pid
            assert status["start_count"] == 1
            assert status["uptime_seconds"] >= 0
        finally:
            await supervisor.shutdown()

        assert not supervisor.is_running()
