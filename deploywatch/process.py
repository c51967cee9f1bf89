"""
Supervisor for the deployed application process.

Owns at most one child process. The child inherits the daemon's stdio, runs
in the deployment directory, and gets its own process group so that stop()
can signal the whole tree. An exit watcher clears the handle whenever the
child ends, whether it was stopped or crashed.
"""

import asyncio
import logging
import os
import shlex
import signal
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import psutil

from .errors import ProcessSpawnError, ProcessStopTimeout

logger = logging.getLogger(__name__)


@dataclass
class SupervisedProcess:
    """Handle for the running application."""

    process: subprocess.Popen
    command: list[str]
    started_at: datetime = field(default_factory=datetime.now)
    exit_code: Optional[int] = None
    exited: asyncio.Task = None

    @property
    def pid(self) -> int:
        return self.process.pid


class ProcessSupervisor:
    """Starts, stops and watches the single supervised process."""

    def __init__(self, working_dir: Path, stop_timeout: float = 10, kill_timeout: float = 5):
        self.working_dir = Path(working_dir)
        self.stop_timeout = stop_timeout
        self.kill_timeout = kill_timeout
        self.last_exit_code: Optional[int] = None
        self.start_count = 0
        self._handle: Optional[SupervisedProcess] = None

    @property
    def pid(self) -> Optional[int]:
        return self._handle.pid if self._handle else None

    def is_running(self) -> bool:
        return self._handle is not None

    def start(self, command: list[str]) -> bool:
        """Spawn the application. Returns False if it is already running."""
        if self._handle is not None:
            logger.info(f"App is already running with PID {self._handle.pid}")
            return False

        logger.info(f"Starting {shlex.join(command)} in {self.working_dir}")
        try:
            process = subprocess.Popen(
                command,
                stdin=None,
                stdout=None,
                stderr=None,
                cwd=str(self.working_dir),
                start_new_session=True,  # Create new process group
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start {shlex.join(command)}: {e}") from e

        handle = SupervisedProcess(process=process, command=list(command))
        handle.exited = asyncio.create_task(self._watch(handle))
        self._handle = handle
        self.start_count += 1

        logger.info(f"Started app with PID {process.pid}")
        return True

    async def _watch(self, handle: SupervisedProcess) -> int:
        """Wait for the child to end and clear the handle."""
        loop = asyncio.get_running_loop()
        code = await loop.run_in_executor(None, handle.process.wait)

        handle.exit_code = code
        self.last_exit_code = code
        if self._handle is handle:
            self._handle = None

        logger.info(f"Child process {handle.pid} exited with code {code}")
        return code

    async def stop(self) -> Optional[int]:
        """
        Stop the application and wait for it to exit.

        Sends SIGTERM to the process group, then SIGKILL after stop_timeout.
        Returns the exit code, or None when nothing was running.
        """
        handle = self._handle
        if handle is None:
            logger.info("No app is currently running")
            return None

        logger.info(f"Stopping the app (PID {handle.pid})...")
        self._signal_group(handle, signal.SIGTERM)

        try:
            await asyncio.wait_for(asyncio.shield(handle.exited), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"App did not stop within {self.stop_timeout}s, forcing kill"
            )
            self._kill_tree(handle)
            try:
                await asyncio.wait_for(asyncio.shield(handle.exited), timeout=self.kill_timeout)
            except asyncio.TimeoutError:
                raise ProcessStopTimeout(handle.pid, self.kill_timeout)

        logger.info("App stopped")
        return handle.exit_code

    def _signal_group(self, handle: SupervisedProcess, sig: int):
        try:
            os.killpg(os.getpgid(handle.pid), sig)
        except ProcessLookupError:
            pass

    def _kill_tree(self, handle: SupervisedProcess):
        """SIGKILL the process group and any descendants that left it."""
        try:
            children = psutil.Process(handle.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []

        self._signal_group(handle, signal.SIGKILL)

        for child in children:
            try:
                child.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

    def status(self) -> dict:
        """Current state of the supervised process, with resource usage."""
        handle = self._handle
        result = {
            "running": handle is not None,
            "pid": None,
            "command": None,
            "uptime_seconds": 0,
            "cpu_percent": 0.0,
            "memory_mb": 0.0,
            "child_processes": 0,
            "start_count": self.start_count,
            "last_exit_code": self.last_exit_code,
        }
        if handle is None:
            return result

        result.update({
            "pid": handle.pid,
            "command": shlex.join(handle.command),
            "uptime_seconds": (datetime.now() - handle.started_at).total_seconds(),
        })

        try:
            proc = psutil.Process(handle.pid)
            cpu_percent = proc.cpu_percent(interval=0.1)
            memory_mb = proc.memory_info().rss / 1024 / 1024

            # Include children
            try:
                children = proc.children(recursive=True)
                result["child_processes"] = len(children)
                for child in children:
                    cpu_percent += child.cpu_percent(interval=0.1)
                    memory_mb += child.memory_info().rss / 1024 / 1024
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

            result["cpu_percent"] = round(cpu_percent, 1)
            result["memory_mb"] = round(memory_mb, 1)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

        return result

    async def shutdown(self):
        """Stop the application when the daemon exits."""
        try:
            await self.stop()
        except ProcessStopTimeout as e:
            logger.error(f"Could not stop app during shutdown: {e}")
