"""
Shell-level deployment tasks.

Clones the repository on first run, pulls the watched branch on every
redeploy and installs the packages listed in the dependency manifest. Each
task is one external command; only a nonzero exit counts as failure.
"""

import asyncio
import logging
import os
import shlex
import signal
from pathlib import Path

from .errors import ShellCommandError, ShellCommandTimeout
from .models import RepositoryReference

logger = logging.getLogger(__name__)

NO_DEPENDENCIES = "No new dependencies."


def read_manifest(path: Path) -> list[str]:
    """Package names from a newline-separated manifest, blank lines ignored."""
    if not path.exists():
        return []
    return [line.strip() for line in path.read_text().splitlines() if line.strip()]


class ShellTaskRunner:
    """Runs git and dependency-install commands against the deployment directory."""

    def __init__(
        self,
        repo: RepositoryReference,
        deploy_dir: Path,
        requirements_file: str = "required.txt",
        install_command: str = "npm install",
        timeout: float = 600,
        git_base_url: str = "https://github.com",
    ):
        self.repo = repo
        self.deploy_dir = Path(deploy_dir)
        self.requirements_file = requirements_file
        self.install_command = install_command
        self.timeout = timeout
        self.git_base_url = git_base_url

    async def run(self, cmd: list[str], cwd: Path = None) -> str:
        """
        Run a command to completion and return its stdout.

        Raises ShellCommandError on a nonzero exit and ShellCommandTimeout if
        the command outlives the runner's timeout.
        """
        logger.debug(f"Running: {shlex.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
                start_new_session=True,  # Create new process group
            )
        except OSError as e:
            raise ShellCommandError(cmd, 127, str(e)) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            await self._kill_group(process)
            raise ShellCommandTimeout(cmd, self.timeout)
        except asyncio.CancelledError:
            await asyncio.shield(self._kill_group(process))
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

        if stderr.strip():
            # git reports progress on stderr, so this is not a failure by itself
            logger.warning(f"stderr from {cmd[0]}: {stderr.strip()}")

        if process.returncode != 0:
            raise ShellCommandError(cmd, process.returncode, stdout + stderr)

        return stdout

    async def _kill_group(self, process: asyncio.subprocess.Process):
        """SIGKILL the command and every helper it started, then reap it."""
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
        except ProcessLookupError:
            pass
        await process.wait()

    async def clone(self) -> str:
        """Clone the watched branch into the deployment directory."""
        url = self.repo.clone_url(self.git_base_url)
        logger.info(f"Cloning repository from {url}")
        self.deploy_dir.parent.mkdir(parents=True, exist_ok=True)
        output = await self.run(["git", "clone", "-b", self.repo.branch, url, str(self.deploy_dir)])
        logger.info(f"Repository cloned into {self.deploy_dir}")
        return output

    async def pull(self) -> str:
        """Pull the watched branch into the working copy."""
        output = await self.run(
            ["git", "-C", str(self.deploy_dir), "pull", "origin", self.repo.branch]
        )
        logger.info(f"Changes pulled successfully: {output.strip()}")
        return output

    async def install(self) -> str:
        """Install the packages listed in the manifest, if there are any."""
        manifest = self.deploy_dir / self.requirements_file
        if not manifest.exists():
            logger.info(f"No {self.requirements_file} file found. Skipping dependency installation.")
            return NO_DEPENDENCIES

        packages = read_manifest(manifest)
        if not packages:
            logger.info(f"{self.requirements_file} is empty. Skipping dependency installation.")
            return NO_DEPENDENCIES

        logger.info(f"Installing dependencies: {', '.join(packages)}")
        await self.run(shlex.split(self.install_command) + packages, cwd=self.deploy_dir)
        logger.info("Dependencies installed successfully")
        return f"Installed dependencies: {', '.join(packages)}"
