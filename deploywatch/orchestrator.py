"""
Redeploy state machine.

Each tick resolves the branch tip and compares it with the last commit that
was deployed. On a change it runs stop -> pull -> install -> start -> notify
in that order; with no change it only restarts the application if it is not
running. Every failure is caught here, at the cycle boundary, and the next
tick is the retry. Only one cycle may run at a time.
"""

import logging
import textwrap
from collections import deque
from datetime import datetime
from typing import Optional

from .errors import DeployError
from .models import CycleOutcome, CycleResult, DeployState, RepositoryReference

logger = logging.getLogger(__name__)


class DeployOrchestrator:
    """Decides whether to redeploy and sequences the redeploy steps."""

    def __init__(
        self,
        repo: RepositoryReference,
        resolver,
        runner,
        supervisor,
        notifier,
        app_command: list[str],
        history_size: int = 50,
    ):
        self.repo = repo
        self.resolver = resolver
        self.runner = runner
        self.supervisor = supervisor
        self.notifier = notifier
        self.app_command = app_command

        self.state = DeployState.IDLE
        self.last_deployed_commit: Optional[str] = None
        self.cycle_in_progress = False
        self.history: deque[CycleResult] = deque(maxlen=history_size)

    def _enter(self, state: DeployState):
        logger.debug(f"Deploy state {self.state.value} -> {state.value}")
        self.state = state

    async def run_cycle(self) -> CycleResult:
        """Run one tick. Returns a REJECTED result if a cycle is already in flight."""
        if self.cycle_in_progress:
            logger.warning(f"Deploy cycle already in progress ({self.state.value}), rejecting tick")
            return CycleResult(outcome=CycleOutcome.REJECTED, completed_at=datetime.now())

        self.cycle_in_progress = True
        result = CycleResult(previous_commit=self.last_deployed_commit)

        try:
            await self._run(result)
        except DeployError as e:
            result.fail(self.state, e)
            logger.error(f"Error checking for changes while {self.state.value}: {e}")
        except Exception as e:
            result.fail(self.state, e)
            logger.exception(f"Unexpected error while {self.state.value}: {e}")
        finally:
            self.state = DeployState.IDLE
            self.cycle_in_progress = False
            result.completed_at = datetime.now()
            self.history.appendleft(result)

        return result

    async def _run(self, result: CycleResult):
        self._enter(DeployState.DECIDING)
        commit = await self.resolver.resolve_head(self.repo)
        result.commit = commit

        if commit == self.last_deployed_commit:
            logger.info("No new changes detected.")
            if not self.supervisor.is_running():
                logger.info("App is not running, starting it")
                self._enter(DeployState.STARTING)
                self.supervisor.start(self.app_command)
                result.healed = True
            result.outcome = CycleOutcome.NO_CHANGE
            return

        logger.info(f"New commit detected ({commit[:12]}). Pulling changes...")

        # Stop before touching files so the app never runs a half-updated tree
        self._enter(DeployState.STOPPING)
        await self.supervisor.stop()

        self._enter(DeployState.SYNCING)
        pull_output = await self.runner.pull()

        self._enter(DeployState.INSTALLING)
        dependencies = await self.runner.install()

        self._enter(DeployState.STARTING)
        self.supervisor.start(self.app_command)

        # Deploy is in effect from here on; a failed email does not undo it
        self.last_deployed_commit = commit
        result.outcome = CycleOutcome.REDEPLOYED

        self._enter(DeployState.NOTIFYING)
        subject, body = self.compose_notification(commit, pull_output, dependencies)
        result.message_id = await self.notifier.send(subject, body)

        logger.info(f"Redeployed {self.repo.full_name} at {commit[:12]}")

    def compose_notification(self, commit: str, changes: str, dependencies: str) -> tuple[str, str]:
        subject = f"Update Notification: {self.repo.name}"
        body = textwrap.dedent(
            """\
            An update has been applied to {name} ({branch} @ {commit}).

            Changes:
            {changes}

            Dependencies:
            {dependencies}

            The application has been restarted.
            """
        ).format(
            name=self.repo.name,
            branch=self.repo.branch,
            commit=commit,
            changes=changes.strip() or "(no output)",
            dependencies=dependencies,
        )
        return subject, body

    def status(self) -> dict:
        return {
            "repository": self.repo.full_name,
            "branch": self.repo.branch,
            "state": self.state.value,
            "last_deployed_commit": self.last_deployed_commit,
            "cycle_in_progress": self.cycle_in_progress,
            "last_result": self.history[0].to_dict() if self.history else None,
        }
