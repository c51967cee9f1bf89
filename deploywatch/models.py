"""
Data model for deploywatch.

Holds the repository reference the daemon watches, the states of the redeploy
state machine, and the transient result of each tick.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class RepositoryReference:
    """The single repository branch being watched."""

    owner: str
    name: str
    branch: str = "main"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def commit_path(self) -> str:
        """API path of the latest commit on the branch."""
        return f"/repos/{self.owner}/{self.name}/commits/{self.branch}"

    def clone_url(self, base_url: str = "https://github.com") -> str:
        return f"{base_url.rstrip('/')}/{self.owner}/{self.name}.git"


class DeployState(Enum):
    IDLE = "idle"
    DECIDING = "deciding"
    STOPPING = "stopping"
    SYNCING = "syncing"
    INSTALLING = "installing"
    STARTING = "starting"
    NOTIFYING = "notifying"


class CycleOutcome(Enum):
    NO_CHANGE = "no_change"
    REDEPLOYED = "redeployed"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass
class CycleResult:
    """What happened during one tick."""

    outcome: CycleOutcome = CycleOutcome.NO_CHANGE
    commit: Optional[str] = None
    previous_commit: Optional[str] = None
    failed_step: Optional[DeployState] = None
    error: Optional[str] = None
    healed: bool = False
    message_id: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (CycleOutcome.NO_CHANGE, CycleOutcome.REDEPLOYED)

    def fail(self, step: DeployState, error: Exception) -> "CycleResult":
        self.outcome = CycleOutcome.FAILED
        self.failed_step = step
        self.error = str(error) or type(error).__name__
        return self

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "commit": self.commit,
            "previous_commit": self.previous_commit,
            "failed_step": self.failed_step.value if self.failed_step else None,
            "error": self.error,
            "healed": self.healed,
            "message_id": self.message_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": (
                (self.completed_at or datetime.now()) - self.started_at
            ).total_seconds(),
        }
