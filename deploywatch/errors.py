"""
Exceptions raised by deploywatch collaborators.

Each step of a redeploy cycle raises one of these; the orchestrator catches
them at the cycle boundary and records the cycle as failed.
"""


class DeployError(Exception):
    """Base class for all deploywatch failures."""


class NetworkError(DeployError):
    """The hosting service could not be reached."""


class ApiError(DeployError):
    """The hosting service answered with a non-success status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(message or f"GitHub API responded with status code {status_code}")


class ParseError(DeployError):
    """The hosting service's response body could not be interpreted."""


class ShellCommandError(DeployError):
    """An external command exited with a nonzero status."""

    def __init__(self, command: list[str], exit_code: int, output: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        detail = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(f"'{' '.join(command)}' exited with code {exit_code}: {detail}")


class ShellCommandTimeout(ShellCommandError):
    """An external command did not finish within its time limit."""

    def __init__(self, command: list[str], timeout: float, output: str = ""):
        self.timeout = timeout
        super().__init__(command, -1, output)
        self.args = (f"'{' '.join(command)}' timed out after {timeout}s",)


class ProcessSpawnError(DeployError):
    """The supervised application could not be started."""


class ProcessStopTimeout(DeployError):
    """The supervised application survived both SIGTERM and SIGKILL."""

    def __init__(self, pid: int, timeout: float):
        self.pid = pid
        self.timeout = timeout
        super().__init__(f"Process {pid} did not exit within {timeout}s after SIGKILL")


class EmailSendError(DeployError):
    """A notification email could not be delivered."""
