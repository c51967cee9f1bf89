"""
Configuration for the deploywatch daemon.

Loads settings from environment variables with sensible defaults, then
overlays the JSON settings file written by the first-run wizard.
Daemon logs are stored in ~/.deploywatch/
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from dotenv import load_dotenv

from .models import RepositoryReference

load_dotenv()

logger = logging.getLogger(__name__)

# Keys used by settings files from earlier releases
LEGACY_KEYS = {
    "repoOwner": "repo_owner",
    "repoName": "repo_name",
    "checkIntervalSeconds": "check_interval_seconds",
    "appFile": "app_file",
    "notificationEmail": "notification_email",
    "smtpHost": "smtp_host",
    "smtpPort": "smtp_port",
    "smtpUser": "smtp_user",
    "smtpPass": "smtp_pass",
    "localPath": "local_path",
}

REQUIRED_FIELDS = ("repo_owner", "repo_name")


@dataclass
class Config:
    """Deploywatch configuration."""

    # Paths
    data_dir: Path = Path(os.environ.get("DEPLOYWATCH_HOME", str(Path.home() / ".deploywatch")))
    settings_file: Path = Path(os.environ.get("DEPLOYWATCH_SETTINGS", "settings.json"))
    log_file: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    # Status API
    host: str = os.environ.get("DEPLOYWATCH_HOST", "127.0.0.1")
    port: int = int(os.environ.get("DEPLOYWATCH_PORT", "9910"))

    # Repository
    repo_owner: str = os.environ.get("REPO_OWNER", "")
    repo_name: str = os.environ.get("REPO_NAME", "")
    branch: str = os.environ.get("BRANCH", "main")
    check_interval_seconds: int = int(os.environ.get("CHECK_INTERVAL_SECONDS", "60"))
    local_path: str = os.environ.get("LOCAL_PATH", "./repo")

    # GitHub
    github_api_url: str = os.environ.get("GITHUB_API_URL", "https://api.github.com")
    github_url: str = os.environ.get("GITHUB_URL", "https://github.com")
    github_token: str = os.environ.get("GITHUB_TOKEN", "")
    http_timeout: float = float(os.environ.get("HTTP_TIMEOUT", "30"))

    # Application
    app_runtime: str = os.environ.get("APP_RUNTIME", "node")
    app_file: str = os.environ.get("APP_FILE", "index.js")
    requirements_file: str = os.environ.get("REQUIREMENTS_FILE", "required.txt")
    install_command: str = os.environ.get("INSTALL_COMMAND", "npm install")
    command_timeout: float = float(os.environ.get("COMMAND_TIMEOUT", "600"))
    stop_timeout: float = float(os.environ.get("STOP_TIMEOUT", "10"))
    kill_timeout: float = float(os.environ.get("KILL_TIMEOUT", "5"))

    # Notifications
    notification_email: str = os.environ.get("NOTIFICATION_EMAIL", "")
    smtp_host: str = os.environ.get("SMTP_HOST", "")
    smtp_port: int = int(os.environ.get("SMTP_PORT", "587"))
    smtp_user: str = os.environ.get("SMTP_USER", "")
    smtp_pass: str = os.environ.get("SMTP_PASS", "")
    smtp_timeout: float = float(os.environ.get("SMTP_TIMEOUT", "30"))

    # Orchestration
    history_size: int = int(os.environ.get("HISTORY_SIZE", "50"))

    def __post_init__(self):
        """Initialize derived paths, create directories and read the settings file."""
        self.data_dir = Path(self.data_dir)
        self.settings_file = Path(self.settings_file)
        self.log_file = self.data_dir / "deploywatch.log"

        self.data_dir.mkdir(parents=True, exist_ok=True)

        if self.settings_file.exists():
            self.apply_settings(self.settings_file)

    def apply_settings(self, path: Path):
        """Overlay values from a JSON settings file."""
        data = json.loads(Path(path).read_text())
        known = {f.name for f in fields(self)} - {"data_dir", "settings_file", "log_file"}

        for key, value in data.items():
            name = LEGACY_KEYS.get(key, key)
            if name not in known:
                logger.warning(f"Ignoring unknown setting '{key}' in {path}")
                continue
            current = getattr(self, name)
            # Coerce to the type of the default, so "60" and 60 both work
            if isinstance(current, (int, float)) and not isinstance(value, type(current)):
                try:
                    value = type(current)(value)
                except (TypeError, ValueError) as e:
                    raise ValueError(
                        f"Invalid value {value!r} for setting '{key}' in {path}: "
                        f"expected {type(current).__name__}"
                    ) from e
            setattr(self, name, value)

        logger.info(f"Loaded settings from {path}")

    def missing(self) -> list[str]:
        """Names of required settings that are unset."""
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]

    def repository(self) -> RepositoryReference:
        return RepositoryReference(owner=self.repo_owner, name=self.repo_name, branch=self.branch)

    def app_command(self) -> list[str]:
        """Command that runs the supervised application."""
        return [self.app_runtime, self.app_file]

    def deploy_dir(self) -> Path:
        return Path(self.local_path).expanduser().resolve()


config = Config()
