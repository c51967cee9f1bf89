"""
First-run settings wizard.

Prompts for every setting the daemon needs and writes them to the JSON
settings file that Config reads at startup.
"""

import json
from pathlib import Path

import click

from .config import Config


def prompt_settings(defaults: Config) -> dict:
    """Ask the user for each setting, offering the current values as defaults."""
    return {
        "repo_owner": click.prompt("GitHub repository owner", default=defaults.repo_owner or None),
        "repo_name": click.prompt("GitHub repository name", default=defaults.repo_name or None),
        "branch": click.prompt("Branch to monitor", default=defaults.branch),
        "check_interval_seconds": click.prompt(
            "Check interval in seconds", default=defaults.check_interval_seconds, type=click.IntRange(min=1)
        ),
        "app_runtime": click.prompt("Runtime used to launch the application", default=defaults.app_runtime),
        "app_file": click.prompt("Main application file to run", default=defaults.app_file),
        "notification_email": click.prompt(
            "Email address for update notifications", default=defaults.notification_email
        ),
        "smtp_host": click.prompt("SMTP host for sending emails", default=defaults.smtp_host),
        "smtp_port": click.prompt("SMTP port", default=defaults.smtp_port, type=int),
        "smtp_user": click.prompt("SMTP username", default=defaults.smtp_user),
        "smtp_pass": click.prompt(
            "SMTP password", default=defaults.smtp_pass, hide_input=True, show_default=False
        ),
        "local_path": click.prompt(
            "Local path where the repository should be cloned", default=defaults.local_path
        ),
    }


def create_settings_file(config: Config, path: Path = None) -> Path:
    """Run the wizard, save the answers and apply them to config."""
    path = Path(path or config.settings_file)
    click.echo("Settings file not found. Let's create one!")

    settings = prompt_settings(config)
    path.write_text(json.dumps(settings, indent=2))
    path.chmod(0o600)
    click.echo(f"Settings saved to {path}")

    config.apply_settings(path)
    return path
