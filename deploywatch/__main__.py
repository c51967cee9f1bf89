"""
Entry point for running deploywatch via `python -m deploywatch`.

Runs the first-run settings wizard when nothing is configured yet, then
starts the FastAPI server with uvicorn.
"""

import sys

import click
import uvicorn

from .config import config
from .wizard import create_settings_file


@click.command()
@click.option("--host", default=None, help="Status API host (default: DEPLOYWATCH_HOST)")
@click.option("--port", type=int, default=None, help="Status API port (default: DEPLOYWATCH_PORT)")
@click.option("--setup", is_flag=True, help="Run the settings wizard even if settings exist")
def main(host: str, port: int, setup: bool):
    """Watch a GitHub branch and redeploy the application on every new commit."""
    if setup or (not config.settings_file.exists() and config.missing()):
        if not sys.stdin.isatty():
            click.echo(
                f"Error: {config.settings_file} not found and REPO_OWNER/REPO_NAME are not set",
                err=True,
            )
            sys.exit(1)
        create_settings_file(config)

    uvicorn.run(
        "deploywatch.main:app",
        host=host or config.host,
        port=port or config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
