"""
Deploywatch FastAPI application.

Runs the monitor in the application lifespan: clones the repository if the
working copy is missing, then starts the scheduler. Exposes a small REST API
for inspecting the monitor and triggering a check.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel

from .config import Config, config
from .github import GitHubHeadResolver
from .notifier import EmailNotifier
from .orchestrator import DeployOrchestrator
from .process import ProcessSupervisor
from .scheduler import Scheduler
from .shell import ShellTaskRunner

# Configure logging with rotation
log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

file_handler = RotatingFileHandler(
    config.log_file,
    maxBytes=config.log_max_bytes,
    backupCount=config.log_backup_count,
)
file_handler.setFormatter(log_formatter)

console_handler = logging.StreamHandler()
console_handler.setFormatter(log_formatter)

logging.basicConfig(
    level=logging.INFO,
    handlers=[file_handler, console_handler],
)
logger = logging.getLogger(__name__)


def build_orchestrator(cfg: Config) -> DeployOrchestrator:
    """Wire the orchestrator's collaborators from configuration."""
    repo = cfg.repository()
    deploy_dir = cfg.deploy_dir()

    return DeployOrchestrator(
        repo=repo,
        resolver=GitHubHeadResolver(
            api_url=cfg.github_api_url,
            token=cfg.github_token,
            timeout=cfg.http_timeout,
        ),
        runner=ShellTaskRunner(
            repo=repo,
            deploy_dir=deploy_dir,
            requirements_file=cfg.requirements_file,
            install_command=cfg.install_command,
            timeout=cfg.command_timeout,
            git_base_url=cfg.github_url,
        ),
        supervisor=ProcessSupervisor(
            working_dir=deploy_dir,
            stop_timeout=cfg.stop_timeout,
            kill_timeout=cfg.kill_timeout,
        ),
        notifier=EmailNotifier(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            user=cfg.smtp_user,
            password=cfg.smtp_pass,
            recipient=cfg.notification_email,
            timeout=cfg.smtp_timeout,
        ),
        app_command=cfg.app_command(),
        history_size=cfg.history_size,
    )


async def ensure_working_copy(orchestrator: DeployOrchestrator):
    """Clone the repository if the deployment directory does not exist."""
    deploy_dir = orchestrator.runner.deploy_dir
    if deploy_dir.exists():
        return
    logger.info(f"Repository not found at {deploy_dir}")
    try:
        await orchestrator.runner.clone()
    except Exception as e:
        logger.error(f"Failed to clone repository: {e}")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting deploywatch...")

    missing = config.missing()
    if missing:
        raise RuntimeError(f"Missing required settings: {', '.join(missing)}")

    orchestrator = build_orchestrator(config)
    # A missing working copy that cannot be cloned is fatal
    await ensure_working_copy(orchestrator)

    scheduler = Scheduler(orchestrator, interval=config.check_interval_seconds)
    app.state.orchestrator = orchestrator
    app.state.scheduler = scheduler

    await scheduler.start()

    yield

    logger.info("Shutting down deploywatch...")
    await scheduler.stop()
    await orchestrator.supervisor.shutdown()


app = FastAPI(
    title="Deploywatch",
    description="Redeploys a supervised application when its GitHub branch changes",
    version="0.1.0",
    lifespan=lifespan,
)


class StatusResponse(BaseModel):
    repository: str
    branch: str
    state: str
    last_deployed_commit: Optional[str]
    cycle_in_progress: bool
    interval_seconds: float
    skipped_ticks: int
    last_result: Optional[dict]
    process: dict


@app.get("/api/status", response_model=StatusResponse)
async def get_status(request: Request):
    """Current monitor and process state."""
    orchestrator: DeployOrchestrator = request.app.state.orchestrator
    scheduler: Scheduler = request.app.state.scheduler

    return StatusResponse(
        **orchestrator.status(),
        interval_seconds=scheduler.interval,
        skipped_ticks=scheduler.skipped_ticks,
        process=await asyncio.to_thread(orchestrator.supervisor.status),
    )


@app.get("/api/cycles")
async def list_cycles(request: Request, limit: int = Query(20, ge=1, le=500)):
    """Most recent cycle results, newest first."""
    orchestrator: DeployOrchestrator = request.app.state.orchestrator
    return [result.to_dict() for result in list(orchestrator.history)[:limit]]


@app.post("/api/check", status_code=202)
async def trigger_check(request: Request):
    """Run a check now instead of waiting for the next tick."""
    scheduler: Scheduler = request.app.state.scheduler
    if not scheduler.trigger():
        raise HTTPException(status_code=409, detail="A deploy cycle is already in progress")
    return {"status": "scheduled"}
