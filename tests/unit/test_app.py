"""
Unit tests for the status API.

The lifespan is not run (TestClient is used without a context manager), so
app.state is populated directly with a real orchestrator over mocked
collaborators and a mocked scheduler.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from deploywatch.config import Config
from deploywatch.errors import ShellCommandError
from deploywatch.main import app, build_orchestrator, ensure_working_copy
from deploywatch.models import CycleOutcome, CycleResult, RepositoryReference
from deploywatch.orchestrator import DeployOrchestrator


@pytest.fixture
def orchestrator():
    supervisor = MagicMock()
    supervisor.is_running = MagicMock(return_value=True)
    supervisor.status = MagicMock(return_value={"running": True, "pid": 4242})
    resolver = AsyncMock()
    resolver.resolve_head = AsyncMock(return_value="abc123")
    return DeployOrchestrator(
        repo=RepositoryReference(owner="a", name="b"),
        resolver=resolver,
        runner=AsyncMock(),
        supervisor=supervisor,
        notifier=AsyncMock(),
        app_command=["node", "index.js"],
    )


@pytest.fixture
def scheduler():
    scheduler = MagicMock()
    scheduler.interval = 60
    scheduler.skipped_ticks = 2
    scheduler.trigger = MagicMock(return_value=True)
    return scheduler


@pytest.fixture
def client(orchestrator, scheduler):
    app.state.orchestrator = orchestrator
    app.state.scheduler = scheduler
    return TestClient(app)


class TestStatusApi:
    """Test suite for the REST endpoints."""

    def test_status(self, client):
        response = client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["repository"] == "a/b"
        assert data["branch"] == "main"
        assert data["state"] == "idle"
        assert data["last_deployed_commit"] is None
        assert data["cycle_in_progress"] is False
        assert data["skipped_ticks"] == 2
        assert data["process"]["pid"] == 4242

    def test_process_status_runs_off_the_event_loop(self, orchestrator, client):
        seen = {}

        def status():
            try:
                asyncio.get_running_loop()
                seen["in_loop"] = True
            except RuntimeError:
                seen["in_loop"] = False
            return {"running": False, "pid": None}

        orchestrator.supervisor.status = MagicMock(side_effect=status)

        response = client.get("/api/status")

        assert response.status_code == 200
        assert seen == {"in_loop": False}

    def test_cycles(self, orchestrator, client):
        orchestrator.history.appendleft(CycleResult(outcome=CycleOutcome.REDEPLOYED, commit="abc000"))
        orchestrator.history.appendleft(CycleResult(outcome=CycleOutcome.NO_CHANGE, commit="abc123"))

        response = client.get("/api/cycles", params={"limit": 1})

        assert response.status_code == 200
        cycles = response.json()
        assert len(cycles) == 1
        assert cycles[0]["outcome"] == "no_change"
        assert cycles[0]["commit"] == "abc123"

    def test_check_scheduled(self, client, scheduler):
        response = client.post("/api/check")

        assert response.status_code == 202
        assert response.json() == {"status": "scheduled"}
        scheduler.trigger.assert_called_once()

    def test_check_conflict(self, client, scheduler):
        scheduler.trigger.return_value = False

        response = client.post("/api/check")

        assert response.status_code == 409


class TestWiring:
    """Test suite for component wiring and startup."""

    def test_build_orchestrator(self, tmp_path):
        config = Config(
            data_dir=tmp_path / "data",
            settings_file=tmp_path / "settings.json",
            repo_owner="a",
            repo_name="b",
            local_path=str(tmp_path / "repo"),
            app_file="server.js",
        )

        orchestrator = build_orchestrator(config)

        assert orchestrator.repo == RepositoryReference(owner="a", name="b", branch=config.branch)
        assert orchestrator.app_command == [config.app_runtime, "server.js"]
        assert orchestrator.runner.deploy_dir == (tmp_path / "repo").resolve()
        assert orchestrator.supervisor.working_dir == (tmp_path / "repo").resolve()
        assert orchestrator.last_deployed_commit is None

    @pytest.mark.asyncio
    async def test_existing_working_copy_is_not_cloned(self, orchestrator, tmp_path):
        orchestrator.runner = MagicMock(deploy_dir=tmp_path)
        orchestrator.runner.clone = AsyncMock()

        await ensure_working_copy(orchestrator)

        orchestrator.runner.clone.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clone_failure_is_fatal(self, orchestrator, tmp_path):
        orchestrator.runner = MagicMock(deploy_dir=tmp_path / "missing")
        orchestrator.runner.clone = AsyncMock(side_effect=ShellCommandError(["git", "clone"], 128))

        with pytest.raises(ShellCommandError):
            await ensure_working_copy(orchestrator)
