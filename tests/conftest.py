import json

import pytest

from asset_agent.backends import Backend
from asset_agent.checkpoint import CheckpointStore
from asset_agent.engine import PlanEngine
from asset_agent.models import BackendResponse
from asset_agent.tools import DOCUMENTATION_TOOLS, Host, build_registry


class ScriptedBackend(Backend):
    """Replays canned responses in order and records every prompt it receives."""

    name = "scripted"

    def __init__(self, *responses: BackendResponse | str) -> None:
        self._responses = [
            BackendResponse.ok(r) if isinstance(r, str) else r for r in responses
        ]
        self.prompts: list[str] = []

    async def send(self, prompt: str) -> BackendResponse:
        self.prompts.append(prompt)
        if not self._responses:
            return BackendResponse.error("No scripted response left.")
        return self._responses.pop(0)


def plan_json(*steps: dict) -> str:
    return json.dumps({"plan": list(steps)})


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def store(project):
    return CheckpointStore(project / "Temp" / "asset_agent_plan.json")


@pytest.fixture
def log_dir(project):
    return project / "Logs"


@pytest.fixture
def make_engine(project, store, log_dir):
    """
    Build an engine against a fresh Host, which is what a process start
    (and therefore a simulated hard reload) does.
    """

    def _make(backend, registry=None, chain_tools=DOCUMENTATION_TOOLS):
        reload_check = None
        if registry is None:
            host = Host(project)
            registry, reload_check = build_registry(host), host.reload_pending
        return PlanEngine(
            backend=backend,
            registry=registry,
            store=CheckpointStore(store.path),
            log_dir=str(log_dir),
            chain_tools=chain_tools,
            reload_check=reload_check,
        )

    return _make
