"""Shared test fixtures for meshpilot."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from meshpilot.agent.guards import RouterLoopGuard
from meshpilot.agent.progress import BestEffortSink, CallbackSink
from meshpilot.agent.run import AgentRun
from meshpilot.agent.tasklog import BestEffortTaskLog, InMemoryTaskLog
from meshpilot.mesh.catalog import ToolCatalog
from meshpilot.providers.manager import ProviderManager
from meshpilot.tools.files import file_tools
from meshpilot.tools.registry import LocalToolRegistry

if TYPE_CHECKING:
    from meshpilot.mesh.rpc import MeshRpcClient
    from tests.fixtures.mesh import FakeMesh as FakeMeshType
    from tests.fixtures.providers import ScriptedProvider as ScriptedProviderType


@pytest.fixture
def fake_mesh() -> FakeMeshType:
    """Fake mesh endpoint with the connection listing wired up."""
    from tests.fixtures.mesh import FakeMesh, connection_listing
    from tests.fixtures.responses import CONNECTION_ID, IMAGES, SLACK

    mesh = FakeMesh()
    listing = connection_listing(SLACK, IMAGES)
    mesh.reply(CONNECTION_ID, "COLLECTION_CONNECTIONS_LIST", listing)
    return mesh


@pytest.fixture
async def rpc(fake_mesh: FakeMeshType) -> MeshRpcClient:  # type: ignore[misc]
    from tests.fixtures.responses import CONNECTION_ID, LLM_ID

    client = fake_mesh.client(
        state={
            "CONNECTION": CONNECTION_ID,
            "LLM": {"__type": "binding", "value": LLM_ID},
        }
    )
    yield client
    await client.aclose()


@pytest.fixture
def scripted_provider() -> ScriptedProviderType:
    from tests.fixtures.providers import ScriptedProvider

    return ScriptedProvider()


@pytest.fixture
def providers(scripted_provider: ScriptedProviderType) -> ProviderManager:
    pm = ProviderManager()
    pm.register(scripted_provider, default=True)
    return pm


@pytest.fixture
def local_registry(tmp_path: Any) -> LocalToolRegistry:
    return LocalToolRegistry(file_tools([str(tmp_path)]))


@pytest.fixture
def catalog(local_registry: LocalToolRegistry, rpc: MeshRpcClient) -> ToolCatalog:
    return ToolCatalog(local_registry, rpc)


@pytest.fixture
def progress_log() -> list[str]:
    return []


@pytest.fixture
def make_run(progress_log: list[str]) -> Any:
    """Factory fixture for AgentRun with a recording sink."""

    def _make(user_message: str = "hello", **overrides: Any) -> AgentRun:
        defaults: dict[str, Any] = {
            "user_message": user_message,
            "history": [],
            "sink": BestEffortSink(CallbackSink(on_progress=progress_log.append)),
            "task_log": BestEffortTaskLog(InMemoryTaskLog()),
            "router_guard": RouterLoopGuard(5),
        }
        defaults.update(overrides)
        return AgentRun(**defaults)

    return _make
