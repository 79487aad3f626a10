"""Tests for the FAST router loop and its meta-tools."""

from __future__ import annotations

import json

import httpx
import pytest

from meshpilot.agent.executor import Executor
from meshpilot.agent.guards import RouterLoopGuard
from meshpilot.agent.model import ModelCaller
from meshpilot.agent.progress import AgentMode, BestEffortSink, CallbackSink
from meshpilot.agent.router import ROUTER_TOOLS, Router, RouterToolbox
from meshpilot.config.schema import AgentConfig
from meshpilot.core.errors import RpcTransportError
from meshpilot.core.retry import RetryConfig
from meshpilot.mesh.catalog import ToolCatalog
from meshpilot.providers.base import ModelResponse
from tests.fixtures.mesh import FakeMesh, text_result
from tests.fixtures.providers import make_text_response, make_tool_response
from tests.fixtures.responses import CONNECTION_ID


@pytest.fixture
def make_router(providers, catalog, fake_mesh, tmp_path):
    fake_mesh.reply(
        CONNECTION_ID, "COLLECTION_CONNECTIONS_GET", text_result({"item": None})
    )

    def _make(catalog=catalog, **overrides):
        config = AgentConfig(**overrides)
        caller = ModelCaller(providers, retry=RetryConfig(max_retries=0))
        executor = Executor(
            caller,
            catalog.local,
            catalog.rpc,
            config=config,
            allowed_paths=[str(tmp_path)],
        )
        return Router(
            caller,
            RouterToolbox(catalog, executor),
            config=config,
            allowed_paths=[str(tmp_path)],
        )

    return _make


def _fed_back(call: dict) -> str:
    return call["messages"][-1].content


def _result(call: dict) -> dict:
    """Decode the JSON payload of the last tool-result turn."""
    header, payload = _fed_back(call).split("\n", 1)
    assert header.startswith("[Tool Result for ")
    return json.loads(payload)


FAILING_LISTINGS = [
    pytest.param(
        lambda _a: text_result("MCP error -32603: boom"), id="remote-tool-error"
    ),
    pytest.param(lambda _a: httpx.Response(503, text="down"), id="transport-error"),
]


# ── Loop ─────────────────────────────────────────────────────────


class TestRouterLoop:
    async def test_direct_answer(
        self, make_router, make_run, scripted_provider
    ) -> None:
        scripted_provider.queue(make_text_response("Hello! How can I help?"))
        text = await make_router().route(make_run("hi"))

        assert text == "Hello! How can I help?"
        (call,) = scripted_provider.call_log
        assert call["tools"] == [t.name for t in ROUTER_TOOLS]
        assert call["model_id"] == "google/gemini-2.5-flash"
        assert call["messages"][0].role == "system"
        assert call["messages"][-1].content == "hi"

    async def test_only_meta_tools_offered(
        self, make_router, make_run, scripted_provider
    ) -> None:
        await make_router().route(make_run())
        assert set(scripted_provider.tool_names_seen[0]) == {
            "list_local_tools",
            "list_mesh_tools",
            "explore_files",
            "peek_file",
            "get_tool_schemas",
            "execute_task",
        }

    async def test_empty_turn(self, make_router, make_run, scripted_provider) -> None:
        scripted_provider.queue(ModelResponse(content="", model_id=""))
        text = await make_router().route(make_run())
        assert text == "I couldn't generate a response."

    async def test_iteration_cap(
        self, make_router, make_run, scripted_provider
    ) -> None:
        scripted_provider.queue(
            make_tool_response(("list_local_tools", {})),
            make_tool_response(("list_local_tools", {})),
        )
        run = make_run()
        text = await make_router(max_router_iterations=2).route(run)
        assert text == "I couldn't complete the request within the iteration limit."
        assert run.iterations == 2

    async def test_unknown_router_tool(
        self, make_router, make_run, scripted_provider, tmp_path
    ) -> None:
        scripted_provider.queue(
            make_tool_response(("LIST_FILES", {"path": str(tmp_path)}))
        )
        run = make_run()
        await make_router().route(run)

        assert _result(scripted_provider.call_log[1]) == {
            "error": "Unknown router tool: LIST_FILES"
        }
        assert run.tools_used == []

    async def test_repeat_threshold_skips(
        self, make_router, make_run, scripted_provider
    ) -> None:
        scripted_provider.queue(
            make_tool_response(*[("list_local_tools", {})] * 3)
        )
        run = make_run(router_guard=RouterLoopGuard(2))
        await make_router().route(run)

        assert run.tools_used == ["list_local_tools", "list_local_tools"]
        assert _fed_back(scripted_provider.call_log[1]).startswith(
            "[System]: list_local_tools was skipped because it was already called "
            "2 times"
        )


# ── Discovery ────────────────────────────────────────────────────


class TestDiscoveryTools:
    async def test_list_local_tools(
        self, make_router, make_run, scripted_provider, progress_log
    ) -> None:
        scripted_provider.queue(make_tool_response(("list_local_tools", {})))
        await make_router().route(make_run())

        result = _result(scripted_provider.call_log[1])
        assert result["count"] == 2
        assert [t["name"] for t in result["tools"]] == ["LIST_FILES", "READ_FILE"]
        assert all(t["source"] == "local" for t in result["tools"])
        assert progress_log == ["Found 2 local tools"]

    async def test_list_mesh_tools(
        self, make_router, make_run, scripted_provider, progress_log
    ) -> None:
        scripted_provider.queue(make_tool_response(("list_mesh_tools", {})))
        await make_router().route(make_run())

        result = _result(scripted_provider.call_log[1])
        assert result["totalToolCount"] == 3
        assert {t["name"] for t in result["allTools"]} == {
            "SEND_MESSAGE",
            "LIST_CHANNELS",
            "GENERATE_IMAGE",
        }
        send = next(t for t in result["allTools"] if t["name"] == "SEND_MESSAGE")
        assert send["connectionId"] == "conn_slack"
        assert send["connectionName"] == "Slack"
        assert progress_log == ["Found 3 mesh tools from 2 connections"]

    async def test_list_mesh_tools_filtered(
        self, make_router, make_run, scripted_provider
    ) -> None:
        scripted_provider.queue(
            make_tool_response(("list_mesh_tools", {"connectionId": "conn_images"})),
            make_tool_response(("list_mesh_tools", {"connectionId": "conn_nope"})),
        )
        await make_router().route(make_run())

        filtered = _result(scripted_provider.call_log[1])
        assert filtered["connectionName"] == "Image Studio"
        assert [t["name"] for t in filtered["tools"]] == ["GENERATE_IMAGE"]
        assert _result(scripted_provider.call_log[2]) == {
            "error": "Connection not found: conn_nope"
        }

    async def test_list_mesh_tools_without_binding(
        self, make_router, make_run, scripted_provider, local_registry
    ) -> None:
        async with FakeMesh().client(state={}) as rpc:
            router = make_router(catalog=ToolCatalog(local_registry, rpc))
            scripted_provider.queue(make_tool_response(("list_mesh_tools", {})))
            await router.route(make_run())

        result = _result(scripted_provider.call_log[1])
        assert "CONNECTION binding" in result["error"]
        assert "hint" in result


# ── Files ────────────────────────────────────────────────────────


class TestFileTools:
    async def test_explore_files(
        self, make_router, make_run, scripted_provider, tmp_path, progress_log
    ) -> None:
        (tmp_path / "README.md").write_text("# Project\n")
        (tmp_path / "src").mkdir()
        scripted_provider.queue(
            make_tool_response(("explore_files", {"path": str(tmp_path)}))
        )
        run = make_run()
        await make_router().route(run)

        result = _result(scripted_provider.call_log[1])
        assert result["count"] == 2
        assert {f["name"] for f in result["files"]} == {"README.md", "src"}
        assert "hint" in result
        assert progress_log == [f"Found 2 items in {tmp_path}"]
        assert run.tools_used == ["explore_files"]

    async def test_explore_files_capped(
        self, make_router, make_run, scripted_provider, tmp_path
    ) -> None:
        for i in range(40):
            (tmp_path / f"f{i:02d}.txt").write_text("x")
        scripted_provider.queue(
            make_tool_response(("explore_files", {"path": str(tmp_path)}))
        )
        await make_router().route(make_run())

        result = _result(scripted_provider.call_log[1])
        assert result["count"] == 40
        assert len(result["files"]) == 30

    async def test_explore_files_missing_path(
        self, make_router, make_run, scripted_provider
    ) -> None:
        scripted_provider.queue(make_tool_response(("explore_files", {})))
        await make_router().route(make_run())
        result = _result(scripted_provider.call_log[1])
        assert result == {"error": "Missing 'path' parameter"}

    async def test_peek_file(
        self, make_router, make_run, scripted_provider, tmp_path
    ) -> None:
        readme = tmp_path / "README.md"
        readme.write_text("# Project\n\nDoes things.\n")
        scripted_provider.queue(
            make_tool_response(("peek_file", {"path": str(readme)}))
        )
        await make_router().route(make_run())

        result = _result(scripted_provider.call_log[1])
        assert result["preview"].startswith("# Project")
        assert result["totalLines"] >= 3

    async def test_peek_file_outside_sandbox(
        self, make_router, make_run, scripted_provider
    ) -> None:
        scripted_provider.queue(
            make_tool_response(("peek_file", {"path": "/etc/hostname"}))
        )
        await make_router().route(make_run())
        assert "Path not allowed" in _result(scripted_provider.call_log[1])["error"]


# ── Planning ─────────────────────────────────────────────────────


class TestGetToolSchemas:
    async def test_resolves_and_suggests(
        self, make_router, make_run, scripted_provider
    ) -> None:
        requests = [
            {"name": "READ_FILE", "source": "local"},
            {"name": "SEND_MESSAGE", "source": "mesh", "connectionId": "conn_slack"},
            {"name": "send-messages", "source": "mesh"},
        ]
        scripted_provider.queue(
            make_tool_response(("get_tool_schemas", {"tools": requests}))
        )
        await make_router().route(make_run())

        result = _result(scripted_provider.call_log[1])
        assert result["count"] == 2
        local, remote = result["schemas"]
        assert local["source"] == "local"
        assert local["inputSchema"]["required"] == ["path"]
        assert remote["connectionId"] == "conn_slack"
        assert remote["inputSchema"]["required"] == ["channel", "text"]
        assert result["not_found"] == ["send-messages"]
        assert result["suggestions"] == {"send-messages": ["SEND_MESSAGE"]}

    @pytest.mark.parametrize("listing", FAILING_LISTINGS)
    async def test_suggests_local_when_listing_fails(
        self, make_router, make_run, scripted_provider, fake_mesh, listing
    ) -> None:
        fake_mesh.on(CONNECTION_ID, "COLLECTION_CONNECTIONS_LIST", listing)
        requests = [
            {"name": "READ_FLIE", "source": "local"},
            {"name": "READ_FILES", "source": "local"},
        ]
        scripted_provider.queue(
            make_tool_response(("get_tool_schemas", {"tools": requests})),
            make_text_response("No such tool."),
        )
        text = await make_router().route(make_run())

        assert text == "No such tool."
        result = _result(scripted_provider.call_log[1])
        assert result["count"] == 0
        assert result["not_found"] == ["READ_FLIE", "READ_FILES"]
        assert result["suggestions"] == {"READ_FLIE": [], "READ_FILES": ["READ_FILE"]}

    async def test_missing_tools_array(
        self, make_router, make_run, scripted_provider
    ) -> None:
        scripted_provider.queue(make_tool_response(("get_tool_schemas", {})))
        await make_router().route(make_run())
        result = _result(scripted_provider.call_log[1])
        assert "Missing 'tools' array" in result["error"]


class TestExecuteTask:
    async def test_rejected_before_discovery(
        self, make_router, make_run, scripted_provider
    ) -> None:
        args = {"task": "Read it", "tools": [{"name": "READ_FILE", "source": "local"}]}
        scripted_provider.queue(make_tool_response(("execute_task", args)))
        run = make_run()
        await make_router().route(run)

        result = _result(scripted_provider.call_log[1])
        assert result["error"] == (
            "You MUST call list_mesh_tools or list_local_tools FIRST "
            "before execute_task."
        )
        assert run.tools_used == []
        assert run.mode is AgentMode.FAST

    async def test_delegates_to_executor(
        self, make_router, make_run, scripted_provider, progress_log
    ) -> None:
        modes: list[AgentMode] = []
        sink = BestEffortSink(
            CallbackSink(on_progress=progress_log.append, on_mode_change=modes.append)
        )
        args = {
            "task": "1. Read the README\n2. Summarize it",
            "context": "README is at the project root",
            "tools": [
                {"name": "READ_FILE", "source": "local"},
                {"name": "READ_FILE", "source": "local"},
                {"name": "TELEPORT", "source": "local"},
                {"source": "local"},
            ],
        }
        scripted_provider.queue(
            make_tool_response(("list_local_tools", {})),
            make_tool_response(("execute_task", args)),
            make_text_response("The README describes the project."),
        )
        run = make_run(sink=sink)
        text = await make_router().route(run)

        assert text == "The README describes the project."
        assert modes == [AgentMode.SMART, AgentMode.FAST]
        assert run.mode is AgentMode.FAST
        assert run.tools_used == ["list_local_tools", "execute_task"]
        assert "Starting execution with 1 tools..." in progress_log
        executor_call = scripted_provider.call_log[2]
        assert executor_call["tools"] == ["READ_FILE"]
        assert "README is at the project root" in executor_call["messages"][0].content

    async def test_nothing_resolved(
        self, make_router, make_run, scripted_provider
    ) -> None:
        args = {"task": "Teleport", "tools": [{"name": "TELEPORT", "source": "local"}]}
        scripted_provider.queue(
            make_tool_response(("list_local_tools", {})),
            make_tool_response(("execute_task", args)),
        )
        run = make_run()
        await make_router().route(run)

        result = _result(scripted_provider.call_log[2])
        assert result["error"] == "None of the requested tools could be resolved."
        assert result["not_found"] == ["TELEPORT"]
        assert "execute_task" not in run.tools_used
        assert len(scripted_provider.call_log) == 3

    @pytest.mark.parametrize("listing", FAILING_LISTINGS)
    async def test_unresolved_when_listing_fails(
        self, make_router, make_run, scripted_provider, fake_mesh, listing
    ) -> None:
        fake_mesh.on(CONNECTION_ID, "COLLECTION_CONNECTIONS_LIST", listing)
        args = {"task": "Read it", "tools": [{"name": "READ_FLIE", "source": "local"}]}
        scripted_provider.queue(
            make_tool_response(("list_local_tools", {})),
            make_tool_response(("execute_task", args)),
            make_text_response("I could not find that tool."),
        )
        run = make_run()
        text = await make_router().route(run)

        assert text == "I could not find that tool."
        result = _result(scripted_provider.call_log[2])
        assert result["error"] == "None of the requested tools could be resolved."
        assert result["suggestions"] == {"READ_FLIE": []}
        assert run.mode is AgentMode.FAST

    async def test_missing_task(self, make_router, make_run, scripted_provider) -> None:
        scripted_provider.queue(
            make_tool_response(("list_local_tools", {})),
            make_tool_response(
                ("execute_task", {"tools": [{"name": "READ_FILE", "source": "local"}]})
            ),
        )
        await make_router().route(make_run())
        assert "Missing 'task' field" in _result(scripted_provider.call_log[2])["error"]

    async def test_empty_tools(self, make_router, make_run, scripted_provider) -> None:
        scripted_provider.queue(
            make_tool_response(("list_mesh_tools", {})),
            make_tool_response(("execute_task", {"task": "x", "tools": []})),
        )
        await make_router().route(make_run())
        assert "empty 'tools' array" in _result(scripted_provider.call_log[2])["error"]

    async def test_mode_restored_when_executor_fails(
        self, make_router, make_run, scripted_provider, fake_mesh
    ) -> None:
        fake_mesh.on(
            "conn_slack", "LIST_CHANNELS", lambda _a: httpx.Response(503, text="down")
        )
        args = {
            "task": "List channels",
            "tools": [
                {
                    "name": "LIST_CHANNELS",
                    "source": "mesh",
                    "connectionId": "conn_slack",
                }
            ],
        }
        scripted_provider.queue(
            make_tool_response(("list_mesh_tools", {})),
            make_tool_response(("execute_task", args)),
            make_tool_response(("LIST_CHANNELS", {})),
        )
        run = make_run()
        with pytest.raises(RpcTransportError):
            await make_router().route(run)
        assert run.mode is AgentMode.FAST
