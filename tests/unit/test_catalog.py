"""Tests for ToolCatalog: connection cache, details, resolution, suggestions."""

from __future__ import annotations

import httpx
import pytest

from meshpilot.core.errors import ConfigError, RpcTransportError
from meshpilot.mesh.catalog import Connection, ToolCatalog
from meshpilot.tools.base import ToolRequest, ToolSource
from tests.fixtures.mesh import FakeMesh, text_result
from tests.fixtures.responses import CONNECTION_ID, IMAGES, SLACK


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestConnection:
    def test_from_mesh(self) -> None:
        conn = Connection.from_mesh(SLACK)
        assert conn.id == "conn_slack"
        assert conn.title == "Slack"
        assert conn.tool_count == 2
        assert conn.find("SEND_MESSAGE").connection_id == "conn_slack"
        assert conn.find("NOPE") is None

    def test_title_falls_back(self) -> None:
        assert Connection.from_mesh({"id": "c1"}).title == "c1"
        assert Connection.from_mesh({"id": "c1", "name": "Named"}).title == "Named"

    def test_skips_nameless_tools(self) -> None:
        conn = Connection.from_mesh(
            {"id": "c1", "tools": [{"description": "x"}, "junk"]}
        )
        assert conn.tools == ()


class TestListConnections:
    async def test_fetches_listing(self, catalog, fake_mesh) -> None:
        connections = await catalog.list_connections()
        assert [c.id for c in connections] == ["conn_slack", "conn_images"]
        (call,) = fake_mesh.calls
        assert call["connection"] == CONNECTION_ID
        assert call["tool"] == "COLLECTION_CONNECTIONS_LIST"
        assert call["arguments"] == {}

    async def test_cached_within_ttl(self, local_registry, fake_mesh, rpc) -> None:
        clock = FakeClock()
        catalog = ToolCatalog(local_registry, rpc, clock=clock)
        await catalog.list_connections()
        clock.now = 4 * 60 + 59
        await catalog.list_connections()
        assert len(fake_mesh.calls_to("COLLECTION_CONNECTIONS_LIST")) == 1
        clock.now = 5 * 60 + 1
        await catalog.list_connections()
        assert len(fake_mesh.calls_to("COLLECTION_CONNECTIONS_LIST")) == 2

    async def test_invalidate_forces_refetch(self, catalog, fake_mesh) -> None:
        await catalog.list_connections()
        catalog.invalidate()
        await catalog.list_connections()
        assert len(fake_mesh.calls_to("COLLECTION_CONNECTIONS_LIST")) == 2

    async def test_stale_served_when_refresh_fails(
        self, local_registry, fake_mesh, rpc
    ) -> None:
        clock = FakeClock()
        catalog = ToolCatalog(local_registry, rpc, ttl=10, clock=clock)
        first = await catalog.list_connections()

        def broken(_args):
            import httpx

            return httpx.Response(503, text="unavailable")

        fake_mesh.on(CONNECTION_ID, "COLLECTION_CONNECTIONS_LIST", broken)
        clock.now = 11
        assert await catalog.list_connections() == first

    async def test_failure_without_cache_raises(
        self, local_registry, rpc, fake_mesh
    ) -> None:
        import httpx

        fake_mesh.on(
            CONNECTION_ID, "COLLECTION_CONNECTIONS_LIST", lambda _a: httpx.Response(503)
        )
        catalog = ToolCatalog(local_registry, rpc)
        with pytest.raises(RpcTransportError):
            await catalog.list_connections()

    async def test_missing_binding(self, local_registry) -> None:
        mesh = FakeMesh()
        async with mesh.client(state={}) as rpc:
            catalog = ToolCatalog(local_registry, rpc)
            assert catalog.connection_binding_id() is None
            with pytest.raises(ConfigError, match="CONNECTION binding"):
                await catalog.list_connections()
        assert mesh.calls == []

    async def test_explicit_binding_wins(self, local_registry, fake_mesh, rpc) -> None:
        fake_mesh.reply(
            "conn_other", "COLLECTION_CONNECTIONS_LIST", text_result({"items": []})
        )
        catalog = ToolCatalog(local_registry, rpc, connection_binding="conn_other")
        assert await catalog.list_connections() == []
        assert fake_mesh.calls[0]["connection"] == "conn_other"

    async def test_without_rpc(self, local_registry) -> None:
        catalog = ToolCatalog(local_registry)
        assert catalog.connection_binding_id() is None
        assert (
            [t.name for t in await catalog.all_tools()] == ["LIST_FILES", "READ_FILE"]
        )


class TestConnectionDetails:
    async def test_details_memoized(self, catalog, fake_mesh) -> None:
        full = dict(
            SLACK, tools=[*SLACK["tools"], {"name": "ARCHIVE", "inputSchema": {}}]
        )
        fake_mesh.reply(
            CONNECTION_ID, "COLLECTION_CONNECTIONS_GET", text_result({"item": full})
        )

        first = await catalog.get_connection_details("conn_slack")
        second = await catalog.get_connection_details("conn_slack")

        assert first is second
        assert first.tool_count == 3
        (call,) = fake_mesh.calls_to("COLLECTION_CONNECTIONS_GET")
        assert call["arguments"] == {"id": "conn_slack"}

    async def test_unknown_connection(self, catalog, fake_mesh) -> None:
        fake_mesh.reply(
            CONNECTION_ID, "COLLECTION_CONNECTIONS_GET", text_result({"item": None})
        )
        assert await catalog.get_connection_details("conn_x") is None


class TestResolve:
    async def test_local(self, catalog, fake_mesh) -> None:
        d = await catalog.resolve(ToolRequest("READ_FILE", ToolSource.LOCAL))
        assert d.source is ToolSource.LOCAL
        assert fake_mesh.calls == []

    async def test_local_unknown(self, catalog) -> None:
        assert (
            await catalog.resolve(ToolRequest("SEND_MESSAGE", ToolSource.LOCAL)) is None
        )

    async def test_remote_by_scan(self, catalog, fake_mesh) -> None:
        fake_mesh.reply(
            CONNECTION_ID, "COLLECTION_CONNECTIONS_GET", text_result({"item": None})
        )
        d = await catalog.resolve(ToolRequest("GENERATE_IMAGE", ToolSource.REMOTE))
        assert d.connection_id == "conn_images"
        assert d.input_schema["required"] == ["prompt"]

    async def test_remote_prefers_detail_schema(self, catalog, fake_mesh) -> None:
        detailed = {
            "id": "conn_slack",
            "title": "Slack",
            "tools": [
                {
                    "name": "SEND_MESSAGE",
                    "description": "Send (full)",
                    "inputSchema": {
                        "type": "object",
                        "required": ["channel", "text", "thread"],
                    },
                }
            ],
        }
        fake_mesh.reply(
            CONNECTION_ID, "COLLECTION_CONNECTIONS_GET", text_result({"item": detailed})
        )
        d = await catalog.resolve(
            ToolRequest("SEND_MESSAGE", ToolSource.REMOTE, connection_id="conn_slack")
        )
        assert d.description == "Send (full)"
        assert d.input_schema["required"] == ["channel", "text", "thread"]

    async def test_remote_explicit_falls_back_to_listing(
        self, catalog, fake_mesh
    ) -> None:
        fake_mesh.reply(
            CONNECTION_ID, "COLLECTION_CONNECTIONS_GET", text_result({"item": None})
        )
        d = await catalog.resolve(
            ToolRequest("LIST_CHANNELS", ToolSource.REMOTE, connection_id="conn_slack")
        )
        assert d.connection_id == "conn_slack"

    async def test_remote_unknown(self, catalog) -> None:
        assert await catalog.resolve(ToolRequest("FLY", ToolSource.REMOTE)) is None


class TestSuggest:
    async def test_similar_names(self, catalog) -> None:
        assert await catalog.suggest("send-message") == ["SEND_MESSAGE"]
        assert await catalog.suggest("read_files") == ["READ_FILE"]

    async def test_no_match(self, catalog) -> None:
        assert await catalog.suggest("teleport") == []

    async def test_local_only_without_binding(self, local_registry) -> None:
        catalog = ToolCatalog(local_registry)
        assert await catalog.suggest("files") == ["LIST_FILES"]

    @pytest.mark.parametrize(
        "listing",
        [
            pytest.param(
                lambda _a: text_result("MCP error -32603: boom"), id="remote-tool-error"
            ),
            pytest.param(lambda _a: httpx.Response(503), id="transport-error"),
        ],
    )
    async def test_local_only_when_listing_fails(
        self, local_registry, fake_mesh, rpc, listing
    ) -> None:
        fake_mesh.on(CONNECTION_ID, "COLLECTION_CONNECTIONS_LIST", listing)
        catalog = ToolCatalog(local_registry, rpc)
        assert await catalog.suggest("READ_FILES") == ["READ_FILE"]
        assert await catalog.suggest("READ_FLIE") == []

    async def test_capped(self, local_registry, fake_mesh, rpc) -> None:
        tools = [{"name": f"TOOL_{i}"} for i in range(8)]
        many = {"id": "c", "title": "C", "tools": tools}
        fake_mesh.reply(
            CONNECTION_ID, "COLLECTION_CONNECTIONS_LIST", text_result({"items": [many]})
        )
        catalog = ToolCatalog(local_registry, rpc)
        assert len(await catalog.suggest("tool")) == 5
