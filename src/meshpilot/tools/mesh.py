"""Mesh tools: LIST_CONNECTIONS, LIST_CONNECTION_TOOLS and CALL_MESH_TOOL.

Local tools that expose the catalog and the RPC client to a model, so
an executor can browse the mesh and call tools it was not handed up
front. A missing ``CONNECTION`` binding and mesh-reported tool failures
come back as ``{"error": ...}`` objects; transport failures propagate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from meshpilot.core.errors import ConfigError, RemoteToolError
from meshpilot.tools.base import ErrorResult, ImageResult, StructuredResult

if TYPE_CHECKING:
    from meshpilot.mesh.catalog import ToolCatalog
    from meshpilot.mesh.rpc import MeshRpcClient
    from meshpilot.tools.base import ToolResult

_BINDING_HINT = "Configure the CONNECTION binding in the mesh."
DESCRIPTION_CHARS = 100


class ListConnectionsTool:
    """List mesh connections with their tool counts."""

    def __init__(self, catalog: ToolCatalog) -> None:
        self._catalog = catalog

    @property
    def name(self) -> str:
        return "LIST_CONNECTIONS"

    @property
    def description(self) -> str:
        return "List all MCP connections in the mesh with their tool counts"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        try:
            connections = await self._catalog.list_connections()
        except ConfigError as e:
            return {"error": str(e), "hint": _BINDING_HINT}
        except RemoteToolError as e:
            return {"error": str(e)}

        if not connections:
            return {
                "connections": [],
                "count": 0,
                "note": f"No connections available. {_BINDING_HINT}",
            }
        return {
            "connections": [
                {"id": c.id, "name": c.title, "tools": c.tool_count}
                for c in connections
            ],
            "count": len(connections),
            "note": (
                "Use LIST_CONNECTION_TOOLS to see a connection's tools, "
                "or CALL_MESH_TOOL to execute one."
            ),
        }


class ListConnectionToolsTool:
    """List the tools of one mesh connection."""

    def __init__(self, catalog: ToolCatalog) -> None:
        self._catalog = catalog

    @property
    def name(self) -> str:
        return "LIST_CONNECTION_TOOLS"

    @property
    def description(self) -> str:
        return (
            "List tools from a SPECIFIC mesh connection. "
            "Use LIST_CONNECTIONS first to get connection IDs."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "connectionId": {
                    "type": "string",
                    "description": "Connection ID to list tools from",
                },
            },
            "required": ["connectionId"],
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        connection_id = str(kwargs.get("connectionId") or "")
        try:
            connections = await self._catalog.list_connections()
            listed = next((c for c in connections if c.id == connection_id), None)
            if listed is None:
                return {
                    "error": f"Connection not found: {connection_id}",
                    "availableConnections": [
                        {"id": c.id, "name": c.title} for c in connections
                    ],
                }
            details = await self._catalog.get_connection_details(connection_id)
        except ConfigError as e:
            return {"error": str(e), "hint": _BINDING_HINT}
        except RemoteToolError as e:
            return {"error": str(e), "connectionId": connection_id}

        conn = details or listed
        return {
            "connectionId": connection_id,
            "connectionName": conn.title,
            "tools": [
                {"name": t.name, "description": t.description[:DESCRIPTION_CHARS]}
                for t in conn.tools
            ],
            "count": len(conn.tools),
            "note": (
                "Use CALL_MESH_TOOL(connectionId, toolName, args) to execute a tool."
            ),
        }


class CallMeshTool:
    """Call any tool on a mesh connection."""

    def __init__(self, rpc: MeshRpcClient) -> None:
        self._rpc = rpc

    @property
    def name(self) -> str:
        return "CALL_MESH_TOOL"

    @property
    def description(self) -> str:
        return "Call a tool from a specific MCP connection in the mesh"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "connectionId": {
                    "type": "string",
                    "description": "Connection ID (get from LIST_CONNECTIONS)",
                },
                "toolName": {
                    "type": "string",
                    "description": "Name of the tool to call",
                },
                "args": {
                    "type": "object",
                    "description": "Arguments to pass to the tool",
                },
            },
            "required": ["connectionId", "toolName"],
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        connection_id = str(kwargs.get("connectionId") or "")
        tool_name = str(kwargs.get("toolName") or "")
        args = kwargs.get("args")
        try:
            result = await self._rpc.call_tool(
                connection_id,
                tool_name,
                args if isinstance(args, dict) else {},
            )
        except RemoteToolError as e:
            return StructuredResult(
                {"error": str(e), "connectionId": connection_id, "toolName": tool_name}
            )
        # Images pass through untouched so the executor can extract them.
        if isinstance(result, (ImageResult, ErrorResult)):
            return result
        value = result.value if isinstance(result, StructuredResult) else result.text
        return StructuredResult(
            {"connectionId": connection_id, "toolName": tool_name, "result": value}
        )


def mesh_tools(
    catalog: ToolCatalog, rpc: MeshRpcClient
) -> list[ListConnectionsTool | ListConnectionToolsTool | CallMeshTool]:
    """The three mesh tools sharing one catalog and client."""
    return [
        ListConnectionsTool(catalog),
        ListConnectionToolsTool(catalog),
        CallMeshTool(rpc),
    ]
