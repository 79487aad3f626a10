"""Tool catalog: local tools merged with the tools of mesh connections.

The connection list is fetched from the ``COLLECTION_CONNECTIONS_LIST``
tool on the ``CONNECTION`` binding and kept in a :class:`TtlCache`. Full
tool schemas per connection (``COLLECTION_CONNECTIONS_GET``) are kept for
the lifetime of the catalog.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from meshpilot.core.errors import ConfigError, MeshPilotError
from meshpilot.mesh.cache import MemoCache, TtlCache
from meshpilot.mesh.context import CONNECTION_BINDING
from meshpilot.tools.base import ToolDescriptor, ToolSource

if TYPE_CHECKING:
    from collections.abc import Callable

    from meshpilot.mesh.rpc import MeshRpcClient
    from meshpilot.tools.base import ToolRequest
    from meshpilot.tools.registry import LocalToolRegistry

logger = logging.getLogger(__name__)

LIST_CONNECTIONS_TOOL = "COLLECTION_CONNECTIONS_LIST"
GET_CONNECTION_TOOL = "COLLECTION_CONNECTIONS_GET"
DEFAULT_TTL = 5 * 60.0
MAX_SUGGESTIONS = 5


@dataclass(frozen=True, slots=True)
class Connection:
    """A mesh connection and the tools it hosts."""

    id: str
    title: str
    tool_count: int
    tools: tuple[ToolDescriptor, ...] = field(default_factory=tuple)

    @classmethod
    def from_mesh(cls, raw: Mapping[str, Any]) -> Connection:
        conn_id = str(raw.get("id", ""))
        raw_tools = raw.get("tools")
        tools = tuple(
            ToolDescriptor.from_mesh(t, conn_id)
            for t in (raw_tools if isinstance(raw_tools, list) else [])
            if isinstance(t, Mapping) and t.get("name")
        )
        return cls(
            id=conn_id,
            title=str(raw.get("title") or raw.get("name") or conn_id),
            tool_count=len(tools),
            tools=tools,
        )

    def find(self, tool_name: str) -> ToolDescriptor | None:
        return next((t for t in self.tools if t.name == tool_name), None)


def _normalize(name: str) -> str:
    return name.lower().replace("_", "").replace("-", "")


class ToolCatalog:
    """Lookup and listing of every tool the agent can hand to a model.

    The mesh side is optional: without an RPC client the catalog only
    knows local tools.
    """

    def __init__(
        self,
        local: LocalToolRegistry,
        rpc: MeshRpcClient | None = None,
        *,
        connection_binding: str = "",
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._local = local
        self._rpc = rpc
        self._connection_binding = connection_binding
        self._connections: TtlCache[list[Connection]] = TtlCache(ttl, clock=clock)
        self._details: MemoCache[Connection] = MemoCache()

    @property
    def local(self) -> LocalToolRegistry:
        return self._local

    @property
    def rpc(self) -> MeshRpcClient | None:
        return self._rpc

    def connection_binding_id(self) -> str | None:
        """Connection id of the ``CONNECTION`` binding, if configured."""
        if self._connection_binding:
            return self._connection_binding
        if self._rpc is None:
            return None
        return self._rpc.context.binding(CONNECTION_BINDING)

    def _require_binding(self) -> tuple[MeshRpcClient, str]:
        binding = self.connection_binding_id()
        if self._rpc is None or binding is None:
            msg = "CONNECTION binding not configured. Configure it in the mesh first."
            raise ConfigError(msg)
        return self._rpc, binding

    # ── Connections ──────────────────────────────────────────────

    async def list_connections(self) -> list[Connection]:
        """Return mesh connections, refetching when the cache is stale.

        Raises:
            ConfigError: If there is no CONNECTION binding.
            RpcError: If the fetch fails and nothing is cached.
        """
        cached = self._connections.get()
        if cached is not None:
            logger.debug("Connection list cache hit (%d connections)", len(cached))
            return cached
        return await self._connections.get_or_fetch(self._fetch_connections)

    async def _fetch_connections(self) -> list[Connection]:
        rpc, binding = self._require_binding()
        value = await rpc.call_tool_value(binding, LIST_CONNECTIONS_TOOL, {})
        items: Any = value.get("items") if isinstance(value, Mapping) else value
        if not isinstance(items, list):
            items = []
        connections = [Connection.from_mesh(i) for i in items if isinstance(i, Mapping)]
        logger.info("Fetched %d mesh connections", len(connections))
        return connections

    async def get_connection_details(self, connection_id: str) -> Connection | None:
        """Full tool schemas for one connection, or None if unknown."""

        async def fetch() -> Connection | None:
            rpc, binding = self._require_binding()
            value = await rpc.call_tool_value(
                binding, GET_CONNECTION_TOOL, {"id": connection_id}
            )
            item = value.get("item") if isinstance(value, Mapping) else None
            if not isinstance(item, Mapping):
                return None
            return Connection.from_mesh({**item, "id": item.get("id") or connection_id})

        return await self._details.get_or_fetch(connection_id, fetch)

    async def find_connection_for(self, tool_name: str) -> Connection | None:
        """First cached connection that lists *tool_name*."""
        for conn in await self.list_connections():
            if conn.find(tool_name) is not None:
                return conn
        return None

    def invalidate(self) -> None:
        """Drop the connection list so the next read refetches it."""
        self._connections.invalidate()

    # ── Lookup ───────────────────────────────────────────────────

    def local_tools(self) -> list[ToolDescriptor]:
        return self._local.list_descriptors()

    async def all_tools(self) -> list[ToolDescriptor]:
        """Local tools followed by the tools of every cached connection."""
        tools = self.local_tools()
        if self.connection_binding_id() is None:
            return tools
        for conn in await self.list_connections():
            tools.extend(conn.tools)
        return tools

    async def resolve(self, request: ToolRequest) -> ToolDescriptor | None:
        """Resolve a tool request to a descriptor, or None.

        Local requests look in the registry. Remote requests use the
        explicit connection id when given, else the first cached
        connection listing the name. Remote descriptors carry the full
        schema from :meth:`get_connection_details` when available.
        """
        if request.source is ToolSource.LOCAL:
            return next(
                (t for t in self.local_tools() if t.name == request.name),
                None,
            )

        connection_id = request.connection_id
        listed: ToolDescriptor | None = None
        if connection_id is None:
            conn = await self.find_connection_for(request.name)
            if conn is None:
                return None
            connection_id = conn.id
            listed = conn.find(request.name)

        details = await self.get_connection_details(connection_id)
        if details is not None:
            found = details.find(request.name)
            if found is not None:
                return found
        if listed is not None:
            return listed
        for conn in await self.list_connections():
            if conn.id == connection_id:
                return conn.find(request.name)
        return None

    async def suggest(self, name: str) -> list[str]:
        """Names resembling *name*, for diagnostics only."""
        needle = _normalize(name)
        if not needle:
            return []
        try:
            candidates = await self.all_tools()
        except MeshPilotError as e:
            logger.debug("Suggesting from local tools only: %s", e)
            candidates = self.local_tools()
        matches: list[str] = []
        for tool in candidates:
            hay = _normalize(tool.name)
            if (needle in hay or hay in needle) and tool.name not in matches:
                matches.append(tool.name)
        return matches[:MAX_SUGGESTIONS]
