"""Mesh access: request context, RPC client, caches and tool catalog."""

from meshpilot.mesh.cache import MemoCache, TtlCache
from meshpilot.mesh.catalog import Connection, ToolCatalog
from meshpilot.mesh.context import CONNECTION_BINDING, LLM_BINDING, MeshContext
from meshpilot.mesh.rpc import MeshRpcClient

__all__ = [
    "CONNECTION_BINDING",
    "LLM_BINDING",
    "Connection",
    "MemoCache",
    "MeshContext",
    "MeshRpcClient",
    "ToolCatalog",
    "TtlCache",
]
