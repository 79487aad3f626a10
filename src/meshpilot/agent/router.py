"""Router phase (FAST).

The planning model only ever sees the six meta-tools defined here. It
discovers tools and files, then either answers directly or hands an
execution plan to the executor through ``execute_task``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from meshpilot.agent.progress import AgentMode
from meshpilot.agent.prompts import router_system_prompt, tool_result_turn
from meshpilot.config.schema import AgentConfig
from meshpilot.core.errors import ConfigError, RemoteToolError
from meshpilot.providers.base import ConversationMessage
from meshpilot.providers.turns import TextTurn, ToolCallTurn
from meshpilot.tools.base import (
    ErrorResult,
    ExecutionPlan,
    StructuredResult,
    ToolCall,
    ToolDefinition,
    ToolRequest,
    ToolSource,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from meshpilot.agent.executor import Executor
    from meshpilot.agent.model import ModelCaller
    from meshpilot.agent.run import AgentRun
    from meshpilot.mesh.catalog import ToolCatalog
    from meshpilot.tools.base import ToolDescriptor

logger = logging.getLogger(__name__)

LOCAL_DESCRIPTION_CHARS = 100
MESH_DESCRIPTION_CHARS = 150
EXPLORE_MAX_ENTRIES = 30
PEEK_MAX_LINES = 200
PEEK_PREVIEW_CHARS = 3000
DISCOVERY_TOOLS = ("list_local_tools", "list_mesh_tools")
BINDING_HINT = "Configure the CONNECTION binding in the mesh."

_TOOL_REQUEST_ITEMS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "EXACT tool name from list results"},
        "source": {"type": "string", "enum": ["local", "mesh"]},
        "connectionId": {
            "type": "string",
            "description": "For mesh tools: connectionId from list",
        },
    },
    "required": ["name", "source"],
}

ROUTER_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="list_local_tools",
        description="List available local tools (files, mesh browsing)",
        parameters_schema={"type": "object", "properties": {}},
    ),
    ToolDefinition(
        name="list_mesh_tools",
        description=(
            "List available MCP mesh tools from external connections "
            "(APIs, databases, etc.). "
            "READ DESCRIPTIONS - they contain important instructions!"
        ),
        parameters_schema={
            "type": "object",
            "properties": {
                "connectionId": {
                    "type": "string",
                    "description": "Optional: filter by specific connection ID",
                },
            },
        },
    ),
    ToolDefinition(
        name="explore_files",
        description=(
            "List files in a directory to discover project structure. "
            "Use this to find interesting files before planning."
        ),
        parameters_schema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": (
                        "Directory path to explore (must be within allowed paths)"
                    ),
                },
            },
            "required": ["path"],
        },
    ),
    ToolDefinition(
        name="peek_file",
        description=(
            "Read a file to gauge if it is relevant for the task. "
            f"Returns the first {PEEK_MAX_LINES} lines."
        ),
        parameters_schema={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path to read"},
            },
            "required": ["path"],
        },
    ),
    ToolDefinition(
        name="get_tool_schemas",
        description=(
            "Get full schemas for specific tools before using them. "
            "Call this to understand tool parameters."
        ),
        parameters_schema={
            "type": "object",
            "properties": {
                "tools": {
                    "type": "array",
                    "items": _TOOL_REQUEST_ITEMS,
                    "description": "List of tools to get schemas for",
                },
            },
            "required": ["tools"],
        },
    ),
    ToolDefinition(
        name="execute_task",
        description=(
            "Execute a task with a detailed plan. "
            "The executor is SMART and can explore files.\n\n"
            "Example:\n"
            '{"task": "1. List /project\\n2. Read README.md\\n3. Summarize it", '
            '"tools": [{"name": "LIST_FILES", "source": "local"}, '
            '{"name": "READ_FILE", "source": "local"}]}\n\n'
            "Write a DETAILED step-by-step plan in the task field and include ALL "
            "tools the executor might need."
        ),
        parameters_schema={
            "type": "object",
            "properties": {
                "task": {
                    "type": "string",
                    "description": "Detailed step-by-step execution plan",
                },
                "context": {
                    "type": "string",
                    "description": "Optional notes or hints for the executor",
                },
                "tools": {
                    "type": "array",
                    "items": _TOOL_REQUEST_ITEMS,
                    "description": "Tools the executor should use",
                },
            },
            "required": ["task", "tools"],
        },
    ),
)


@dataclass(frozen=True, slots=True)
class Delegation:
    """Final text produced by the executor through ``execute_task``."""

    text: str


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _parse_request(raw: Any) -> ToolRequest | None:
    if not isinstance(raw, Mapping) or not raw.get("name"):
        return None
    source = ToolSource.parse(raw.get("source"))
    if source is None:
        return None
    connection_id = raw.get("connectionId")
    return ToolRequest(
        name=str(raw["name"]),
        source=source,
        connection_id=str(connection_id) if connection_id else None,
    )


def _skip_note(tool_name: str, threshold: int) -> str:
    return (
        f"[System]: {tool_name} was skipped because it was already called "
        f"{threshold} times in this request. Use the results you already "
        "have: answer the user or call execute_task."
    )


def _schema_entry(descriptor: ToolDescriptor) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "name": descriptor.name,
        "description": descriptor.description,
        "inputSchema": descriptor.input_schema,
        "source": descriptor.source.value,
    }
    if descriptor.connection_id:
        entry["connectionId"] = descriptor.connection_id
    return entry


class RouterToolbox:
    """Executes router meta-tool calls for one agent."""

    def __init__(self, catalog: ToolCatalog, executor: Executor) -> None:
        self._catalog = catalog
        self._executor = executor

    async def dispatch(self, run: AgentRun, call: ToolCall) -> Any:
        """Run one meta-tool; returns a JSON-like value or a Delegation."""
        handler = getattr(self, f"_tool_{call.name}", None)
        if call.name not in {t.name for t in ROUTER_TOOLS} or handler is None:
            return {"error": f"Unknown router tool: {call.name}"}
        logger.debug("Router tool %s(%s)", call.name, call.arguments)
        result = await handler(run, call.arguments)
        # execute_task records itself, and only once it passes the checks.
        if call.name != "execute_task":
            await run.record_tool(call.name)
        return result

    async def _resolve(self, request: ToolRequest) -> ToolDescriptor | None:
        try:
            return await self._catalog.resolve(request)
        except (ConfigError, RemoteToolError) as e:
            logger.warning("Could not resolve %s: %s", request.name, e)
            return None

    # ── Discovery ────────────────────────────────────────────────

    async def _tool_list_local_tools(
        self, run: AgentRun, args: Mapping[str, Any]
    ) -> Any:
        tools = [
            {
                "name": t.name,
                "description": _truncate(t.description, LOCAL_DESCRIPTION_CHARS),
                "source": "local",
            }
            for t in self._catalog.local_tools()
        ]
        await run.progress(f"Found {len(tools)} local tools")
        return {"tools": tools, "count": len(tools)}

    async def _tool_list_mesh_tools(
        self, run: AgentRun, args: Mapping[str, Any]
    ) -> Any:
        connection_id = args.get("connectionId")
        try:
            connections = await self._catalog.list_connections()
        except ConfigError as e:
            return {"error": str(e), "hint": BINDING_HINT}
        except RemoteToolError as e:
            return {"error": str(e)}

        if connection_id:
            conn = next((c for c in connections if c.id == connection_id), None)
            if conn is None:
                return {"error": f"Connection not found: {connection_id}"}
            tools = [
                {
                    "name": t.name,
                    "description": t.description[:LOCAL_DESCRIPTION_CHARS],
                    "source": "mesh",
                    "connectionId": conn.id,
                }
                for t in conn.tools
            ]
            return {
                "tools": tools,
                "count": len(tools),
                "connectionId": conn.id,
                "connectionName": conn.title,
            }

        all_tools = [
            {
                "name": t.name,
                "description": t.description[:MESH_DESCRIPTION_CHARS],
                "connectionId": c.id,
                "connectionName": c.title,
            }
            for c in connections
            for t in c.tools
        ]
        await run.progress(
            f"Found {len(all_tools)} mesh tools from {len(connections)} connections"
        )
        return {
            "allTools": all_tools,
            "totalToolCount": len(all_tools),
            "hint": (
                "Select MULTIPLE related tools for the task. "
                "Read descriptions carefully."
            ),
        }

    # ── Files ────────────────────────────────────────────────────

    async def _run_local(self, name: str, arguments: dict[str, Any]) -> Any:
        if name not in self._catalog.local:
            return ErrorResult(f"{name} tool not available")
        call = ToolCall(name=name, arguments=arguments)
        return await self._catalog.local.execute(call)

    async def _tool_explore_files(self, run: AgentRun, args: Mapping[str, Any]) -> Any:
        path = args.get("path")
        if not path:
            return {"error": "Missing 'path' parameter"}
        result = await self._run_local("LIST_FILES", {"path": path})
        if isinstance(result, ErrorResult):
            return {"error": result.message}
        value = result.value if isinstance(result, StructuredResult) else {}
        await run.progress(f"Found {value.get('count', 0)} items in {path}")
        return {
            "path": value.get("path"),
            "files": list(value.get("files") or [])[:EXPLORE_MAX_ENTRIES],
            "count": value.get("count"),
            "hint": "Select interesting files for the executor to read",
        }

    async def _tool_peek_file(self, run: AgentRun, args: Mapping[str, Any]) -> Any:
        path = args.get("path")
        if not path:
            return {"error": "Missing 'path' parameter"}
        result = await self._run_local(
            "READ_FILE", {"path": path, "limit": PEEK_MAX_LINES}
        )
        if isinstance(result, ErrorResult):
            return {"error": result.message}
        value = result.value if isinstance(result, StructuredResult) else {}
        await run.progress(f"Read {value.get('path') or path}")
        return {
            "path": value.get("path"),
            "preview": str(value.get("content") or "")[:PEEK_PREVIEW_CHARS],
            "totalLines": value.get("totalLines"),
            "hint": "Decide if this file is relevant for the task",
        }

    # ── Planning ─────────────────────────────────────────────────

    async def _tool_get_tool_schemas(
        self, run: AgentRun, args: Mapping[str, Any]
    ) -> Any:
        raw_requests = args.get("tools")
        if not isinstance(raw_requests, list) or not raw_requests:
            return {
                "error": "Missing 'tools' array in get_tool_schemas call.",
                "hint": (
                    "Call with {tools: [{name: 'TOOL_NAME', source: 'mesh', "
                    "connectionId: '...'}]}"
                ),
            }

        schemas: list[dict[str, Any]] = []
        not_found: list[str] = []
        suggestions: dict[str, list[str]] = {}
        for raw in raw_requests:
            request = _parse_request(raw)
            descriptor = await self._resolve(request) if request is not None else None
            if descriptor is not None:
                schemas.append(_schema_entry(descriptor))
                continue
            name = str(raw.get("name")) if isinstance(raw, Mapping) else str(raw)
            not_found.append(name)
            suggestions[name] = await self._catalog.suggest(name)

        result: dict[str, Any] = {"schemas": schemas, "count": len(schemas)}
        if not_found:
            result["not_found"] = not_found
            result["suggestions"] = suggestions
        return result

    async def _tool_execute_task(self, run: AgentRun, args: Mapping[str, Any]) -> Any:
        if not run.used(*DISCOVERY_TOOLS):
            logger.info("Rejected execute_task before tool discovery")
            return {
                "error": (
                    "You MUST call list_mesh_tools or list_local_tools FIRST "
                    "before execute_task."
                ),
                "hint": (
                    "Step 1: List tools. Step 2: Explore (read files, gather "
                    "context). Step 3: Execute with full context."
                ),
                "workflow": (
                    "list_tools -> explore -> execute_task(task, context, tools)"
                ),
            }

        task = args.get("task")
        if not isinstance(task, str) or not task.strip():
            return {
                "error": "Invalid execute_task call. Missing 'task' field.",
                "hint": (
                    "Call execute_task with {task: 'description', "
                    "context: 'notes', tools: [...]}"
                ),
            }
        raw_requests = args.get("tools")
        if not isinstance(raw_requests, list) or not raw_requests:
            return {
                "error": "Invalid execute_task call. Missing or empty 'tools' array.",
                "hint": (
                    "Call execute_task with {task: 'description', "
                    "tools: [{name: 'TOOL_NAME', source: 'local'}]}"
                ),
            }

        context = args.get("context")
        parsed = (_parse_request(raw) for raw in raw_requests)
        requests = [r for r in parsed if r is not None]
        plan = ExecutionPlan(
            task=task,
            tools=tuple(requests),
            context=context if isinstance(context, str) and context else None,
        )

        resolved: list[ToolDescriptor] = []
        not_found: list[str] = [
            str(raw.get("name")) if isinstance(raw, Mapping) else str(raw)
            for raw in raw_requests
            if _parse_request(raw) is None
        ]
        for request in plan.tools:
            descriptor = await self._resolve(request)
            if descriptor is None:
                not_found.append(request.name)
            elif all(d.name != descriptor.name for d in resolved):
                resolved.append(descriptor)

        suggestions: dict[str, list[str]] = {}
        for name in not_found:
            suggestions[name] = await self._catalog.suggest(name)
            logger.warning(
                "Dropping unresolved tool request %s (similar: %s)",
                name,
                ", ".join(suggestions[name]) or "none",
            )

        if not resolved:
            return {
                "error": "None of the requested tools could be resolved.",
                "not_found": not_found,
                "suggestions": suggestions,
                "hint": "Use EXACT names from list_local_tools or list_mesh_tools.",
            }

        await run.record_tool("execute_task")
        await run.progress(f"Starting execution with {len(resolved)} tools...")
        logger.info("Phase 2: EXECUTOR (%s)", ", ".join(d.name for d in resolved))
        run.set_mode(AgentMode.SMART)
        try:
            text = await self._executor.execute(run, plan, resolved)
        finally:
            run.set_mode(AgentMode.FAST)
        return Delegation(text)


class Router:
    """The FAST planning loop."""

    def __init__(
        self,
        caller: ModelCaller,
        toolbox: RouterToolbox,
        *,
        config: AgentConfig | None = None,
        allowed_paths: Sequence[str] = (),
    ) -> None:
        self._caller = caller
        self._toolbox = toolbox
        self._config = config or AgentConfig()
        self._allowed_paths = list(allowed_paths)

    async def route(self, run: AgentRun) -> str:
        cfg = self._config
        messages = [
            ConversationMessage(
                role="system", content=router_system_prompt(self._allowed_paths)
            ),
            *run.history,
            ConversationMessage(role="user", content=run.user_message),
        ]
        definitions = list(ROUTER_TOOLS)

        for iteration in range(cfg.max_router_iterations):
            run.iterations += 1
            logger.debug(
                "Router iteration %d/%d", iteration + 1, cfg.max_router_iterations
            )
            turn = await self._caller.turn(cfg.fast_model, messages, definitions)

            if isinstance(turn, TextTurn):
                return turn.text
            if not isinstance(turn, ToolCallTurn):
                return "I couldn't generate a response."

            for call in turn.calls:
                announce = turn.text or f"Calling {call.name}..."
                messages.append(ConversationMessage(role="assistant", content=announce))
                if not run.router_guard.admit(call.name):
                    logger.warning(
                        "Skipping %s: called more than %d times",
                        call.name,
                        run.router_guard.threshold,
                    )
                    skipped = _skip_note(call.name, run.router_guard.threshold)
                    messages.append(ConversationMessage(role="user", content=skipped))
                    continue

                result = await self._toolbox.dispatch(run, call)
                if isinstance(result, Delegation):
                    return result.text
                payload = json.dumps(result, indent=2, default=str)
                fed_back = tool_result_turn(call.name, payload)
                messages.append(ConversationMessage(role="user", content=fed_back))

        logger.warning("Router hit the iteration cap (%d)", cfg.max_router_iterations)
        return "I couldn't complete the request within the iteration limit."
