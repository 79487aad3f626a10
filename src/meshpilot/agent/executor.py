"""Executor phase (SMART).

Runs the capable model against exactly the tools the router handed
over. Every tool call is validated, dispatched once, shrunk and fed
back as a synthetic user turn. Tool-level failures become corrective
turns; transport and configuration errors propagate to the agent.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from meshpilot.agent.guards import ExecutorLoopGuard
from meshpilot.agent.prompts import (
    executor_system_prompt,
    tool_error_turn,
    tool_result_turn,
)
from meshpilot.config.schema import AgentConfig
from meshpilot.core.errors import RemoteToolError, ToolValidationError
from meshpilot.providers.base import ConversationMessage
from meshpilot.providers.turns import TextTurn, ToolCallTurn
from meshpilot.tools.base import (
    ErrorResult,
    ImageResult,
    StructuredResult,
    TextResult,
    ToolCall,
    ToolSource,
    is_error,
)
from meshpilot.tools.validation import validate_arguments

if TYPE_CHECKING:
    from collections.abc import Sequence

    from meshpilot.agent.model import ModelCaller
    from meshpilot.agent.run import AgentRun
    from meshpilot.mesh.rpc import MeshRpcClient
    from meshpilot.tools.base import ExecutionPlan, ToolDescriptor, ToolResult
    from meshpilot.tools.registry import LocalToolRegistry

logger = logging.getLogger(__name__)

IMAGE_SENTINEL = "[image data extracted]"
MUTATION_SEGMENTS = frozenset(
    {"CREATE", "UPDATE", "DELETE", "SEND", "POST", "WRITE", "SET", "GENERATE"}
)

PROXY_TOOL = "CALL_MESH_TOOL"

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9]+")
_DATA_URL_RE = re.compile(r"data:image/[A-Za-z0-9.+-]+;base64,[A-Za-z0-9+/=]+")


def is_mutation(tool_name: str) -> bool:
    """True if one of the name's segments denotes a side effect."""
    return any(seg in MUTATION_SEGMENTS for seg in _SEGMENT_RE.split(tool_name.upper()))


def side_effect_name(call: ToolCall) -> str | None:
    """Name of the mutating tool *call* ran, or None for reads.

    ``CALL_MESH_TOOL`` calls are judged by the ``toolName`` they proxy.
    """
    name = call.name
    if name == PROXY_TOOL:
        name = str(call.arguments.get("toolName") or "")
    return name if is_mutation(name) else None


def _strip_images(value: Any, images: list[str]) -> Any:
    if isinstance(value, str):
        if value.startswith("data:image/"):
            images.append(value)
            return IMAGE_SENTINEL
        found = _DATA_URL_RE.findall(value)
        if found:
            images.extend(found)
            return _DATA_URL_RE.sub(IMAGE_SENTINEL, value)
        return value
    if isinstance(value, Mapping):
        return {k: _strip_images(v, images) for k, v in value.items()}
    if isinstance(value, list):
        return [_strip_images(v, images) for v in value]
    return value


def shrink_result(result: ToolResult, images: list[str]) -> Any:
    """Make a tool result safe to put back into the conversation.

    Image payloads are recorded in *images* and replaced by
    :data:`IMAGE_SENTINEL`, including data URLs embedded in structured
    or text results.
    """
    if isinstance(result, ImageResult):
        images.append(result.data_url)
        return {"mimeType": result.mime_type, "image": IMAGE_SENTINEL}
    if isinstance(result, StructuredResult):
        return _strip_images(result.value, images)
    if isinstance(result, TextResult):
        return _strip_images(result.text, images)
    payload: dict[str, Any] = {"error": result.message}
    if result.detail is not None:
        payload["detail"] = _strip_images(result.detail, images)
    return payload


def _done_note(tool_name: str) -> str:
    return (
        f"\n\n[System]: {tool_name} succeeded, so the main action of the task "
        "is done. Do not call more tools. Reply with a short summary of what "
        "was done."
    )


def serialize(payload: Any, max_chars: int) -> str:
    if isinstance(payload, str):
        return payload[:max_chars]
    return json.dumps(payload, indent=2, default=str)[:max_chars]


class Executor:
    """Runs one delegated task to completion or to a guard."""

    def __init__(
        self,
        caller: ModelCaller,
        local: LocalToolRegistry,
        rpc: MeshRpcClient | None = None,
        *,
        config: AgentConfig | None = None,
        allowed_paths: Sequence[str] = (),
    ) -> None:
        self._caller = caller
        self._local = local
        self._rpc = rpc
        self._config = config or AgentConfig()
        self._allowed_paths = list(allowed_paths)

    @property
    def model(self) -> str:
        return self._config.smart_model or self._config.fast_model

    async def execute(
        self,
        run: AgentRun,
        plan: ExecutionPlan,
        tools: list[ToolDescriptor],
    ) -> str:
        """Run the executor loop and return the final text.

        Raises:
            RpcError: On mesh transport failures.
            ConfigError: On missing credentials or bindings.
            ProviderError: When the model call fails after retries.
        """
        cfg = self._config
        logger.info(
            "Executor starting on %s with %d tools: %s",
            self.model,
            len(tools),
            ", ".join(t.name for t in tools),
        )

        history = run.history[-cfg.history_limit :] if cfg.history_limit > 0 else []
        messages = [
            ConversationMessage(
                role="system",
                content=executor_system_prompt(
                    plan.task, plan.context, self._allowed_paths
                ),
            ),
            *history,
            ConversationMessage(role="user", content=plan.task),
        ]
        definitions = [t.to_definition() for t in tools]
        by_name = {t.name: t for t in tools}
        guard = ExecutorLoopGuard(cfg.executor_repeat_limit)
        last_success: str | None = None
        completed_action: str | None = None

        for iteration in range(cfg.max_executor_iterations):
            run.iterations += 1
            logger.debug(
                "Executor iteration %d/%d", iteration + 1, cfg.max_executor_iterations
            )
            turn = await self._caller.turn(self.model, messages, definitions)

            if isinstance(turn, TextTurn):
                return self._finish(turn.text, run)
            if not isinstance(turn, ToolCallTurn):
                return self._finish(self._completed_text(completed_action), run)

            for call in turn.calls:
                if guard.observe(call.name, call.arguments):
                    logger.warning(
                        "Executor loop: %s repeated %d times with the same arguments",
                        call.name,
                        guard.streak,
                    )
                    await run.progress(f"Stopped repeated calls to {call.name}")
                    text = self._loop_text(call.name, completed_action or last_success)
                    return self._finish(text, run)

                announce = turn.text or f"Calling {call.name}..."
                messages.append(ConversationMessage(role="assistant", content=announce))
                feedback = await self._run_call(run, call, by_name)
                if feedback.succeeded:
                    last_success = call.name
                    action = side_effect_name(call)
                    if completed_action is None and action is not None:
                        completed_action = action
                        logger.info("Side effect completed by %s", action)
                        feedback.text += _done_note(action)
                messages.append(ConversationMessage(role="user", content=feedback.text))

        logger.warning(
            "Executor hit the iteration cap (%d)", cfg.max_executor_iterations
        )
        return self._finish(self._cap_text(completed_action or last_success), run)

    async def _run_call(
        self,
        run: AgentRun,
        call: ToolCall,
        by_name: dict[str, ToolDescriptor],
    ) -> _Feedback:
        descriptor = by_name.get(call.name)
        if descriptor is None:
            available = ", ".join(by_name)
            message = f"Unknown tool {call.name}. Available tools: {available}"
            return _Feedback(tool_error_turn(message))

        try:
            validated = validate_arguments(
                call.name, descriptor.input_schema, call.arguments
            )
        except ToolValidationError as e:
            logger.info("Rejected %s: missing %s", call.name, ", ".join(e.missing))
            return _Feedback(
                tool_error_turn(
                    f"{e}. Call {call.name} again with every required parameter."
                )
            )

        await run.progress(f"Running {call.name}")
        result = await self._dispatch(
            descriptor, ToolCall(call.name, validated.values, call.id)
        )
        await run.record_tool(call.name)

        payload = shrink_result(result, run.images)
        serialized = serialize(payload, self._config.max_result_chars)
        text = tool_result_turn(call.name, serialized)
        return _Feedback(text, succeeded=not is_error(result))

    async def _dispatch(self, descriptor: ToolDescriptor, call: ToolCall) -> ToolResult:
        if descriptor.source is ToolSource.LOCAL:
            return await self._local.execute(call)
        if self._rpc is None or not descriptor.connection_id:
            return ErrorResult(f"Invalid tool configuration for {call.name}")
        try:
            return await self._rpc.call_tool(
                descriptor.connection_id, call.name, call.arguments
            )
        except RemoteToolError as e:
            logger.warning("Remote tool %s failed: %s", call.name, e)
            return ErrorResult(str(e))

    @staticmethod
    def _finish(text: str, run: AgentRun) -> str:
        if not run.images:
            return text
        return "\n\n".join([text, *run.images])

    @staticmethod
    def _completed_text(action: str | None) -> str:
        if action:
            return f"Task completed ({action} succeeded)."
        return "Task completed."

    @staticmethod
    def _loop_text(tool_name: str, last_success: str | None) -> str:
        text = (
            f"I got stuck in a loop calling {tool_name} with the same arguments, "
            "so I stopped."
        )
        if last_success:
            text += f" Last successful action: {last_success}."
        return text

    @staticmethod
    def _cap_text(last_success: str | None) -> str:
        if last_success:
            return (
                "I made progress but reached the step limit before finishing. "
                f"Last successful action: {last_success}."
            )
        return "Task execution reached the iteration limit without completing."


class _Feedback:
    """Conversation text for one tool call, and whether it succeeded."""

    __slots__ = ("succeeded", "text")

    def __init__(self, text: str, *, succeeded: bool = False) -> None:
        self.text = text
        self.succeeded = succeeded
