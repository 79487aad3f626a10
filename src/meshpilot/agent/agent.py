"""Two-phase agent.

Phase 1, the router, runs the fast model with meta-tools only. Phase 2,
the executor, runs only when the router delegates through
``execute_task``, with the smart model and the tools the router picked.

Any :class:`MeshPilotError` that reaches the top ends the run with a
plain-language message instead of an exception.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from meshpilot.agent.executor import Executor
from meshpilot.agent.guards import RouterLoopGuard
from meshpilot.agent.model import ModelCaller
from meshpilot.agent.progress import AgentMode, BestEffortSink
from meshpilot.agent.router import Router, RouterToolbox
from meshpilot.agent.run import AgentRun
from meshpilot.agent.tasklog import BestEffortTaskLog, TaskStatus
from meshpilot.config.schema import AgentConfig
from meshpilot.core.errors import (
    ConfigError,
    MeshPilotError,
    ProviderError,
    RpcError,
    StaleCredentialError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from meshpilot.agent.progress import ProgressSink
    from meshpilot.agent.tasklog import TaskLog
    from meshpilot.core.retry import RetryConfig
    from meshpilot.mesh.catalog import ToolCatalog
    from meshpilot.providers.base import ConversationMessage
    from meshpilot.providers.manager import ProviderManager

logger = logging.getLogger(__name__)


def failure_message(error: MeshPilotError) -> str:
    """Plain-language text for a run-ending error."""
    if isinstance(error, ConfigError):
        return f"I can't run yet: {error}"
    if isinstance(error, StaleCredentialError):
        return (
            "My mesh session has expired. Reconnect to the mesh to get fresh "
            "credentials, then try again."
        )
    if isinstance(error, RpcError):
        return f"I couldn't reach the mesh: {error}"
    if isinstance(error, ProviderError):
        return f"The model provider failed: {error}"
    return f"Something went wrong: {error}"


class Agent:
    """Runs requests end to end.

    Catalog, RPC client (through the catalog) and providers are injected.
    One Agent may serve concurrent runs; per-run state lives in
    :class:`AgentRun`.
    """

    def __init__(
        self,
        providers: ProviderManager,
        catalog: ToolCatalog,
        *,
        config: AgentConfig | None = None,
        allowed_paths: Sequence[str] = (),
        sink: ProgressSink | None = None,
        task_log: TaskLog | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self._providers = providers
        self._catalog = catalog
        self._config = config or AgentConfig()
        self._sink = BestEffortSink(sink)
        self._task_log = BestEffortTaskLog(task_log)

        caller = ModelCaller(
            providers,
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
            retry=retry,
        )
        self._executor = Executor(
            caller,
            catalog.local,
            catalog.rpc,
            config=self._config,
            allowed_paths=allowed_paths,
        )
        self._router = Router(
            caller,
            RouterToolbox(catalog, self._executor),
            config=self._config,
            allowed_paths=allowed_paths,
        )

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    def preflight(self) -> None:
        """Check both models can be served before any model call.

        Raises:
            ConfigError: Missing credentials or bindings.
            ModelNotFoundError: A model ref has no provider.
        """
        self._providers.ensure_ready(self._config.fast_model, self._executor.model)

    async def run(
        self,
        user_message: str,
        history: Sequence[ConversationMessage] | None = None,
    ) -> str:
        """Answer one request, delegating to the executor when needed."""
        run = AgentRun(
            user_message=user_message,
            history=list(history or []),
            sink=self._sink,
            task_log=self._task_log,
            router_guard=RouterLoopGuard(self._config.router_repeat_threshold),
        )
        run.task_id = await self._task_log.create(user_message)
        logger.info("New request: %r", user_message[:100])
        logger.info(
            "Fast model: %s, smart model: %s",
            self._config.fast_model,
            self._config.smart_model or "(same as fast)",
        )

        try:
            self.preflight()
            logger.info("Phase 1: ROUTER")
            text = await self._router.route(run)
        except MeshPilotError as e:
            logger.error("Run failed: %s", e)
            run.set_mode(AgentMode.FAST)
            message = failure_message(e)
            await self._task_log.update_status(
                run.task_id, TaskStatus.ERROR, response=message, error=str(e)
            )
            return message

        await self._task_log.update_status(
            run.task_id, TaskStatus.COMPLETED, response=text
        )
        logger.info("Run finished after %d iterations", run.iterations)
        return text
