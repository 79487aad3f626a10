"""Model calls shared by the router and executor."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from meshpilot.core.retry import RetryConfig, retry_with_backoff
from meshpilot.providers.turns import decode_turn

if TYPE_CHECKING:
    from meshpilot.providers.base import ConversationMessage, ModelResponse
    from meshpilot.providers.manager import ProviderManager
    from meshpilot.providers.turns import ModelTurn
    from meshpilot.tools.base import ToolDefinition

logger = logging.getLogger(__name__)


class ModelCaller:
    """Routes a model ref to its provider and decodes the reply.

    Rate-limit, timeout and overload errors are retried with backoff;
    everything else propagates.
    """

    def __init__(
        self,
        providers: ProviderManager,
        *,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        retry: RetryConfig | None = None,
    ) -> None:
        self._providers = providers
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._retry = retry or RetryConfig()

    async def turn(
        self,
        model_ref: str,
        messages: list[ConversationMessage],
        tools: list[ToolDefinition],
    ) -> ModelTurn:
        provider, model_id = self._providers.get_provider(model_ref)
        snapshot = list(messages)

        async def send() -> ModelResponse:
            return await provider.send(
                snapshot,
                model_id,
                tools=tools or None,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )

        response = await retry_with_backoff(send, self._retry)
        logger.debug(
            "%s replied in %.0fms (%s)",
            model_ref,
            response.latency_ms,
            response.finish_reason,
        )
        return decode_turn(response)
