"""Per-session mesh request context.

When meshpilot runs inside the mesh, the mesh hands it a short-lived
authorization token, its own URL, and the binding state (which
connection backs the ``LLM`` binding, which one backs ``CONNECTION``).
Standalone, the same values come from the environment.

The token lives only in memory. It is read at call time, so replacing
it with :meth:`MeshContext.update` takes effect on the next request.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from meshpilot.core.errors import ConfigError

if TYPE_CHECKING:
    from meshpilot.config.schema import MeshConfig

logger = logging.getLogger(__name__)

LLM_BINDING = "LLM"
CONNECTION_BINDING = "CONNECTION"


@dataclass
class MeshContext:
    """Authorization, URL and binding state for one mesh session."""

    mesh_url: str = "http://localhost:3000"
    authorization: str | None = field(default=None, repr=False)
    state: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, config: MeshConfig) -> MeshContext:
        """Build a context from the variables named in *config*.

        Raises:
            ConfigError: If the binding state variable is not valid JSON.
        """
        raw_state = os.environ.get(config.state_env, "")
        state: dict[str, Any] = {}
        if raw_state:
            try:
                parsed = json.loads(raw_state)
            except json.JSONDecodeError as e:
                msg = f"{config.state_env} is not valid JSON: {e}"
                raise ConfigError(msg) from e
            if not isinstance(parsed, dict):
                msg = f"{config.state_env} must be a JSON object"
                raise ConfigError(msg)
            state = parsed
        return cls(
            mesh_url=config.url,
            authorization=os.environ.get(config.token_env) or None,
            state=state,
        )

    @property
    def has_token(self) -> bool:
        return bool(self.authorization)

    def update(
        self,
        *,
        authorization: str | None = None,
        mesh_url: str | None = None,
        state: Mapping[str, Any] | None = None,
    ) -> None:
        """Swap in fresh session values; omitted values are kept."""
        if authorization is not None:
            self.authorization = authorization
        if mesh_url is not None:
            self.mesh_url = mesh_url
        if state is not None:
            self.state = dict(state)
        logger.info("Mesh context updated (has token: %s)", self.has_token)

    def bearer(self) -> str:
        """Return the ``Authorization`` header value.

        Raises:
            ConfigError: If no token is available.
        """
        token = self.authorization
        if not token:
            msg = (
                "Mesh not configured: no authorization token. "
                "Configure bindings in the mesh first."
            )
            raise ConfigError(msg)
        if token.lower().startswith("bearer "):
            return token
        return f"Bearer {token}"

    def binding(self, name: str) -> str | None:
        """Return the connection id bound to *name*, if any.

        Binding values are either a bare id or ``{"__type": ..., "value": id}``.
        """
        value = self.state.get(name)
        if isinstance(value, Mapping):
            value = value.get("value")
        if isinstance(value, str) and value:
            return value
        return None

    def endpoint(self, connection_id: str) -> str:
        """URL of the tool-call endpoint for *connection_id*."""
        return f"{self.mesh_url.rstrip('/')}/mcp/{connection_id}"
