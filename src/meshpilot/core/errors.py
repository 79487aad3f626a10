"""Exception hierarchy for meshpilot.

Every module imports from here. The hierarchy is:

    MeshPilotError
    ├── ProviderError(provider_id)
    │   ├── ProviderAuthError
    │   ├── ProviderRateLimitError(retry_after)
    │   ├── ProviderTimeoutError
    │   ├── ProviderOverloadedError
    │   └── ModelNotFoundError
    ├── RpcError(connection_id)
    │   ├── StaleCredentialError
    │   ├── RpcTransportError(status_code)
    │   └── RpcParseError
    ├── ToolError(tool_name)
    │   ├── RemoteToolError
    │   └── ToolValidationError(missing)
    └── ConfigError

Tool-level errors are recoverable: the agent turns them into a
corrective conversation turn. Everything else ends the run.
"""

from __future__ import annotations


class MeshPilotError(Exception):
    """Base exception for all meshpilot errors."""


# ─── Provider Errors ──────────────────────────────────────────


class ProviderError(MeshPilotError):
    """Base for model provider errors."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")


class ProviderAuthError(ProviderError):
    """Invalid or missing API key."""


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded. Includes retry_after if available."""

    def __init__(self, provider_id: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited"
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(provider_id, msg)


class ProviderTimeoutError(ProviderError):
    """Model call timed out."""


class ProviderOverloadedError(ProviderError):
    """Provider is overloaded (529, 503)."""


class ModelNotFoundError(ProviderError):
    """Requested model not available from this provider."""


# ─── RPC Errors ───────────────────────────────────────────────


class RpcError(MeshPilotError):
    """Base for mesh RPC failures."""

    def __init__(self, connection_id: str, message: str) -> None:
        self.connection_id = connection_id
        super().__init__(f"[{connection_id}] {message}")


class StaleCredentialError(RpcError):
    """The mesh rejected the bearer token (HTTP 401).

    The token is session scoped; it has to be renewed out of band
    (a fresh mesh context), retrying with the same token is pointless.
    """

    def __init__(self, connection_id: str) -> None:
        super().__init__(
            connection_id,
            "Token expired (401). "
            "Restart the mesh connection to get fresh credentials.",
        )


class RpcTransportError(RpcError):
    """Any other HTTP or network failure talking to the mesh."""

    def __init__(
        self,
        connection_id: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(connection_id, message)


class RpcParseError(RpcError):
    """The mesh response body could not be decoded."""


# ─── Tool Errors ──────────────────────────────────────────────


class ToolError(MeshPilotError):
    """Base for tool-level failures the model can recover from."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class RemoteToolError(ToolError):
    """A remote tool call failed or returned an error marker."""


class ToolValidationError(ToolError):
    """Required tool arguments are missing or empty."""

    def __init__(self, tool_name: str, missing: list[str]) -> None:
        self.missing = list(missing)
        fields = ", ".join(missing)
        super().__init__(
            tool_name,
            f"Missing required parameters for {tool_name}: {fields}",
        )


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(MeshPilotError):
    """Invalid configuration or missing credentials/bindings."""
