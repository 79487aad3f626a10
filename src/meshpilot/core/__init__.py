"""Core errors and shared utilities."""

from meshpilot.core.errors import (
    ConfigError,
    MeshPilotError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    RemoteToolError,
    RpcError,
    RpcParseError,
    RpcTransportError,
    StaleCredentialError,
    ToolError,
    ToolValidationError,
)
from meshpilot.core.retry import RetryConfig, is_retryable, retry_with_backoff

__all__ = [
    "ConfigError",
    "MeshPilotError",
    "ModelNotFoundError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderOverloadedError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "RemoteToolError",
    "RetryConfig",
    "RpcError",
    "RpcParseError",
    "RpcTransportError",
    "StaleCredentialError",
    "ToolError",
    "ToolValidationError",
    "is_retryable",
    "retry_with_backoff",
]
