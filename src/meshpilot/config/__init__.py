"""Configuration loading and validation."""

from meshpilot.config.loader import load_config
from meshpilot.config.schema import (
    AgentConfig,
    BindingsConfig,
    CatalogConfig,
    FilesConfig,
    LoggingConfig,
    MeshConfig,
    PilotConfig,
    ProviderConfig,
)

__all__ = [
    "AgentConfig",
    "BindingsConfig",
    "CatalogConfig",
    "FilesConfig",
    "LoggingConfig",
    "MeshConfig",
    "PilotConfig",
    "ProviderConfig",
    "load_config",
]
