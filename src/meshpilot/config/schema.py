"""Pydantic models for meshpilot configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProviderConfig(BaseModel):
    """Configuration for a single model provider."""

    enabled: bool = True
    api_key: str | None = None
    api_key_env: str | None = None
    base_url: str | None = None


class MeshConfig(BaseModel):
    """Where the mesh lives and where its per-session credentials come from."""

    url: str = "http://localhost:3000"
    url_env: str = "MESH_URL"
    token_env: str = "MESH_TOKEN"
    state_env: str = "MESH_STATE"
    timeout: float = 120.0


class BindingsConfig(BaseModel):
    """Explicit binding connection ids.

    Empty values are resolved from the mesh binding state at run time.
    """

    llm: str = ""
    connection: str = ""


class AgentConfig(BaseModel):
    """Router/executor models and loop limits."""

    fast_model: str = "mesh:google/gemini-2.5-flash"
    smart_model: str = ""
    max_tokens: int = 2048
    temperature: float = 0.7
    max_router_iterations: int = Field(default=10, ge=1)
    max_executor_iterations: int = Field(default=30, ge=1)
    router_repeat_threshold: int = Field(default=5, ge=1)
    executor_repeat_limit: int = Field(default=3, ge=2)
    history_limit: int = Field(default=4, ge=0)
    max_result_chars: int = 3000


class CatalogConfig(BaseModel):
    """Tool catalog caching."""

    connection_ttl: float = 300.0


class FilesConfig(BaseModel):
    """Local file tool sandbox."""

    allowed_paths: list[str] = Field(default_factory=list)
    allowed_paths_env: str = "ALLOWED_PATHS"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    file: str = ""


class PilotConfig(BaseModel):
    """Top-level configuration for meshpilot."""

    mesh: MeshConfig = Field(default_factory=MeshConfig)
    bindings: BindingsConfig = Field(default_factory=BindingsConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    files: FilesConfig = Field(default_factory=FilesConfig)
    providers: dict[str, ProviderConfig] = Field(
        default_factory=lambda: {
            "anthropic": ProviderConfig(api_key_env="ANTHROPIC_API_KEY"),
        }
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
