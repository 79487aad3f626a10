"""Configuration loading.

Layers, lowest priority first:

    1. Model defaults in :mod:`meshpilot.config.schema`
    2. ``$XDG_CONFIG_HOME/meshpilot/config.toml`` (``~/.config`` by default)
    3. ``meshpilot.toml`` in the working directory
    4. The file named by ``$MESHPILOT_CONFIG``
    5. An explicit ``path`` argument
    6. An ``overrides`` mapping

After validation a few values are taken from the environment: provider
API keys (``api_key_env``), the mesh URL (``mesh.url_env``) and the
allowed file roots (``files.allowed_paths_env``, comma separated, only
when none are configured). The mesh token is never read here; it is
session scoped and belongs to :class:`~meshpilot.mesh.context.MeshContext`.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from meshpilot.core.errors import ConfigError

from .schema import PilotConfig

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

CONFIG_ENV = "MESHPILOT_CONFIG"
PROJECT_FILE = "meshpilot.toml"


def _user_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    return (Path(xdg) if xdg else Path.home() / ".config") / "meshpilot"


def config_files(path: str | Path | None = None) -> Iterator[Path]:
    """Yield the config files to merge, lowest priority first.

    Raises:
        ConfigError: If ``$MESHPILOT_CONFIG`` or *path* names a missing file.
    """
    for candidate in (_user_config_dir() / "config.toml", Path.cwd() / PROJECT_FILE):
        if candidate.is_file():
            yield candidate

    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        if not Path(env_path).is_file():
            msg = f"{CONFIG_ENV} points to non-existent file: {env_path}"
            raise ConfigError(msg)
        yield Path(env_path)

    if path is not None:
        if not Path(path).is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        yield Path(path)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigError(msg) from e


def merge_tables(base: Mapping[str, Any], top: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *top* over *base*, descending into nested tables.

    Neither argument is modified.
    """
    merged = dict(base)
    for key, value in top.items():
        below = merged.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            merged[key] = merge_tables(below, value)
        else:
            merged[key] = value
    return merged


def _apply_env(config: PilotConfig) -> None:
    for provider in config.providers.values():
        if provider.api_key is None and provider.api_key_env:
            provider.api_key = os.environ.get(provider.api_key_env)

    if url := os.environ.get(config.mesh.url_env):
        config.mesh.url = url

    if not config.files.allowed_paths:
        raw = os.environ.get(config.files.allowed_paths_env, "")
        config.files.allowed_paths = [p.strip() for p in raw.split(",") if p.strip()]


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> PilotConfig:
    """Build the validated configuration from every layer.

    Raises:
        ConfigError: On a missing explicit file, invalid TOML, or
            values the schema rejects.
    """
    data: dict[str, Any] = {}
    for config_file in config_files(path):
        data = merge_tables(data, _read_toml(config_file))
    if overrides:
        data = merge_tables(data, overrides)

    try:
        config = PilotConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e

    _apply_env(config)
    return config
