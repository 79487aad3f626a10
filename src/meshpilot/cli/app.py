"""Main CLI application.

Click commands for meshpilot: ask, tools.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

import click

from meshpilot import __version__
from meshpilot.config.loader import load_config
from meshpilot.core.errors import ConfigError, MeshPilotError

if TYPE_CHECKING:
    from meshpilot.agent.tasklog import InMemoryTaskLog
    from meshpilot.cli.display import PilotDisplay
    from meshpilot.config.schema import PilotConfig
    from meshpilot.mesh.catalog import ToolCatalog
    from meshpilot.mesh.rpc import MeshRpcClient
    from meshpilot.providers.manager import ProviderManager


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _load_config(config_path: str | None) -> PilotConfig:
    """Load config with user-friendly error handling."""
    try:
        return load_config(path=config_path)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable, keeps mypy happy


def _setup_logging(config: PilotConfig) -> None:
    """Configure root logging from ``[logging]``."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.logging.file:
        handlers.append(logging.FileHandler(config.logging.file))
    logging.basicConfig(
        level=config.logging.level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
    # Suppress httpx request logs that pollute the display
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _setup_providers(config: PilotConfig, rpc: MeshRpcClient) -> ProviderManager:
    """Instantiate and register providers from config.

    The mesh provider is always registered and is the default route
    for model refs without a known provider prefix.
    """
    from meshpilot.providers.manager import ProviderManager
    from meshpilot.providers.mesh import MeshLLMProvider

    pm = ProviderManager()
    pm.register(MeshLLMProvider(rpc, llm_binding=config.bindings.llm), default=True)

    for name, prov_config in config.providers.items():
        if not prov_config.enabled or prov_config.api_key is None:
            continue  # Skip providers without API keys
        if name == "anthropic":
            from meshpilot.providers.anthropic import AnthropicProvider

            pm.register(
                AnthropicProvider(
                    api_key=prov_config.api_key, base_url=prov_config.base_url
                )
            )

    return pm


def _setup_catalog(
    config: PilotConfig,
    rpc: MeshRpcClient,
    task_log: InMemoryTaskLog | None = None,
) -> ToolCatalog:
    """Local file, mesh and task history tools behind one catalog.

    The task tools read *task_log*; pass the log the agent writes to so
    they see this session's requests.
    """
    from meshpilot.agent.tasklog import InMemoryTaskLog
    from meshpilot.mesh.catalog import ToolCatalog
    from meshpilot.tools.files import file_tools
    from meshpilot.tools.mesh import mesh_tools
    from meshpilot.tools.registry import LocalToolRegistry
    from meshpilot.tools.tasks import task_tools

    registry = LocalToolRegistry(file_tools(config.files.allowed_paths))
    catalog = ToolCatalog(
        registry,
        rpc,
        connection_binding=config.bindings.connection,
        ttl=config.catalog.connection_ttl,
    )
    for tool in mesh_tools(catalog, rpc):
        registry.register(tool)
    for tool in task_tools(task_log if task_log is not None else InMemoryTaskLog()):
        registry.register(tool)
    return catalog


def _create_rpc(config: PilotConfig) -> MeshRpcClient:
    from meshpilot.mesh.context import MeshContext
    from meshpilot.mesh.rpc import MeshRpcClient

    context = MeshContext.from_env(config.mesh)
    return MeshRpcClient(context, timeout=config.mesh.timeout)


# ── CLI group ────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="meshpilot")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """meshpilot - Two-phase agent for mesh tools.

    A fast model plans, a smart model executes with only the tools it needs.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ── ask ──────────────────────────────────────────────────────────


@cli.command()
@click.argument("message")
@click.option(
    "--fast-model",
    default=None,
    help="Override the router model (e.g. mesh:google/gemini-2.5-flash).",
)
@click.option(
    "--smart-model",
    default=None,
    help="Override the executor model (e.g. anthropic:claude-sonnet-4-5).",
)
@click.pass_context
def ask(
    ctx: click.Context,
    message: str,
    fast_model: str | None,
    smart_model: str | None,
) -> None:
    """Run one request through the agent.

    The router decides whether to answer MESSAGE directly or to hand a
    plan to the executor. Progress and mode changes print as they happen.
    """
    config = _load_config(ctx.obj["config_path"])
    if fast_model:
        config.agent.fast_model = fast_model
    if smart_model:
        config.agent.smart_model = smart_model
    _setup_logging(config)

    from meshpilot.cli.display import PilotDisplay

    display = PilotDisplay()
    try:
        text = asyncio.run(_ask_async(message, config, display))
    except MeshPilotError as e:
        _error(str(e))
        return
    display.show_response(text)


async def _ask_async(message: str, config: PilotConfig, display: PilotDisplay) -> str:
    from meshpilot.agent.agent import Agent
    from meshpilot.agent.tasklog import InMemoryTaskLog

    task_log = InMemoryTaskLog()
    async with _create_rpc(config) as rpc:
        agent = Agent(
            _setup_providers(config, rpc),
            _setup_catalog(config, rpc, task_log),
            config=config.agent,
            allowed_paths=config.files.allowed_paths,
            sink=display,
            task_log=task_log,
        )
        display.start()
        return await agent.run(message)


# ── tools ────────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def tools(ctx: click.Context) -> None:
    """List local tools and mesh connections."""
    config = _load_config(ctx.obj["config_path"])
    _setup_logging(config)

    from meshpilot.cli.display import PilotDisplay

    display = PilotDisplay()
    try:
        asyncio.run(_tools_async(config, display))
    except MeshPilotError as e:
        _error(str(e))


async def _tools_async(config: PilotConfig, display: PilotDisplay) -> None:
    async with _create_rpc(config) as rpc:
        catalog = _setup_catalog(config, rpc)
        connections = []
        if rpc.context.has_token and catalog.connection_binding_id() is not None:
            connections = await catalog.list_connections()
        display.show_tools(catalog.local_tools(), connections)
