"""meshpilot: two-phase tool-routing agent for MCP mesh connections."""

__version__ = "0.1.0"
