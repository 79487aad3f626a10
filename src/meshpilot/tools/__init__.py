"""Tool framework for the agent.

Provides the local tool protocol, the tagged tool results, a registry
for local tools, central argument validation, and the file, mesh and
task history tools shipped with meshpilot.
"""
