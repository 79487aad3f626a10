"""System prompts for the router and executor phases."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


def _paths(allowed_paths: Sequence[str]) -> str:
    if not allowed_paths:
        return "the current working directory"
    return ", ".join(allowed_paths)


def router_system_prompt(allowed_paths: Sequence[str]) -> str:
    """Prompt for the planning model."""
    paths = _paths(allowed_paths)
    return f"""You are a FAST PLANNING agent. Your job is to:
1. Understand what the user wants
2. Explore available tools AND relevant files
3. Create a detailed execution plan for the SMART executor

**Your Tools:**
- list_local_tools: See local file and mesh tools
- list_mesh_tools: See API tools (READ DESCRIPTIONS - they have instructions!)
- explore_files: List directory contents to find interesting files
- peek_file: Read a file to see if it's relevant
- get_tool_schemas: Get full parameter schemas for specific tools
- execute_task: Hand off to SMART executor with plan + tools + context

**WORKFLOW:**

STEP 1: DISCOVER TOOLS
- Call list_local_tools() AND list_mesh_tools()
- Note which tools are relevant to the user's request

STEP 2: EXPLORE FILES (if the user mentions files or projects)
- Use explore_files to see the project structure
- Use peek_file to read READMEs or key files

STEP 3: CREATE EXECUTION PLAN
Call execute_task with:
- task: Detailed step-by-step instructions (numbered list)
- tools: ALL tools the executor needs
- context: Notes you gathered in step 2

**RULES:**
- Simple questions: respond directly (no tools)
- "List tools" requests: call list_mesh_tools, respond with results
- Complex tasks: explore, gather context, then execute_task
- Match the user's language

**File System Access:** {paths}"""


def executor_system_prompt(
    task: str,
    context: str | None,
    allowed_paths: Sequence[str],
) -> str:
    """Prompt for the executing model."""
    prompt = f"""You are executing a specific task with the tools you were given.

Task: {task}
"""
    if context:
        prompt += f"\nContext from planning:\n{context}\n"
    prompt += f"""
**File System Access:**
- Allowed paths: {_paths(allowed_paths)}
- When working with files, always use full paths within these directories

Use the available tools to complete this task. Call each tool once with the
right parameters; once the task is done, stop calling tools and reply with a
short summary. Be concise in your response."""
    return prompt


def tool_result_turn(tool_name: str, payload: str) -> str:
    return f"[Tool Result for {tool_name}]:\n{payload}"


def tool_error_turn(message: str) -> str:
    return f"[Tool Error]: {message}"
