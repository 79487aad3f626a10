"""File tools: LIST_FILES and READ_FILE.

Safe directory listing and file reading with allowed-root sandboxing,
path traversal protection, binary rejection, and size limits. The
router's ``explore_files`` and ``peek_file`` meta-tools delegate here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

MAX_FILE_SIZE = 512 * 1024  # 512KB
DEFAULT_READ_LIMIT = 200


class _Sandbox:
    """Resolves user paths and checks them against the allowed roots.

    With no roots configured, the current working directory is the
    only allowed root.
    """

    def __init__(self, allowed_paths: Sequence[str] = ()) -> None:
        roots = [p for p in allowed_paths if p]
        self._roots = [Path(p).expanduser().resolve() for p in roots] or [
            Path.cwd().resolve()
        ]

    @property
    def roots(self) -> list[Path]:
        return list(self._roots)

    def resolve(self, path_str: Any) -> Path:
        """Validate *path_str* and return it resolved.

        Raises:
            ValueError: If the path is empty, uses traversal, or lies
                outside every allowed root.
        """
        if not path_str or not isinstance(path_str, str):
            msg = "Parameter 'path' is required and must be a non-empty string."
            raise ValueError(msg)

        normalized = os.path.normpath(path_str)
        if ".." in normalized.split(os.sep):
            msg = f"Path traversal not allowed: {path_str}"
            raise ValueError(msg)

        resolved = Path(path_str).expanduser().resolve()
        if not any(self._is_within(resolved, root) for root in self._roots):
            allowed = ", ".join(str(r) for r in self._roots)
            msg = f"Path not allowed. Must be under: {allowed}"
            raise ValueError(msg)
        return resolved

    @staticmethod
    def _is_within(path: Path, directory: Path) -> bool:
        try:
            path.relative_to(directory)
        except ValueError:
            return False
        return True


class ListFilesTool:
    """List files and folders in a directory.

    Implements the :class:`LocalTool` protocol.
    """

    def __init__(self, *, allowed_paths: Sequence[str] = ()) -> None:
        self._sandbox = _Sandbox(allowed_paths)

    @property
    def name(self) -> str:
        return "LIST_FILES"

    @property
    def description(self) -> str:
        roots = ", ".join(str(r) for r in self._sandbox.roots)
        return f"List files and folders in a directory. Only works under: {roots}"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path to list"},
                "showHidden": {
                    "type": "boolean",
                    "description": "Include hidden files",
                },
            },
            "required": ["path"],
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        """List a directory.

        Raises:
            ValueError: If the path is unsafe or not a directory.
            FileNotFoundError: If the path does not exist.
        """
        resolved = self._sandbox.resolve(kwargs.get("path"))
        show_hidden = bool(kwargs.get("showHidden", False))

        if not resolved.exists():
            msg = f"Directory not found: {kwargs.get('path')}"
            raise FileNotFoundError(msg)
        if not resolved.is_dir():
            msg = f"Not a directory: {kwargs.get('path')}"
            raise ValueError(msg)

        files = [
            {
                "name": entry.name,
                "type": "directory" if entry.is_dir() else "file",
            }
            for entry in sorted(resolved.iterdir(), key=lambda e: e.name)
            if show_hidden or not entry.name.startswith(".")
        ]
        return {"path": str(resolved), "files": files, "count": len(files)}


class ReadFileTool:
    """Read a text file, up to a number of lines.

    Implements the :class:`LocalTool` protocol.
    """

    def __init__(self, *, allowed_paths: Sequence[str] = ()) -> None:
        self._sandbox = _Sandbox(allowed_paths)

    @property
    def name(self) -> str:
        return "READ_FILE"

    @property
    def description(self) -> str:
        roots = ", ".join(str(r) for r in self._sandbox.roots)
        return f"Read a file's contents. Only works under: {roots}"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path to read"},
                "limit": {
                    "type": "number",
                    "description": (
                        f"Maximum lines to read (default: {DEFAULT_READ_LIMIT})"
                    ),
                },
            },
            "required": ["path"],
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        """Read a file's first ``limit`` lines.

        Raises:
            ValueError: If the path is unsafe, a directory, too large or binary.
            FileNotFoundError: If the file does not exist.
        """
        resolved = self._sandbox.resolve(kwargs.get("path"))
        limit = self._parse_limit(kwargs.get("limit"))

        if not resolved.exists():
            msg = f"File not found: {kwargs.get('path')}"
            raise FileNotFoundError(msg)
        if resolved.is_dir():
            msg = "Path is a directory, not a file"
            raise ValueError(msg)

        size = resolved.stat().st_size
        if size > MAX_FILE_SIZE:
            msg = (
                f"File too large: {size} bytes "
                f"(max {MAX_FILE_SIZE} bytes / {MAX_FILE_SIZE // 1024}KB)"
            )
            raise ValueError(msg)

        raw = resolved.read_bytes()
        if b"\x00" in raw[:8192]:
            msg = f"Binary file cannot be read as text: {kwargs.get('path')}"
            raise ValueError(msg)

        lines = raw.decode("utf-8", errors="replace").split("\n")
        return {
            "path": str(resolved),
            "content": "\n".join(lines[:limit]),
            "totalLines": len(lines),
            "truncated": len(lines) > limit,
            "size": size,
        }

    @staticmethod
    def _parse_limit(value: Any) -> int:
        if value is None:
            return DEFAULT_READ_LIMIT
        try:
            limit = int(value)
        except (TypeError, ValueError):
            return DEFAULT_READ_LIMIT
        return max(1, limit)


def file_tools(allowed_paths: Sequence[str] = ()) -> list[ListFilesTool | ReadFileTool]:
    """Both file tools sharing one set of allowed roots."""
    return [
        ListFilesTool(allowed_paths=allowed_paths),
        ReadFileTool(allowed_paths=allowed_paths),
    ]
