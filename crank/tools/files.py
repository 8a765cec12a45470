import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from crank.constants import DEFAULT_READ_LINES
from crank.tools.core.base import Tool, ToolResult
from crank.tools.core.context import ToolContext, ToolExecution
from crank.tools.core.formatting import format_lines_with_pagination

OUTSIDE_ALLOWED = "Path outside allowed directories"


class PathGuard:
    """Confines file tools to a set of root directories.

    With no explicit roots, the turn's working directory is the only root.
    """

    def __init__(self, roots: Iterable[str | Path] | None = None):
        self.set_roots(roots)

    def set_roots(self, roots: Iterable[str | Path] | None) -> None:
        self.roots = [Path(r).expanduser().resolve() for r in roots] if roots else []

    def roots_for(self, ctx: ToolContext) -> list[Path]:
        return self.roots or [Path(ctx.working_dir).resolve()]

    def resolve(self, path: str, ctx: ToolContext) -> Path | None:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = Path(ctx.working_dir) / candidate
        candidate = candidate.resolve()
        if any(candidate.is_relative_to(root) for root in self.roots_for(ctx)):
            return candidate
        return None


class ReadFileInput(BaseModel):
    path: str = Field(description="Path to the file to read")
    offset: int = Field(default=1, description="Line number to start from (1-based)")
    limit: int = Field(default=DEFAULT_READ_LINES, description="Maximum lines to read")


class ReadFileTool(Tool):
    name = "read_file"
    description = "Read the contents of a file. Lines are numbered; use offset and limit for large files."
    input_model = ReadFileInput

    def __init__(self, guard: PathGuard):
        self.guard = guard

    async def execute(
        self, execution: ToolExecution, path: str, offset: int = 1, limit: int = DEFAULT_READ_LINES, **kwargs: Any
    ) -> ToolResult:
        target = self.guard.resolve(path, execution.ctx)
        if target is None:
            return ToolResult.error(OUTSIDE_ALLOWED, "Denied")
        if not target.exists():
            return ToolResult.error(f"File not found: {path}", "Not found")
        if not target.is_file():
            return ToolResult.error(f"Path is a directory, not a file: {path}", "Not a file")

        content = target.read_text(encoding="utf-8", errors="replace")
        lines = content.count("\n") + 1
        return ToolResult(content=format_lines_with_pagination(content, offset, limit), preview=f"Read {lines} lines")


class WriteFileInput(BaseModel):
    path: str = Field(description="Path to the file to write")
    content: str = Field(description="Content to write to the file")


class WriteFileTool(Tool):
    name = "write_file"
    description = "Write content to a file (creates or overwrites). Parent directories are created."
    mutates = True
    input_model = WriteFileInput

    def __init__(self, guard: PathGuard):
        self.guard = guard

    async def execute(self, execution: ToolExecution, path: str, content: str, **kwargs: Any) -> ToolResult:
        target = self.guard.resolve(path, execution.ctx)
        if target is None:
            return ToolResult.error(OUTSIDE_ALLOWED, "Denied")

        existed = target.exists()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        execution.ctx.session_state.files[str(target)] = "modified" if existed else "created"
        return ToolResult(content=f"Successfully wrote to {path}", preview=f"{len(content)} chars")


class EditFileInput(BaseModel):
    path: str = Field(description="Path to the file to edit")
    old_string: str = Field(description="The exact string to find and replace")
    new_string: str = Field(description="The string to replace it with")


class EditFileTool(Tool):
    name = "edit_file"
    description = "Edit a file by replacing the first occurrence of an exact string."
    mutates = True
    input_model = EditFileInput

    def __init__(self, guard: PathGuard):
        self.guard = guard

    async def execute(
        self, execution: ToolExecution, path: str, old_string: str, new_string: str, **kwargs: Any
    ) -> ToolResult:
        target = self.guard.resolve(path, execution.ctx)
        if target is None:
            return ToolResult.error(OUTSIDE_ALLOWED, "Denied")
        if not target.is_file():
            return ToolResult.error(f"File not found: {path}", "Not found")

        content = target.read_text(encoding="utf-8")
        if old_string not in content:
            return ToolResult.error("old_string not found in file", "No match")

        target.write_text(content.replace(old_string, new_string, 1), encoding="utf-8")
        execution.ctx.session_state.files[str(target)] = "modified"
        return ToolResult(content=f"Successfully edited {path}", preview="Edited")


class ListDirectoryInput(BaseModel):
    path: str = Field(default=".", description="Path to the directory to list")


class ListDirectoryTool(Tool):
    name = "list_directory"
    description = "List the contents of a directory as JSON entries with name and type."
    input_model = ListDirectoryInput

    def __init__(self, guard: PathGuard):
        self.guard = guard

    async def execute(self, execution: ToolExecution, path: str = ".", **kwargs: Any) -> ToolResult:
        target = self.guard.resolve(path, execution.ctx)
        if target is None:
            return ToolResult.error(OUTSIDE_ALLOWED, "Denied")
        if not target.is_dir():
            return ToolResult.error(f"Not a directory: {path}", "Not a directory")

        listing = [
            {"name": entry.name, "type": "directory" if entry.is_dir() else "file"}
            for entry in sorted(target.iterdir(), key=lambda e: e.name)
        ]
        return ToolResult(content=json.dumps(listing, indent=2), preview=f"{len(listing)} entries")
