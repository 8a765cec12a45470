from collections.abc import Iterable
from pathlib import Path

from crank.constants import SHELL_TIMEOUT
from crank.middleware.base import Middleware
from crank.tools.core.base import Tool
from crank.tools.files import EditFileTool, ListDirectoryTool, PathGuard, ReadFileTool, WriteFileTool
from crank.tools.shell import ExecuteShellTool

FILESYSTEM_PROMPT = """## File Operations
You have access to file system tools for reading, writing, and editing files.
- Always check if files exist before writing (use list_directory)
- Use edit_file for modifications to existing files
- Use write_file for creating new files
- Prefer small, focused file operations
- Use absolute paths

## Shell Execution
You can execute shell commands with execute_shell.
- Use for running tests, builds, and other development tasks
- Avoid destructive commands (rm -rf, etc.)
- Check command output for errors"""


class FilesystemMiddleware(Middleware):
    """File and shell tools confined to a set of allowed directories.

    Without explicit paths, each turn's working directory is the allowed root.
    """

    name = "filesystem"
    system_prompt = FILESYSTEM_PROMPT

    def __init__(self, allowed_paths: Iterable[str | Path] | None = None, shell_timeout: float = SHELL_TIMEOUT):
        self.guard = PathGuard(allowed_paths)
        self._tools = [
            ReadFileTool(self.guard),
            WriteFileTool(self.guard),
            EditFileTool(self.guard),
            ListDirectoryTool(self.guard),
            ExecuteShellTool(self.guard, timeout=shell_timeout),
        ]

    @property
    def tools(self) -> list[Tool]:
        return self._tools

    @property
    def allowed_paths(self) -> list[Path]:
        return list(self.guard.roots)

    def set_allowed_paths(self, paths: Iterable[str | Path] | None) -> None:
        self.guard.set_roots(paths)
