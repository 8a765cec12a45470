import asyncio
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from crank.constants import SHELL_OUTPUT_LIMIT, SHELL_TIMEOUT
from crank.tools.core.base import Tool, ToolResult
from crank.tools.core.context import ToolExecution
from crank.tools.files import PathGuard

# Refused outright, even after approval
BLOCKED_PATTERNS = frozenset(
    {
        "rm -rf /",
        "rm -rf ~",
        "mkfs",
        "dd if=",
        ":(){:|:&};:",
    }
)

SHELL_DESCRIPTION = """Execute a shell command and return its combined stdout and stderr.

Use for running tests, builds and other development tasks. Check the output for errors.
Destructive commands are blocked; most commands require user approval."""


def is_blocked_command(command: str) -> bool:
    return any(blocked in command for blocked in BLOCKED_PATTERNS)


async def run_shell(command: str, cwd: Path, timeout: float) -> tuple[int | None, str]:
    """Run `command` through the shell. Returns (exit code or None on timeout, output)."""
    proc = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        return None, f"Command timed out after {timeout}s"

    output = stdout.decode(errors="replace")
    if err := stderr.decode(errors="replace"):
        output = f"{output}\n{err}" if output else err

    if len(output) > SHELL_OUTPUT_LIMIT:
        output = output[:SHELL_OUTPUT_LIMIT] + "\n... [truncated]"
    return proc.returncode, output


class ExecuteShellInput(BaseModel):
    command: str = Field(description="Shell command to execute")
    cwd: str | None = Field(default=None, description="Working directory for the command")


class ExecuteShellTool(Tool):
    name = "execute_shell"
    description = SHELL_DESCRIPTION
    mutates = True
    input_model = ExecuteShellInput

    def __init__(self, guard: PathGuard, timeout: float = SHELL_TIMEOUT):
        self.guard = guard
        self.timeout = timeout

    async def execute(self, execution: ToolExecution, command: str, cwd: str | None = None, **kwargs: Any) -> ToolResult:
        if is_blocked_command(command):
            return ToolResult.error("Command blocked for safety", "Blocked")

        workdir = self.guard.resolve(cwd or str(execution.ctx.working_dir), execution.ctx)
        if workdir is None:
            return ToolResult.error("Working directory outside allowed paths", "Denied")

        code, output = await run_shell(command, workdir, self.timeout)
        if code is None:
            return ToolResult.error(output, "Timed out")
        if code != 0:
            return ToolResult.error(f"{output}\n[exit code: {code}]".lstrip("\n"), f"Exit {code}")
        return ToolResult(content=output or "(no output)", preview=f"{output.count(chr(10)) + 1} lines")
