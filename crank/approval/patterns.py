"""Dangerous-invocation matchers and the glob mini-language for trust patterns."""

import json
import re
from typing import Any

from crank.utils import truncate

# Checked against shell commands anywhere in the string, so chained commands
# ("npm test && rm -rf /") are still caught.
DANGEROUS_COMMAND_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"rm\s+(-[rRf]+\s+)*[~/]"), "deletes from root or home"),
    (re.compile(r"rm\s+-rf\s+\*"), "recursive wildcard delete"),
    (re.compile(r"sudo\s+"), "privilege escalation"),
    (re.compile(r"mkfs"), "formats a filesystem"),
    (re.compile(r"dd\s+if="), "raw disk copy"),
    (re.compile(r"chmod\s+777"), "world-writable permissions"),
    (re.compile(r">\s*/dev/"), "writes to a device"),
    (re.compile(r"curl.*\|\s*(bash|sh)"), "pipes a download into a shell"),
    (re.compile(r"wget.*\|\s*(bash|sh)"), "pipes a download into a shell"),
    (re.compile(r":\s*\(\)\s*\{.*\}.*:"), "fork bomb"),
    (re.compile(r"\bkill\s+-9\s+-1\b"), "kills every process"),
    (re.compile(r">\s*/etc/"), "overwrites system configuration"),
    (re.compile(r"npm\s+(exec|x)\s+"), "runs an arbitrary package"),
]

# Checked against the target path of the file-writing tools.
DANGEROUS_PATH_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^/(etc|dev|boot|proc|sys)(/|$)"), "system directory"),
    (re.compile(r"^/(usr/)?s?bin(/|$)"), "system binaries"),
    (re.compile(r"(^|/)\.ssh(/|$)"), "ssh configuration"),
]

SHELL_TOOL = "execute_shell"
PATH_TOOLS = frozenset({"write_file", "edit_file"})


def match_string(tool_name: str, tool_input: dict[str, Any]) -> str:
    """The string trust patterns and dangerous matchers are tested against."""
    if tool_name == SHELL_TOOL:
        return str(tool_input.get("command", ""))
    if tool_name in PATH_TOOLS:
        return str(tool_input.get("path", ""))
    return json.dumps(tool_input, separators=(",", ":"))


def find_danger(tool_name: str, tool_input: dict[str, Any]) -> str | None:
    """Reason the invocation is dangerous, or None."""
    if tool_name == SHELL_TOOL:
        patterns = DANGEROUS_COMMAND_PATTERNS
    elif tool_name in PATH_TOOLS:
        patterns = DANGEROUS_PATH_PATTERNS
    else:
        return None

    value = match_string(tool_name, tool_input)
    for pattern, reason in patterns:
        if pattern.search(value):
            return reason
    return None


def is_dangerous(tool_name: str, tool_input: dict[str, Any]) -> bool:
    return find_danger(tool_name, tool_input) is not None


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """`*` is any run of characters, `?` exactly one; everything else is literal."""
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts))


def matches_glob(pattern: str, value: str) -> bool:
    return glob_to_regex(pattern).fullmatch(value) is not None


def summarize(tool_name: str, tool_input: dict[str, Any]) -> str:
    match tool_name:
        case "execute_shell":
            return f"Run: {tool_input.get('command', '')}"
        case "write_file":
            return f"Write to: {tool_input.get('path', '')}"
        case "edit_file":
            return f"Edit: {tool_input.get('path', '')}"
        case _:
            return f"Execute {tool_name}"


def suggest_pattern(tool_name: str, tool_input: dict[str, Any]) -> str | None:
    if tool_name == SHELL_TOOL:
        tokens = str(tool_input.get("command", "")).split()
        return f"{tokens[0]} *" if tokens else None
    if tool_name in PATH_TOOLS:
        path = str(tool_input.get("path", ""))
        slash = path.rfind("/")
        return f"{path[:slash]}/*" if slash > 0 else None
    return None


def describe_input(tool_name: str, tool_input: dict[str, Any], limit: int = 80) -> str:
    return truncate(match_string(tool_name, tool_input), limit)
