from crank.middleware.base import Middleware
from crank.tools.core.base import Tool
from crank.tools.subtask import SpawnSubtaskTool

SUBAGENT_PROMPT = """## Sub-task Delegation
You can spawn isolated subtasks using spawn_subtask for well-defined, focused work.
- Subtasks have their own context window (no access to your conversation history)
- Use for: research, boilerplate generation, testing, isolated file operations
- Provide clear, specific prompts with all necessary context
- Subtasks return a summary of their work

Best practices:
- Only delegate truly independent work
- Include all context the subtask needs in the prompt
- Keep subtask scope narrow and focused"""


class SubAgentMiddleware(Middleware):
    name = "subagent"
    system_prompt = SUBAGENT_PROMPT

    def __init__(self):
        self._tools = [SpawnSubtaskTool()]

    @property
    def tools(self) -> list[Tool]:
        return self._tools
