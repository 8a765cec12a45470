from crank.middleware.base import Middleware
from crank.tools.core.base import Tool
from crank.tools.todos import ReadTodosTool, WriteTodosTool

TODO_PROMPT = """## Todo List (Planning Tool)
You have access to a todo list for tracking task progress.
- Use write_todos to update your task list when starting work
- Use read_todos to check current progress
- Mark tasks in_progress BEFORE starting work on them
- Mark tasks completed IMMEDIATELY after finishing
- Break complex tasks into smaller subtasks
- Never have more than one task in_progress at a time
- Update todos frequently to show progress"""


class TodoMiddleware(Middleware):
    name = "todos"
    system_prompt = TODO_PROMPT

    def __init__(self):
        self._tools = [WriteTodosTool(), ReadTodosTool()]

    @property
    def tools(self) -> list[Tool]:
        return self._tools
