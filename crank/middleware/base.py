from abc import ABC

from crank.context.models import SessionState
from crank.tools.core.base import Tool


class Middleware(ABC):
    """A pluggable bundle of tools, system-prompt guidance and turn hooks.

    Hooks receive the live state and return the state the turn continues with;
    returning a different object replaces the session's live state.
    """

    name: str
    system_prompt: str = ""

    @property
    def tools(self) -> list[Tool]:
        return []

    async def before_turn(self, state: SessionState) -> SessionState:
        return state

    async def after_turn(self, state: SessionState) -> SessionState:
        return state
