from collections.abc import Awaitable, Callable
from enum import Enum


class TurnPhase(Enum):
    MODEL_CALL = "model_call"
    EXECUTE_TOOLS = "execute_tools"
    DONE = "done"


# Callback type for phase changes
PhaseCallback = Callable[[TurnPhase], Awaitable[None]]
