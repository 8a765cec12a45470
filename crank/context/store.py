import asyncio
from collections.abc import Callable

from crank.context.models import Checkpoint, SessionState
from crank.logging import get_logger

_logger = get_logger(__name__)


class SessionStore:
    """Live session states keyed by id, each with its own lock.

    Holding `lock(session_id)` is how a turn, revert or fork claims a session;
    `is_busy` lets callers refuse overlapping work instead of interleaving it.
    """

    def __init__(self, factory: Callable[[str], SessionState] = SessionState):
        self._factory = factory
        self._states: dict[str, SessionState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, session_id: str) -> SessionState | None:
        return self._states.get(session_id)

    def get_or_create(self, session_id: str) -> SessionState:
        state = self._states.get(session_id)
        if state is None:
            state = self._factory(session_id)
            self._states[session_id] = state
            _logger.debug("Created session %s", session_id)
        return state

    def put(self, state: SessionState) -> None:
        self._states[state.session_id] = state

    def delete(self, session_id: str) -> bool:
        self._locks.pop(session_id, None)
        return self._states.pop(session_id, None) is not None

    def ids(self) -> list[str]:
        return list(self._states)

    def refresh_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Swap in a newer version of `checkpoint` wherever a live state lists it."""
        for state in self._states.values():
            if checkpoint.id in state.checkpoints:
                state.checkpoints[checkpoint.id] = checkpoint

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def is_busy(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._states

    def __len__(self) -> int:
        return len(self._states)
