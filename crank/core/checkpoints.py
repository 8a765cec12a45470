from itertools import count
from uuid import uuid4

from crank.context.models import Checkpoint, SessionState
from crank.logging import get_logger
from crank.utils import wall_ms

_logger = get_logger(__name__)


class CheckpointStore:
    """In-memory snapshots of session state, keyed by session then checkpoint id.

    Snapshots are clones taken on the way in and cloned again on the way out
    through revert/fork, so nothing a caller does to a live state can reach a
    stored one. Stored states never carry checkpoints of their own.
    """

    def __init__(self):
        self._checkpoints: dict[str, dict[str, Checkpoint]] = {}
        self._order: dict[str, int] = {}
        self._seq = count()

    def create(self, state: SessionState) -> str:
        checkpoint = Checkpoint(
            id=str(uuid4()),
            timestamp=wall_ms(),
            _snapshot=state.clone(),
        )
        self._checkpoints.setdefault(state.session_id, {})[checkpoint.id] = checkpoint
        self._order[checkpoint.id] = next(self._seq)
        _logger.debug("Created checkpoint %s for session %s", checkpoint.id, state.session_id)
        return checkpoint.id

    def get(self, session_id: str, checkpoint_id: str) -> Checkpoint | None:
        return self._checkpoints.get(session_id, {}).get(checkpoint_id)

    def update_metadata(
        self, session_id: str, checkpoint_id: str, name: str, action_summary: str | None = None
    ) -> Checkpoint | None:
        checkpoint = self.get(session_id, checkpoint_id)
        if checkpoint is None:
            return None
        updated = checkpoint.with_metadata(name, action_summary)
        self._checkpoints[session_id][checkpoint_id] = updated
        return updated

    def list_checkpoints(self, session_id: str) -> list[Checkpoint]:
        """Newest first; checkpoints sharing a timestamp keep reverse creation order."""
        return sorted(
            self._checkpoints.get(session_id, {}).values(),
            key=lambda c: (c.timestamp, self._order[c.id]),
            reverse=True,
        )

    def revert(self, session_id: str, checkpoint_id: str) -> SessionState | None:
        checkpoint = self.get(session_id, checkpoint_id)
        if checkpoint is None:
            return None
        _logger.info("Reverting session %s to checkpoint %s", session_id, checkpoint_id)
        return checkpoint.restore(checkpoints=self._checkpoints[session_id])

    def fork(self, session_id: str, checkpoint_id: str, new_session_id: str) -> SessionState | None:
        checkpoint = self.get(session_id, checkpoint_id)
        if checkpoint is None:
            return None
        _logger.info("Forking session %s at checkpoint %s as %s", session_id, checkpoint_id, new_session_id)
        return checkpoint.restore(session_id=new_session_id, checkpoints=self._checkpoints[session_id])

    def discard(self, session_id: str) -> None:
        for checkpoint_id in self._checkpoints.pop(session_id, {}):
            self._order.pop(checkpoint_id, None)
