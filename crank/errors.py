class CrankError(Exception):
    """Base class for errors raised by the agent runtime."""


class SessionBusyError(CrankError):
    """A turn is already running for this session.

    Turns, reverts and forks on one session must not overlap; callers get this
    instead of a silently interleaved history.
    """

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} is busy")
        self.session_id = session_id
