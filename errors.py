class EngineError(Exception):
    """Base class for performance engine errors."""


class SessionNotFound(EngineError, LookupError):
    """Raised when a session id does not exist."""

    def __init__(self, session_id: int) -> None:
        super().__init__(f"session {session_id} not found")
        self.session_id = session_id


class SessionStateError(EngineError):
    """Raised when a session is in the wrong status for an operation."""

    expected = ""

    def __init__(self, session_id: int, status: str) -> None:
        super().__init__(
            f"session {session_id} is {status}, expected {self.expected}"
        )
        self.session_id = session_id
        self.status = status


class SessionNotActive(SessionStateError):
    expected = "active"


class SessionNotCompleted(SessionStateError):
    expected = "completed"
