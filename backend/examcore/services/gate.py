"""
Exam Session Engine - Session Gate
The single closed flag every mutating component checks first.
"""
from examcore.services.errors import SessionClosed


class SessionGate:
    """Holds a session's ``closed`` flag."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed(self.session_id)

    def try_close(self) -> bool:
        """
        Close the session. Returns False if it was already closed.

        Check and set happen with no suspension point in between, so on a
        single event loop the first caller wins.
        """
        if self._closed:
            return False
        self._closed = True
        return True
