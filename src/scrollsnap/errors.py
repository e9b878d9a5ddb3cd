from __future__ import annotations


class ScrollSnapError(Exception):
    """Base class for every error raised by scrollsnap."""


class CaptureFailure(ScrollSnapError):
    """The capture collaborator could not read the region."""


class EncodingFailure(ScrollSnapError):
    """The finished composite could not be serialized."""


class SessionAlreadyRunning(ScrollSnapError):
    def __init__(self, active_id: str) -> None:
        super().__init__(f"Capture session {active_id} is already running")
        self.active_id = active_id


class SessionNotFound(ScrollSnapError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"No active capture session with id {session_id}")
        self.session_id = session_id
