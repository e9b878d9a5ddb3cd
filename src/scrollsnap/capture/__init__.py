from .protocols import ScreenCapture, WindowVisibility
from .scheduler import CaptureEvent, CaptureScheduler
from .session import CancellationToken, CaptureSession, SessionManager, SessionState

__all__ = [
    "CancellationToken",
    "CaptureEvent",
    "CaptureScheduler",
    "CaptureSession",
    "ScreenCapture",
    "SessionManager",
    "SessionState",
    "WindowVisibility",
]
