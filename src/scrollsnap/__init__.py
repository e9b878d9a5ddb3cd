"""Scrolling screen capture: stitch a region into one tall image while you scroll."""

from .capture import CaptureScheduler, SessionManager
from .errors import (
    CaptureFailure,
    EncodingFailure,
    ScrollSnapError,
    SessionAlreadyRunning,
    SessionNotFound,
)
from .schemas import (
    CaptureComplete,
    CaptureError,
    CaptureOptions,
    Display,
    ErrorKind,
    Region,
    StopReason,
)
from .stitch import (
    CompositeImage,
    Frame,
    ImageCompositor,
    OverlapDetector,
    OverlapKind,
    OverlapResult,
)

__all__ = [
    "CaptureComplete",
    "CaptureError",
    "CaptureFailure",
    "CaptureOptions",
    "CaptureScheduler",
    "CompositeImage",
    "Display",
    "EncodingFailure",
    "ErrorKind",
    "Frame",
    "ImageCompositor",
    "OverlapDetector",
    "OverlapKind",
    "OverlapResult",
    "Region",
    "ScrollSnapError",
    "SessionAlreadyRunning",
    "SessionManager",
    "SessionNotFound",
    "StopReason",
]
