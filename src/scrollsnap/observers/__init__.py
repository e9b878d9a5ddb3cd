from .hotkey import StopHotkey
from .screen import MssScreenCapture, clip_to_display, get_virtual_bounds, resolve_display

__all__ = [
    "MssScreenCapture",
    "StopHotkey",
    "clip_to_display",
    "get_virtual_bounds",
    "resolve_display",
]
