"""Shared pytest fixtures for the scrollsnap test suite.

Frames are synthetic: a tall random "page" stands in for scrolled content,
and a scripted capture source replays windows of it in order.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

import numpy as np
import pytest

from scrollsnap.schemas import Display
from scrollsnap.stitch import Frame


def make_page(height: int = 600, width: int = 40, seed: int = 7) -> np.ndarray:
    """Random opaque RGBA content; every row is practically unique."""
    rng = np.random.default_rng(seed)
    page = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    page[:, :, 3] = 255
    return page


def solid(height: int, width: int, color=(200, 30, 30)) -> np.ndarray:
    arr = np.zeros((height, width, 4), dtype=np.uint8)
    arr[:, :, :3] = color
    arr[:, :, 3] = 255
    return arr


class ScriptedCapture:
    """Capture source replaying a fixed list of frames.

    After the script runs out the last frame is repeated. ``fail_at`` makes
    every call from that index on raise.
    """

    def __init__(
        self,
        frames: List[Frame],
        fail_at: Optional[int] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.frames = frames
        self.fail_at = fail_at
        self.gate = gate
        self.calls = 0
        self.regions = []
        self.closed = False
        self._lock = threading.Lock()

    def enumerate_displays(self):
        return [Display(origin=(0, 0), size=(1920, 1080))]

    def capture_region(self, region):
        if self.gate is not None:
            self.gate.wait(5)
        with self._lock:
            idx = self.calls
            self.calls += 1
            self.regions.append(region)
        if self.fail_at is not None and idx >= self.fail_at:
            raise RuntimeError("display went away")
        return self.frames[min(idx, len(self.frames) - 1)]

    def close(self):
        self.closed = True


class EventRecorder:
    def __init__(self) -> None:
        self.events = []
        self.done = threading.Event()

    def __call__(self, event) -> None:
        self.events.append(event)
        self.done.set()

    def wait(self, timeout: float = 5.0):
        assert self.done.wait(timeout), "no capture event was emitted"
        return self.events[-1]


@pytest.fixture
def page() -> np.ndarray:
    return make_page()


@pytest.fixture
def windows(page) -> Callable[..., List[Frame]]:
    """Build frames looking at ``page`` through a window of ``height`` rows."""

    def _windows(tops, height: int = 100) -> List[Frame]:
        return [Frame(page[top : top + height]) for top in tops]

    return _windows


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()
