from __future__ import annotations

import time
from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True)
class Frame:
    """One immutable RGBA8 snapshot of the captured region.

    ``pixels`` has shape ``(height, width, 4)`` and dtype ``uint8``. The
    array is marked read-only on construction.
    """

    pixels: np.ndarray
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        arr = np.asarray(self.pixels)
        if arr.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {arr.dtype}")
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) RGBA array, got {arr.shape}")
        if arr is self.pixels:
            arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_bgra(cls, raw: bytes, width: int, height: int, timestamp: float | None = None) -> "Frame":
        """Build a frame from a BGRA byte buffer (the layout mss returns)."""
        bgra = np.frombuffer(raw, dtype=np.uint8).reshape(height, width, 4)
        rgba = bgra[:, :, [2, 1, 0, 3]].copy()
        # BGRX sources leave the fourth byte undefined
        rgba[:, :, 3] = 255
        if timestamp is None:
            return cls(rgba)
        return cls(rgba, timestamp)
