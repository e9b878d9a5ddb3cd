"""Incremental vertical compositing of scrolled frames.

The composite keeps a single growable RGBA buffer. Rows are only ever
appended below the current content, so the valid region ``[0, height)`` is
never rewritten once filled.
"""

from __future__ import annotations

import numpy as np

from .frame import Frame
from .overlap import OverlapKind, OverlapResult


class CompositeImage:
    """Accumulated raster of one capture session.

    The width is fixed by the first frame. Storage grows geometrically, the
    visible height only through :meth:`ImageCompositor.append`.
    """

    _GROWTH: float = 1.5

    def __init__(self, width: int, height: int = 0, capacity: int | None = None) -> None:
        if width <= 0:
            raise ValueError("Composite width must be positive")
        self._width = width
        self._height = height
        self._buffer = np.zeros((max(capacity or 0, height, 1), width, 4), dtype=np.uint8)

    @classmethod
    def from_frame(cls, frame: Frame) -> "CompositeImage":
        composite = cls(frame.width, frame.height, capacity=frame.height * 4)
        composite._buffer[: frame.height] = frame.pixels
        return composite

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    def tail(self, rows: int) -> np.ndarray:
        """Return a read-only view of the bottom ``rows`` rows."""
        start = max(0, self._height - rows)
        view = self._buffer[start : self._height]
        view.flags.writeable = False
        return view

    def to_array(self) -> np.ndarray:
        return self._buffer[: self._height].copy()

    def _reserve(self, rows: int) -> None:
        needed = self._height + rows
        if needed <= self._buffer.shape[0]:
            return
        capacity = max(needed, int(self._buffer.shape[0] * self._GROWTH) + 1)
        grown = np.zeros((capacity, self._width, 4), dtype=np.uint8)
        grown[: self._height] = self._buffer[: self._height]
        self._buffer = grown

    def _write_rows(self, rows: np.ndarray) -> None:
        count = rows.shape[0]
        self._reserve(count)
        cols = min(self._width, rows.shape[1])
        target = self._buffer[self._height : self._height + count]
        target[:, :cols] = rows[:, :cols]
        target[:, cols:] = 0
        self._height += count


class ImageCompositor:
    """Appends the non-duplicated remainder of a frame below a composite."""

    def append(self, base: CompositeImage, frame: Frame, overlap: OverlapResult) -> int:
        """Extend ``base`` in place with ``frame`` rows ``[overlap.offset, height)``.

        Returns the number of rows appended. Nothing is appended for
        ``NO_OVERLAP`` and ``FULL_DUPLICATE`` results or when the offset
        covers the whole frame.
        """
        if overlap.kind is not OverlapKind.MATCHED:
            return 0
        if overlap.offset >= frame.height:
            return 0
        remainder = frame.pixels[overlap.offset :]
        base._write_rows(remainder)
        return int(remainder.shape[0])
