"""Vertical overlap detection between the composite tail and a new frame.

The bottom rows of the reference (the *signature block*) are searched for in
the top half of the candidate. A multi-row signature keeps periodic content
such as repeated text lines from matching at the wrong offset.

Offsets are exclusive: ``offset`` is the number of leading candidate rows
that already exist in the reference, so new content starts at row
``offset``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np

from .frame import Frame

log = logging.getLogger("Overlap")


class OverlapKind(str, Enum):
    MATCHED = "matched"
    NO_OVERLAP = "no_overlap"
    FULL_DUPLICATE = "full_duplicate"


@dataclass(frozen=True)
class OverlapResult:
    offset: int
    kind: OverlapKind

    @classmethod
    def no_overlap(cls) -> "OverlapResult":
        return cls(0, OverlapKind.NO_OVERLAP)


def channel_mismatch(p1, p2, tolerance: int) -> np.ndarray:
    """Mask of pixels where any R, G or B difference exceeds ``tolerance``.

    Inputs are pixels or pixel arrays; alpha is ignored.
    """
    a = np.asarray(p1, dtype=np.int16)[..., :3]
    b = np.asarray(p2, dtype=np.int16)[..., :3]
    return (np.abs(a - b) > tolerance).any(axis=-1)


def pixels_similar(p1, p2, tolerance: int) -> bool:
    """Return *True* if every R, G and B difference is within ``tolerance``."""
    return not channel_mismatch(p1, p2, tolerance).any()


class OverlapDetector:
    """Find how many leading rows of a frame duplicate the composite tail.

    Parameters
    ----------
    tolerance : int, optional
        Maximum per-channel absolute difference for two pixels to be similar.
    sparse_stride : int, optional
        Column step of the cheap pre-check.
    noise_ratio : float, optional
        Fraction of pixels allowed to exceed ``tolerance`` in the strict check.
    signature_rows : int, optional
        Fixed signature height. When omitted the height is a fraction of the
        reference height bounded to ``[MIN_SIGNATURE_ROWS, MAX_SIGNATURE_ROWS]``.
    """

    TOLERANCE: int = 10
    SPARSE_STRIDE: int = 10
    NOISE_RATIO: float = 0.01
    SIGNATURE_FRACTION: float = 0.05
    MIN_SIGNATURE_ROWS: int = 5
    MAX_SIGNATURE_ROWS: int = 50

    def __init__(
        self,
        tolerance: Optional[int] = None,
        sparse_stride: Optional[int] = None,
        noise_ratio: Optional[float] = None,
        signature_rows: Optional[int] = None,
    ) -> None:
        self.tolerance = self.TOLERANCE if tolerance is None else tolerance
        self.sparse_stride = self.SPARSE_STRIDE if sparse_stride is None else sparse_stride
        self.noise_ratio = self.NOISE_RATIO if noise_ratio is None else noise_ratio
        if self.sparse_stride < 1:
            raise ValueError("sparse_stride must be at least 1")
        if signature_rows is not None and signature_rows < 1:
            raise ValueError("signature_rows must be at least 1")
        self._signature_rows = signature_rows

    def signature_height(self, reference_height: int) -> int:
        if self._signature_rows is not None:
            rows = self._signature_rows
        else:
            rows = int(round(reference_height * self.SIGNATURE_FRACTION))
            rows = max(self.MIN_SIGNATURE_ROWS, min(self.MAX_SIGNATURE_ROWS, rows))
        return min(rows, reference_height)

    # ─────────────────────────────── comparisons
    def _block_matches(self, a: np.ndarray, b: np.ndarray) -> bool:
        mismatched = channel_mismatch(a, b, self.tolerance)
        allowed = int(mismatched.size * self.noise_ratio)
        return int(mismatched.sum()) <= allowed

    # ─────────────────────────────── detection
    def detect(
        self,
        reference: Union[np.ndarray, Frame],
        candidate: Union[np.ndarray, Frame],
    ) -> OverlapResult:
        ref = reference.pixels if isinstance(reference, Frame) else np.asarray(reference)
        cand = candidate.pixels if isinstance(candidate, Frame) else np.asarray(candidate)

        ref_h, ref_w = ref.shape[:2]
        cand_h, cand_w = cand.shape[:2]
        if ref_h == 0 or ref_w == 0 or cand_h == 0 or cand_w == 0:
            return OverlapResult.no_overlap()

        width = min(ref_w, cand_w)
        if width < self.sparse_stride:
            return OverlapResult.no_overlap()

        sig_h = self.signature_height(ref_h)
        if cand_h < sig_h:
            return OverlapResult.no_overlap()

        ref_rgb = ref[:, :width, :3].astype(np.int16)
        cand_rgb = cand[:, :width, :3].astype(np.int16)

        # Nothing scrolled: the whole frame equals the reference tail
        if ref_h == cand_h and self._block_matches(cand_rgb, ref_rgb):
            log.debug("Frame duplicates the composite tail")
            return OverlapResult(cand_h, OverlapKind.FULL_DUPLICATE)

        signature = ref_rgb[ref_h - sig_h :]
        probe = sorted({0, sig_h // 2, sig_h - 1})
        cols = slice(0, width, self.sparse_stride)
        sparse_signature = signature[probe, cols]

        depth = min(cand_h, ref_h) // 2
        for y in range(depth):
            if y + sig_h > cand_h:
                break
            sample = cand_rgb[[y + row for row in probe], cols]
            if not pixels_similar(sample, sparse_signature, self.tolerance):
                continue
            if not self._block_matches(cand_rgb[y : y + sig_h], signature):
                continue
            log.debug(f"Signature found at y={y}, overlap={y + sig_h}")
            return OverlapResult(y + sig_h, OverlapKind.MATCHED)

        return OverlapResult.no_overlap()
