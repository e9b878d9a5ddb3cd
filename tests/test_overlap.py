"""Tests for overlap detection.

Tests cover:

- Per-channel pixel similarity and the tolerance boundary
- Signature height policy
- Full-duplicate detection for identical frames
- Matched offsets for scrolled content (exclusive convention)
- Short-circuits for degenerate inputs
- Noise handling in the sparse and strict checks
"""

from __future__ import annotations

from unittest import mock

import numpy as np
import pytest

from conftest import make_page, solid
from scrollsnap.stitch import (
    Frame,
    OverlapDetector,
    OverlapKind,
    channel_mismatch,
    overlap,
    pixels_similar,
)


def _flip(rgb: np.ndarray) -> np.ndarray:
    """Shift every channel by 128 so the pixel is far outside any tolerance."""
    return ((rgb.astype(np.int16) + 128) % 256).astype(np.uint8)


# ── Pixel similarity ────────────────────────────────────────────────


class TestPixelSimilarity:
    def test_difference_equal_to_tolerance_is_similar(self):
        """A channel difference exactly at the tolerance still matches."""
        assert pixels_similar((100, 100, 100, 255), (110, 90, 100, 255), 10)

    def test_one_more_unit_is_dissimilar(self):
        """One unit past the tolerance on any channel breaks the match."""
        assert not pixels_similar((100, 100, 100, 255), (111, 100, 100, 255), 10)
        assert not pixels_similar((100, 100, 100, 255), (100, 100, 89, 255), 10)

    def test_alpha_is_ignored(self):
        assert pixels_similar((5, 5, 5, 0), (5, 5, 5, 255), 0)

    def test_detector_uses_the_same_boundary(self):
        """Frames offset by exactly the tolerance are duplicates; one more is not."""
        detector = OverlapDetector(tolerance=10)
        base = solid(40, 40, (100, 100, 100))
        at_limit = solid(40, 40, (110, 100, 100))
        past_limit = solid(40, 40, (111, 100, 100))
        assert detector.detect(base, at_limit).kind is OverlapKind.FULL_DUPLICATE
        assert detector.detect(base, past_limit).kind is OverlapKind.NO_OVERLAP

    def test_mismatch_mask_marks_pixels(self):
        a = solid(2, 3, (100, 100, 100))
        b = a.copy()
        b[1, 2, 0] = 120
        b[0, 0, 3] = 0
        mask = channel_mismatch(a, b, 10)
        assert mask.shape == (2, 3)
        assert mask.tolist() == [[False, False, False], [False, False, True]]

    def test_detector_compares_through_the_shared_helpers(self, page, monkeypatch):
        sparse = mock.Mock(wraps=overlap.pixels_similar)
        strict = mock.Mock(wraps=overlap.channel_mismatch)
        monkeypatch.setattr(overlap, "pixels_similar", sparse)
        monkeypatch.setattr(overlap, "channel_mismatch", strict)

        result = OverlapDetector(tolerance=12).detect(page[0:200], page[120:320])

        assert result.offset == 80
        assert sparse.called and strict.called
        assert {c.args[2] for c in sparse.call_args_list} == {12}
        assert {c.args[2] for c in strict.call_args_list} == {12}


# ── Signature policy ────────────────────────────────────────────────


class TestSignatureHeight:
    @pytest.mark.parametrize(
        "ref_height, expected",
        [(200, 10), (40, 5), (3000, 50), (3, 3)],
    )
    def test_fraction_is_bounded(self, ref_height, expected):
        assert OverlapDetector().signature_height(ref_height) == expected

    def test_fixed_rows_override(self):
        assert OverlapDetector(signature_rows=7).signature_height(500) == 7

    def test_rejects_bad_tunables(self):
        with pytest.raises(ValueError):
            OverlapDetector(sparse_stride=0)
        with pytest.raises(ValueError):
            OverlapDetector(signature_rows=0)


# ── Detection ───────────────────────────────────────────────────────


class TestDetect:
    def test_identical_frame_is_full_duplicate(self, page):
        """Any frame equal to the composite tail reports FULL_DUPLICATE."""
        frame = page[100:300]
        result = OverlapDetector().detect(frame, frame.copy())
        assert result.kind is OverlapKind.FULL_DUPLICATE
        assert result.offset == 200

    def test_identical_solid_frames(self):
        """Two identical 100x100 solid frames are a full duplicate."""
        a = solid(100, 100)
        result = OverlapDetector().detect(Frame(a), Frame(a.copy()))
        assert result.kind is OverlapKind.FULL_DUPLICATE

    def test_signature_band_scenario(self):
        """Reference rows 190-199 reappear at rows 40-49: 50 rows overlap."""
        x, y, z = (10, 200, 10), (240, 240, 240), (20, 20, 120)
        reference = solid(200, 40, z)
        reference[190:200, :, :3] = x
        candidate = solid(200, 40, y)
        candidate[40:50, :, :3] = x

        result = OverlapDetector().detect(reference, candidate)

        assert result.kind is OverlapKind.MATCHED
        assert result.offset == 50

    def test_scrolled_content_offset_is_rows_to_skip(self, page):
        """offset counts the candidate's leading rows already in the reference."""
        reference = page[0:200]
        candidate = page[120:320]
        result = OverlapDetector().detect(reference, candidate)
        assert result.kind is OverlapKind.MATCHED
        assert result.offset == 80
        np.testing.assert_array_equal(candidate[: result.offset], reference[120:])

    def test_small_scroll_is_not_matched_yet(self, page):
        """Scrolls shallower than the search window wait for the next tick."""
        result = OverlapDetector().detect(page[0:200], page[30:230])
        assert result.kind is OverlapKind.NO_OVERLAP
        assert result.offset == 0

    def test_scroll_past_the_region_has_no_overlap(self, page):
        result = OverlapDetector().detect(page[0:200], page[250:450])
        assert result.kind is OverlapKind.NO_OVERLAP

    def test_accepts_frames_and_arrays(self, page):
        result = OverlapDetector().detect(Frame(page[0:200]), Frame(page[120:320]))
        assert result.offset == 80

    def test_wider_candidate_compares_common_width(self):
        wide = make_page(600, 60, seed=3)
        reference = wide[0:200, :40]
        candidate = wide[120:320]
        result = OverlapDetector().detect(reference, candidate)
        assert result.kind is OverlapKind.MATCHED
        assert result.offset == 80


class TestDegenerateInputs:
    def test_zero_area_images(self, page):
        detector = OverlapDetector()
        empty = np.zeros((0, 40, 4), dtype=np.uint8)
        assert detector.detect(empty, page[:100]).kind is OverlapKind.NO_OVERLAP
        assert detector.detect(page[:100], empty).kind is OverlapKind.NO_OVERLAP

    def test_narrower_than_sparse_stride(self):
        narrow = make_page(200, 5)
        result = OverlapDetector().detect(narrow[0:100], narrow[60:160])
        assert result.kind is OverlapKind.NO_OVERLAP

    def test_candidate_shorter_than_signature(self, page):
        result = OverlapDetector().detect(page[0:200], page[195:203])
        assert result.kind is OverlapKind.NO_OVERLAP


class TestNoise:
    def test_noise_within_tolerance_still_matches(self, page):
        rng = np.random.default_rng(11)
        candidate = page[120:320].astype(np.int16)
        candidate[:, :, :3] += rng.integers(-10, 11, size=candidate[:, :, :3].shape)
        candidate = np.clip(candidate, 0, 255).astype(np.uint8)

        result = OverlapDetector().detect(page[0:200], candidate)

        assert result.kind is OverlapKind.MATCHED
        assert result.offset == 80

    def test_sparse_outliers_off_the_probe_grid_are_tolerated(self, page):
        """Up to 1% of band pixels may differ when the sparse probe passes."""
        candidate = page[120:320].copy()
        # signature band sits at rows 70-79; probes use rows 70, 75, 79, every 10th column
        candidate[72, 3, :3] = _flip(candidate[72, 3, :3])
        candidate[77, 14, :3] = _flip(candidate[77, 14, :3])

        result = OverlapDetector().detect(page[0:200], candidate)

        assert result.kind is OverlapKind.MATCHED
        assert result.offset == 80

    def test_mismatch_on_the_probe_grid_rejects(self, page):
        candidate = page[120:320].copy()
        candidate[70, 0, :3] = _flip(candidate[70, 0, :3])
        result = OverlapDetector().detect(page[0:200], candidate)
        assert result.kind is OverlapKind.NO_OVERLAP

    def test_too_many_outliers_reject(self, page):
        candidate = page[120:320].copy()
        # 10 rows x 40 columns: 1% allows 4 outliers
        for col in (1, 2, 3, 4, 5):
            candidate[72, col, :3] = _flip(candidate[72, col, :3])
        result = OverlapDetector().detect(page[0:200], candidate)
        assert result.kind is OverlapKind.NO_OVERLAP
