"""Screen capture for scroll sessions, backed by mss.

Coordinate system:
- Regions are global physical pixels with Y=0 at the top-left of the
  virtual desktop, the layout mss uses for ``monitors`` and ``grab``.
- Any DPI correction happens before a region reaches this module.

Display resolution:
- A region belongs to the display containing its centre; if the centre is
  off-screen, to the display it overlaps most; otherwise to the first one.
- The grabbed rectangle is clipped to that display so partially off-screen
  selections still yield frames of a stable size.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Sequence, Tuple

import mss
from mss.exception import ScreenShotError
from shapely.geometry import Point, box
from shapely.ops import unary_union

from ..errors import CaptureFailure
from ..schemas import Display, Region
from ..stitch import Frame

log = logging.getLogger("Screen")


###############################################################################
# Geometry helpers                                                            #
###############################################################################


def _box_for(region: Region):
    return box(region.x, region.y, region.x + region.width, region.y + region.height)


def get_virtual_bounds(displays: Sequence[Display]) -> Region:
    """Return the bounding box enclosing **all** displays."""
    if not displays:
        raise ValueError("No displays to bound")
    union = unary_union([_box_for(d.region) for d in displays])
    min_x, min_y, max_x, max_y = union.bounds
    return Region(
        x=int(min_x), y=int(min_y), width=int(max_x - min_x), height=int(max_y - min_y)
    )


def resolve_display(region: Region, displays: Sequence[Display]) -> Optional[Display]:
    if not displays:
        return None

    center = Point(*region.center)
    for display in displays:
        if _box_for(display.region).covers(center):
            return display

    area, best = max(
        ((_box_for(d.region).intersection(_box_for(region)).area, d) for d in displays),
        key=lambda pair: pair[0],
    )
    return best if area > 0 else displays[0]


def clip_to_display(region: Region, display: Display) -> Region:
    """Intersect ``region`` with ``display``.

    Raises
    ------
    CaptureFailure
        If the region lies entirely outside the display.
    """
    visible = _box_for(region).intersection(_box_for(display.region))
    if visible.is_empty or visible.area == 0:
        raise CaptureFailure(f"Region {region} is outside display {display.region}")
    min_x, min_y, max_x, max_y = (int(v) for v in visible.bounds)
    return Region(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)


###############################################################################
# Screen capture                                                              #
###############################################################################


class MssScreenCapture:
    """Grab rectangles of the screen as RGBA :class:`Frame` objects.

    mss handles are not shareable across threads, so each calling thread
    gets its own instance; :meth:`release` closes the caller's handle once
    its session is over. The clipped target of a region is resolved on
    first use and reused until then.
    """

    _MON_START: int = 1  # first real display in mss

    def __init__(self, clip: bool = True) -> None:
        self._clip = clip
        self._local = threading.local()
        self._handles: List = []
        self._handles_lock = threading.Lock()
        self._targets: Dict[Tuple[int, int, int, int], Region] = {}

    def _sct(self):
        sct = getattr(self._local, "sct", None)
        if sct is None:
            sct = mss.mss()
            self._local.sct = sct
            with self._handles_lock:
                self._handles.append(sct)
        return sct

    def enumerate_displays(self) -> List[Display]:
        monitors = self._sct().monitors[self._MON_START :]
        return [
            Display(origin=(m["left"], m["top"]), size=(m["width"], m["height"]))
            for m in monitors
        ]

    def _target(self, region: Region) -> Region:
        key = (region.x, region.y, region.width, region.height)
        with self._handles_lock:
            target = self._targets.get(key)
        if target is not None:
            return target

        target = region
        display = resolve_display(region, self.enumerate_displays())
        if display is not None:
            target = clip_to_display(region, display)
        if target != region:
            log.debug(f"Clipped {region} to {target}")
        with self._handles_lock:
            self._targets[key] = target
        return target

    def capture_region(self, region: Region) -> Frame:
        try:
            target = self._target(region) if self._clip else region
            shot = self._sct().grab(target.as_mss())
        except ScreenShotError as exc:
            raise CaptureFailure(f"Failed to capture area {region}: {exc}") from exc
        return Frame.from_bgra(shot.bgra, shot.width, shot.height)

    def release(self) -> None:
        """Close the calling thread's mss handle and forget resolved targets."""
        sct = getattr(self._local, "sct", None)
        self._local.sct = None
        with self._handles_lock:
            self._targets.clear()
            if sct is not None and sct in self._handles:
                self._handles.remove(sct)
        if sct is not None:
            sct.close()

    @property
    def open_handles(self) -> int:
        with self._handles_lock:
            return len(self._handles)

    def close(self) -> None:
        with self._handles_lock:
            handles, self._handles = self._handles, []
            self._targets.clear()
        for sct in handles:
            sct.close()
        self._local = threading.local()
