from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Region(BaseModel):
    """Rectangle in global physical pixels (Y=0 at top)."""

    x: int = Field(..., description="Left edge")
    y: int = Field(..., description="Top edge")
    width: int = Field(..., ge=0, description="Width in pixels")
    height: int = Field(..., ge=0, description="Height in pixels")

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def inset(self, px: int) -> "Region":
        """Shrink the region by ``px`` on every side.

        The region is returned unchanged when shrinking would leave nothing
        to capture.
        """
        if px <= 0 or self.width <= 2 * px or self.height <= 2 * px:
            return self
        return Region(
            x=self.x + px,
            y=self.y + px,
            width=self.width - 2 * px,
            height=self.height - 2 * px,
        )

    def as_mss(self) -> dict:
        return {
            "left": self.x,
            "top": self.y,
            "width": self.width,
            "height": self.height,
        }


class Display(BaseModel):
    origin: tuple[int, int] = Field(..., description="Top-left corner")
    size: tuple[int, int] = Field(..., description="(width, height)")
    scale_factor: float = Field(1.0, description="Physical pixels per point")

    @property
    def region(self) -> Region:
        return Region(
            x=self.origin[0], y=self.origin[1], width=self.size[0], height=self.size[1]
        )


class CaptureOptions(BaseModel):
    poll_interval_ms: int = Field(
        100, ge=1, description="Delay between two captures of the region"
    )
    max_stitches: int = Field(
        500, ge=1, description="Finish after this many successful appends"
    )
    static_timeout_ticks: Optional[int] = Field(
        None,
        ge=0,
        description="Finish after this many consecutive ticks without new content",
    )
    border_inset: int = Field(
        0, ge=0, description="Pixels trimmed from every side of the region"
    )

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0


class StopReason(str, Enum):
    USER_STOP = "user_stop"
    LIMIT_REACHED = "limit_reached"
    IDLE_TIMEOUT = "idle_timeout"
    CAPTURE_FAILURE = "capture_failure"


class ErrorKind(str, Enum):
    CAPTURE_FAILURE = "capture_failure"
    ENCODING_FAILURE = "encoding_failure"


class CaptureComplete(BaseModel):
    session_id: str
    image_bytes: bytes = Field(..., repr=False, description="PNG encoded composite")
    width: int
    height: int
    stitch_count: int = 0
    reason: StopReason = StopReason.USER_STOP


class CaptureError(BaseModel):
    session_id: str
    message: str
    kind: ErrorKind
    image_bytes: Optional[bytes] = Field(
        None, repr=False, description="PNG of whatever was stitched before the failure"
    )
    width: Optional[int] = None
    height: Optional[int] = None
