from .compositor import CompositeImage, ImageCompositor
from .frame import Frame
from .overlap import (
    OverlapDetector,
    OverlapKind,
    OverlapResult,
    channel_mismatch,
    pixels_similar,
)

__all__ = [
    "CompositeImage",
    "Frame",
    "ImageCompositor",
    "OverlapDetector",
    "OverlapKind",
    "OverlapResult",
    "channel_mismatch",
    "pixels_similar",
]
