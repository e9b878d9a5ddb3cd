from __future__ import annotations

import base64
import io
import os
from typing import Union

import numpy as np
from PIL import Image

from .errors import EncodingFailure
from .stitch import CompositeImage

_DATA_URL_PREFIX = "data:image/png;base64,"


def encode_png(image: Union[CompositeImage, np.ndarray]) -> bytes:
    """Serialize an RGBA raster to PNG bytes.

    Raises
    ------
    EncodingFailure
        If the raster is empty or Pillow fails to write it.
    """
    pixels = image.to_array() if isinstance(image, CompositeImage) else np.asarray(image)
    if pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise EncodingFailure(f"Cannot encode an image of shape {pixels.shape}")

    buf = io.BytesIO()
    try:
        # (H, W, 4) uint8 is read as RGBA
        Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)).save(buf, "PNG")
    except (OSError, ValueError) as exc:
        raise EncodingFailure(f"PNG encoding failed: {exc}") from exc
    return buf.getvalue()


def to_data_url(png_bytes: bytes) -> str:
    return _DATA_URL_PREFIX + base64.b64encode(png_bytes).decode("ascii")


def from_data_url(data: str) -> bytes:
    """Decode a ``data:image/png;base64,`` payload (the prefix is optional)."""
    if data.startswith(_DATA_URL_PREFIX):
        data = data[len(_DATA_URL_PREFIX) :]
    return base64.b64decode(data, validate=True)


def write_image(path: str, png_bytes: bytes) -> str:
    """Write PNG bytes to ``path`` and return the absolute path."""
    path = os.path.abspath(os.path.expanduser(path))
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(png_bytes)
    return path
