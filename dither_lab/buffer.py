"""Entry-point checks for caller-owned RGBA pixel buffers."""

from __future__ import annotations

import numpy as np

PixelBuffer = np.ndarray | bytearray | memoryview


def as_pixel_view(buffer: PixelBuffer, width: int, height: int) -> np.ndarray:
    """Return a writable (height, width, 4) uint8 view sharing *buffer*'s memory.

    Structural problems are the caller's to fix, so they raise instead of
    being recovered.

    Raises:
        ValueError: ``None`` buffer, non-positive dimensions, wrong dtype,
            read-only memory, or a length other than ``width * height * 4``.
    """
    if buffer is None:
        msg = "Pixel buffer is None"
        raise ValueError(msg)
    if (
        isinstance(width, bool) or isinstance(height, bool)
        or not isinstance(width, (int, np.integer))
        or not isinstance(height, (int, np.integer))
        or width <= 0 or height <= 0
    ):
        msg = f"Invalid frame size {width!r}x{height!r}"
        raise ValueError(msg)

    if isinstance(buffer, np.ndarray):
        arr = buffer
        if arr.dtype != np.uint8:
            msg = f"Pixel buffer must be uint8, got {arr.dtype}"
            raise ValueError(msg)
    else:
        arr = np.frombuffer(buffer, dtype=np.uint8)

    expected = int(width) * int(height) * 4
    if arr.size != expected:
        msg = f"Pixel buffer holds {arr.size} bytes, expected {expected} for {width}x{height} RGBA"
        raise ValueError(msg)
    if not arr.flags.writeable:
        msg = "Pixel buffer is read-only"
        raise ValueError(msg)

    view = arr.reshape(int(height), int(width), 4)
    if not np.may_share_memory(view, arr):
        msg = "Pixel buffer must be contiguous"
        raise ValueError(msg)
    return view


def new_buffer(width: int, height: int, rgb: tuple[int, int, int] = (0, 0, 0)) -> np.ndarray:
    """Allocate a flat opaque RGBA buffer filled with *rgb*."""
    buf = np.empty((height, width, 4), dtype=np.uint8)
    buf[..., :3] = rgb
    buf[..., 3] = 255
    return buf.reshape(-1)
