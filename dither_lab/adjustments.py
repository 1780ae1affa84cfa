"""Tone adjustments applied before quantization."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence

import numpy as np

from dither_lab.color_utils import luma

logger = logging.getLogger(__name__)

CURVE_CHANNELS = ("rgb", "r", "g", "b")


def apply_adjustments(
    view: np.ndarray,
    brightness: float = 0.0,
    contrast: float = 1.0,
    saturation: float = 1.0,
) -> np.ndarray:
    """Contrast, then brightness, then saturation, in place on (..., 4) RGBA.

    Contrast pivots on mid-gray (127.5); saturation mixes each channel with
    the pixel's luma. Identity settings leave the pixels untouched.
    """
    if brightness == 0 and contrast == 1.0 and saturation == 1.0:
        return view

    rgb = view[..., :3].astype(np.float64)
    rgb = (rgb - 127.5) * contrast + 127.5 + brightness
    if saturation != 1.0:
        y = luma(rgb)[..., np.newaxis]
        rgb = y + (rgb - y) * saturation

    view[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    return view


def curve_lut(points: Sequence[tuple[int, int]]) -> np.ndarray:
    """256-entry table through *points* by linear interpolation.

    Inputs left of the first point or right of the last hold its value;
    fewer than two points give the identity.
    """
    pts = sorted((int(x), int(y)) for x, y in points)
    if len(pts) < 2:
        return np.arange(256, dtype=np.uint8)
    xs = np.array([p[0] for p in pts], dtype=np.float64)
    ys = np.array([p[1] for p in pts], dtype=np.float64)
    table = np.interp(np.arange(256, dtype=np.float64), xs, ys)
    return np.clip(np.rint(table), 0, 255).astype(np.uint8)


class CurveProcessor:
    """Caches per-channel curve tables and applies them to RGBA pixels.

    The master ``"rgb"`` curve runs first, then the ``"r"``, ``"g"`` and
    ``"b"`` curves.
    """

    def __init__(self) -> None:
        identity = np.arange(256, dtype=np.uint8)
        self.luts: dict[str, np.ndarray] = {ch: identity for ch in CURVE_CHANNELS}
        self._cached: str | None = None

    def generate(self, curves: Mapping[str, Sequence[tuple[int, int]]]) -> bool:
        """Rebuild the tables when *curves* changed; return whether it did."""
        key = json.dumps({k: [list(p) for p in v] for k, v in curves.items()}, sort_keys=True)
        if key == self._cached:
            return False

        identity = np.arange(256, dtype=np.uint8)
        self.luts = {ch: identity for ch in CURVE_CHANNELS}
        for channel, points in curves.items():
            if channel not in self.luts:
                logger.warning("Ignoring curve for unknown channel %r", channel)
                continue
            self.luts[channel] = curve_lut(points)
        self._cached = key
        return True

    def apply(
        self,
        view: np.ndarray,
        curves: Mapping[str, Sequence[tuple[int, int]]] | None,
    ) -> np.ndarray:
        if not curves:
            return view
        self.generate(curves)
        master = self.luts["rgb"]
        for c, channel in enumerate(("r", "g", "b")):
            view[..., c] = self.luts[channel][master[view[..., c]]]
        return view
