"""Colour parsing, luminance and colour-space conversion helpers."""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np
from scipy.spatial.distance import cdist
from skimage.color import lab2rgb, rgb2lab

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def luma(rgb: np.ndarray) -> np.ndarray:
    """Luminance of (..., 3) RGB values as float64 in [0, 255]."""
    return np.asarray(rgb, dtype=np.float64) @ LUMA_WEIGHTS


def luma_of(r: float, g: float, b: float) -> float:
    """Scalar luminance, for the per-pixel loops."""
    return r * 0.299 + g * 0.587 + b * 0.114


def hex_to_rgb(hex_str: str) -> np.ndarray:
    """Parse '#RRGGBB' to (3,) uint8 array."""
    h = hex_str.strip().lstrip("#")
    if len(h) != 6:
        msg = f"Invalid hex colour {hex_str!r}"
        raise ValueError(msg)
    return np.array([int(h[i : i + 2], 16) for i in (0, 2, 4)], dtype=np.uint8)


def rgb_to_hex(rgb: Iterable[int]) -> str:
    """Format an RGB triple as '#rrggbb'."""
    r, g, b = (int(v) for v in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def parse_palette(colors: Iterable[str]) -> np.ndarray:
    """Parse hex strings to a (n, 3) uint8 palette."""
    parsed = [hex_to_rgb(c) for c in colors]
    if not parsed:
        return np.zeros((0, 3), dtype=np.uint8)
    return np.stack(parsed).astype(np.uint8)


def grayscale_ramp(n: int) -> np.ndarray:
    """Evenly spaced grays from black to white; a single entry is black."""
    if n < 2:
        return np.zeros((1, 3), dtype=np.uint8)
    values = np.round(np.linspace(0, 255, n)).astype(np.uint8)
    return np.repeat(values[:, np.newaxis], 3, axis=1)


def sort_by_luma(palette: np.ndarray) -> np.ndarray:
    """Stable sort of palette rows by luminance, darkest first."""
    order = np.argsort(luma(palette), kind="stable")
    return palette[order]


def squared_distances(points: np.ndarray, centres: np.ndarray) -> np.ndarray:
    """Pairwise squared Euclidean distances, shape (len(points), len(centres))."""
    return cdist(
        np.asarray(points, dtype=np.float64),
        np.asarray(centres, dtype=np.float64),
        "sqeuclidean",
    )


def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert flat (N, 3) uint8 RGB → (N, 3) float64 CIELAB."""
    return rgb2lab(rgb.astype(np.float64).reshape(1, -1, 3) / 255.0).reshape(-1, 3)


def lab_to_rgb(lab: np.ndarray) -> np.ndarray:
    """Convert flat (N, 3) CIELAB → (N, 3) float64 RGB in [0, 255]."""
    rgb = lab2rgb(np.asarray(lab, dtype=np.float64).reshape(1, -1, 3)).reshape(-1, 3)
    return np.clip(rgb, 0.0, 1.0) * 255.0
