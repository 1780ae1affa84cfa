"""Fidelity metrics between an original and a processed RGBA buffer."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from dither_lab.buffer import PixelBuffer
from dither_lab.color_utils import luma

MAX_COLORS = 256 ** 3

# SSIM stabilisation constants for 8-bit data
_C1 = (0.01 * 255) ** 2
_C2 = (0.03 * 255) ** 2


@dataclass(frozen=True)
class MetricsResult:
    psnr: float
    ssim: float
    unique_colors: int
    compression_ratio: float


def _rgb(buffer: PixelBuffer) -> np.ndarray:
    arr = np.frombuffer(buffer, dtype=np.uint8) if not isinstance(buffer, np.ndarray) else buffer
    if arr.size % 4:
        msg = f"RGBA buffer length {arr.size} is not a multiple of 4"
        raise ValueError(msg)
    return arr.reshape(-1, 4)[:, :3].astype(np.float64)


def _pair(a: PixelBuffer, b: PixelBuffer) -> tuple[np.ndarray, np.ndarray]:
    x, y = _rgb(a), _rgb(b)
    if x.shape != y.shape:
        msg = f"Buffers differ in size ({len(x)} vs {len(y)} pixels)"
        raise ValueError(msg)
    if len(x) == 0:
        msg = "Cannot compare empty buffers"
        raise ValueError(msg)
    return x, y


def psnr(original: PixelBuffer, processed: PixelBuffer) -> float:
    """Peak signal-to-noise ratio in dB over R, G and B.

    Returns ``math.inf`` for identical colour data.
    """
    x, y = _pair(original, processed)
    mse = float(np.mean((x - y) ** 2))
    if mse == 0.0:
        return math.inf
    return 10.0 * math.log10(255.0 ** 2 / mse)


def ssim(original: PixelBuffer, processed: PixelBuffer) -> float:
    """Global (single-window) structural similarity on luma, in [0, 1]."""
    x, y = _pair(original, processed)
    lx, ly = luma(x), luma(y)
    n = len(lx)

    mean_x, mean_y = lx.mean(), ly.mean()
    dof = max(n - 1, 1)
    var_x = float(((lx - mean_x) ** 2).sum() / dof)
    var_y = float(((ly - mean_y) ** 2).sum() / dof)
    cov = float(((lx - mean_x) * (ly - mean_y)).sum() / dof)

    value = ((2 * mean_x * mean_y + _C1) * (2 * cov + _C2)) / (
        (mean_x ** 2 + mean_y ** 2 + _C1) * (var_x + var_y + _C2)
    )
    return float(min(1.0, max(0.0, value)))


def unique_color_count(buffer: PixelBuffer) -> tuple[int, float]:
    """Distinct 24-bit colours and the palette compression ratio (%)."""
    rgb = _rgb(buffer).astype(np.uint32)
    packed = (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]
    unique = len(np.unique(packed))
    return unique, (1.0 - unique / MAX_COLORS) * 100.0


def compute_metrics(original: PixelBuffer, processed: PixelBuffer) -> MetricsResult:
    unique, ratio = unique_color_count(processed)
    return MetricsResult(
        psnr=psnr(original, processed),
        ssim=ssim(original, processed),
        unique_colors=unique,
        compression_ratio=ratio,
    )
