"""Edge-aware ("variable error") diffusion.

Diffusion is damped where the local luminance gradient is strong so that
edges keep their detail instead of being smeared by propagated error.
"""

from __future__ import annotations

import logging

import numpy as np

from dither_lab.buffer import PixelBuffer, as_pixel_view
from dither_lab.color_utils import luma
from dither_lab.config import DitherConfig
from dither_lab.diffusion import diffuse
from dither_lab.kernels import FLOYD_STEINBERG, Kernel
from dither_lab.quantizer import ColorQuantizer

logger = logging.getLogger(__name__)

EDGE_DAMPING = 0.75
REFERENCE_KERNEL: Kernel = FLOYD_STEINBERG


def compute_gradients(buffer: PixelBuffer, width: int, height: int) -> np.ndarray:
    """Normalized gradient magnitude per pixel, shape (height, width).

    Uses forward differences to the right and lower neighbours; border
    pixels (first/last row and column) are 0. Read-only.
    """
    view = as_pixel_view(buffer, width, height)
    y = luma(view[..., :3])
    grad = np.zeros((height, width), dtype=np.float64)
    if height < 3 or width < 3:
        return grad

    centre = y[1:-1, 1:-1]
    gx = np.abs(y[1:-1, 2:] - centre)
    gy = np.abs(y[2:, 1:-1] - centre)
    grad[1:-1, 1:-1] = np.sqrt(gx * gx + gy * gy) / 255.0
    return grad


def apply_adaptive(
    buffer: PixelBuffer,
    width: int,
    height: int,
    config: DitherConfig,
    quantizer: ColorQuantizer,
    rng: np.random.Generator | None = None,
) -> PixelBuffer:
    """Diffuse with ``strength × (1 − gradient × EDGE_DAMPING)`` per pixel.

    The damping factor is floored at 0.

    All gradients come from the untouched input; the diffusion pass starts
    only once they are known.
    """
    view = as_pixel_view(buffer, width, height)
    gradients = compute_gradients(view.reshape(-1), width, height)
    # diagonal gradients can exceed 1; never let damping flip the error sign
    strength = config.diffusion_strength * np.clip(1.0 - gradients * EDGE_DAMPING, 0.0, 1.0)
    logger.debug("Adaptive strength range %.3f - %.3f", strength.min(), strength.max())
    diffuse(view, REFERENCE_KERNEL, config, quantizer, strength_map=strength.tolist(), rng=rng)
    return buffer
