"""Ordered (threshold-matrix) dithering and plain posterization.

Pixels are independent here, so both transforms run over the whole frame
at once with numpy instead of a per-pixel loop.
"""

from __future__ import annotations

import numpy as np

from dither_lab.buffer import PixelBuffer, as_pixel_view
from dither_lab.color_utils import luma
from dither_lab.config import DitherConfig
from dither_lab.quantizer import ColorQuantizer
from dither_lab.threshold import ThresholdMatrix


def pattern_amplitude(config: DitherConfig) -> float:
    """Bias (in 0-255 units) that a matrix value of 1.0 maps to."""
    return (
        255.0 / max(config.levels - 1, 1)
        * config.pattern_strength * 2.0
        * config.pattern_mix
    )


def apply_ordered(
    buffer: PixelBuffer,
    width: int,
    height: int,
    matrix: ThresholdMatrix,
    config: DitherConfig,
    quantizer: ColorQuantizer,
) -> PixelBuffer:
    """Bias each pixel by the tiled *matrix*, then quantize it in place."""
    view = as_pixel_view(buffer, width, height)
    rgb = view[..., :3].astype(np.float64)
    offset = matrix.tile(width, height) * pattern_amplitude(config)

    if config.use_original_color:
        biased = np.clip(rgb + offset[..., np.newaxis], 0, 255)
        view[..., :3] = quantizer.map_rgb(biased)
    else:
        biased = np.clip(luma(rgb) + offset, 0, 255)
        view[..., :3] = quantizer.map_luma(biased)
    return buffer


def apply_posterize(
    buffer: PixelBuffer,
    width: int,
    height: int,
    config: DitherConfig,
    quantizer: ColorQuantizer,
) -> PixelBuffer:
    """Map every pixel straight to the palette, with no dithering."""
    view = as_pixel_view(buffer, width, height)
    rgb = view[..., :3]
    if config.use_original_color:
        view[..., :3] = quantizer.map_rgb(rgb)
    else:
        view[..., :3] = quantizer.map_luma(luma(rgb))
    return buffer
