"""Error-diffusion dithering.

Each visited pixel is read (including error already pushed into it by
earlier pixels), quantized, written back, and only then is its error
spread over the kernel's not-yet-visited neighbours. Neighbour values are
clamped to [0, 255] as soon as error lands on them, so every later read
sees a clamped value.

The scan is inherently sequential along a row: each pixel depends on the
error of the pixels before it.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from dither_lab.buffer import PixelBuffer, as_pixel_view
from dither_lab.color_utils import luma_of
from dither_lab.config import DitherConfig
from dither_lab.kernels import Kernel
from dither_lab.quantizer import ColorQuantizer

logger = logging.getLogger(__name__)


def apply_error_diffusion(
    buffer: PixelBuffer,
    width: int,
    height: int,
    kernel: Kernel,
    config: DitherConfig,
    quantizer: ColorQuantizer,
    rng: np.random.Generator | None = None,
) -> PixelBuffer:
    """Dither *buffer* in place with *kernel* and return it.

    Args:
        buffer:    Flat RGBA uint8 buffer of ``width * height * 4`` bytes.
        width:     Frame width in pixels.
        height:    Frame height in pixels.
        kernel:    Diffusion template.
        config:    Uses ``serpentine``, ``diffusion_strength``,
                   ``color_count``, ``use_original_color``, ``error_gamma``
                   and ``diffusion_noise``.
        quantizer: Quantizer holding the active palette.
        rng:       Noise source, only consulted when ``diffusion_noise > 0``.
    """
    view = as_pixel_view(buffer, width, height)
    diffuse(view, kernel, config, quantizer, rng=rng)
    return buffer


def diffuse(
    view: np.ndarray,
    kernel: Kernel,
    config: DitherConfig,
    quantizer: ColorQuantizer,
    strength_map: list[list[float]] | None = None,
    rng: np.random.Generator | None = None,
) -> None:
    """Run the diffusion scan over a (H, W, 4) view.

    *strength_map*, when given, replaces ``config.diffusion_strength`` per
    pixel (``strength_map[y][x]``).
    """
    h, w = view.shape[:2]
    work = view[..., :3].astype(np.float64).tolist()

    noise = float(config.diffusion_noise)
    if noise > 0 and rng is None:
        rng = np.random.default_rng()

    if config.use_original_color:
        _scan_rgb(work, w, h, kernel, config, quantizer, strength_map, rng, noise)
    else:
        _scan_luma(work, w, h, kernel, config, quantizer, strength_map, rng, noise)

    view[..., :3] = np.clip(np.rint(np.asarray(work, dtype=np.float64)), 0, 255).astype(np.uint8)


def shape_error(error: float, gamma: float) -> float:
    """Apply the error-gamma curve; ``gamma == 1`` returns *error* unchanged."""
    if gamma == 1.0 or error == 0.0:
        return error
    return math.copysign((abs(error) / 255.0) ** gamma * 255.0, error)


def _columns(w: int, reverse: bool) -> range:
    return range(w - 1, -1, -1) if reverse else range(w)


def _scan_luma(work, w, h, kernel, config, quantizer, strength_map, rng, noise) -> None:
    points = kernel.normalized()
    step = config.step
    gamma = float(config.error_gamma)
    strength = float(config.diffusion_strength)

    for y in range(h):
        reverse = config.serpentine and y % 2 == 1
        row = work[y]
        row_strength = strength_map[y] if strength_map is not None else None

        for x in _columns(w, reverse):
            px = row[x]
            old = luma_of(px[0], px[1], px[2])
            if noise:
                old += rng.uniform(-noise, noise)

            level = math.floor(old / step + 0.5) * step
            color = quantizer.nearest(level)
            px[0], px[1], px[2] = color

            s = row_strength[x] if row_strength is not None else strength
            err = shape_error(old - luma_of(*color), gamma) * s
            if err == 0.0:
                continue

            for dx, dy, weight in points:
                nx = x - dx if reverse else x + dx
                ny = y + dy
                if nx < 0 or nx >= w or ny >= h:
                    continue
                target = work[ny][nx]
                adj = err * weight
                for c in (0, 1, 2):
                    v = target[c] + adj
                    target[c] = 0.0 if v < 0.0 else (255.0 if v > 255.0 else v)


def _scan_rgb(work, w, h, kernel, config, quantizer, strength_map, rng, noise) -> None:
    points = kernel.normalized()
    gamma = float(config.error_gamma)
    strength = float(config.diffusion_strength)

    for y in range(h):
        reverse = config.serpentine and y % 2 == 1
        row = work[y]
        row_strength = strength_map[y] if strength_map is not None else None

        for x in _columns(w, reverse):
            px = row[x]
            r, g, b = px
            if noise:
                n = rng.uniform(-noise, noise)
                r += n
                g += n
                b += n

            color = quantizer.nearest_rgb(r, g, b)
            px[0], px[1], px[2] = color

            s = row_strength[x] if row_strength is not None else strength
            errs = (
                shape_error(r - color[0], gamma) * s,
                shape_error(g - color[1], gamma) * s,
                shape_error(b - color[2], gamma) * s,
            )
            if errs == (0.0, 0.0, 0.0):
                continue

            for dx, dy, weight in points:
                nx = x - dx if reverse else x + dx
                ny = y + dy
                if nx < 0 or nx >= w or ny >= h:
                    continue
                target = work[ny][nx]
                for c in (0, 1, 2):
                    v = target[c] + errs[c] * weight
                    target[c] = 0.0 if v < 0.0 else (255.0 if v > 255.0 else v)
