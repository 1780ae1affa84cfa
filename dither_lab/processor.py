"""Per-frame pipeline: adjustments, palette/LUT refresh, engine dispatch."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from dither_lab.adaptive import apply_adaptive
from dither_lab.adjustments import CurveProcessor, apply_adjustments
from dither_lab.buffer import PixelBuffer, as_pixel_view
from dither_lab.config import Algorithm, DitherConfig
from dither_lab.diffusion import apply_error_diffusion
from dither_lab.kernels import KERNELS
from dither_lab.ordered import apply_ordered, apply_posterize
from dither_lab.quantizer import ColorQuantizer
from dither_lab.threshold import BAYER_4, BLUE_NOISE_8, ThresholdMatrix

logger = logging.getLogger(__name__)


@dataclass
class DitherContext:
    """Caller-owned state reused across frames.

    Holds the quantizer (and so the luma LUT cache), the curve-table cache,
    the noise generator and the threshold matrices. One context must not be
    used by two frames at the same time.
    """

    quantizer: ColorQuantizer = field(default_factory=ColorQuantizer)
    curves: CurveProcessor = field(default_factory=CurveProcessor)
    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    bayer: ThresholdMatrix = BAYER_4
    blue_noise: ThresholdMatrix = BLUE_NOISE_8


def process_frame(
    buffer: PixelBuffer,
    width: int,
    height: int,
    config: DitherConfig | Mapping[str, Any],
    context: DitherContext | None = None,
    palette: np.ndarray | None = None,
) -> PixelBuffer:
    """Transform *buffer* in place according to *config* and return it.

    Args:
        buffer:  Flat RGBA uint8 buffer (``width * height * 4`` bytes).
        width:   Frame width.
        height:  Frame height.
        config:  A :class:`DitherConfig`, or a mapping sanitised through
                 :meth:`DitherConfig.from_mapping`.
        context: Reusable caches; a fresh one is created when omitted.
        palette: (n, 3) palette overriding ``config.colors``.

    Raises:
        ValueError: If the buffer does not describe a ``width`` x ``height``
            RGBA frame. Configuration problems never raise.
    """
    view = as_pixel_view(buffer, width, height)
    if isinstance(config, DitherConfig):
        config = config.sanitised()
    else:
        config = DitherConfig.from_mapping(config)
    if context is None:
        context = DitherContext()

    if config.has_adjustments:
        apply_adjustments(view, config.brightness, config.contrast, config.saturation)
        context.curves.apply(view, config.curves)

    algorithm = Algorithm.parse(config.algorithm)
    if algorithm is Algorithm.NONE:
        return buffer

    if palette is None:
        palette = config.palette()
    context.quantizer.build_lut(palette)
    quantizer = context.quantizer
    family = algorithm.family

    logger.debug("Processing %dx%d frame with %s", width, height, algorithm.value)
    if family == "posterize":
        apply_posterize(view, width, height, config, quantizer)
    elif family == "ordered":
        matrix = context.bayer if algorithm is Algorithm.BAYER else context.blue_noise
        apply_ordered(view, width, height, matrix, config, quantizer)
    elif family == "adaptive":
        apply_adaptive(view, width, height, config, quantizer, rng=context.rng)
    else:
        kernel = KERNELS[algorithm.value]
        apply_error_diffusion(view, width, height, kernel, config, quantizer, rng=context.rng)
    return buffer


class FrameWorker:
    """Runs :func:`process_frame` off the calling thread.

    A submitted buffer belongs to the worker until its future resolves; the
    caller must not read or write it in the meantime. Frames run one at a
    time, in submission order, against the worker's own context.

    Example::

        with FrameWorker() as worker:
            future = worker.submit(frame, w, h, config)
            frame = future.result()
    """

    def __init__(self, context: DitherContext | None = None) -> None:
        self.context = context or DitherContext()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dither")

    def submit(
        self,
        buffer: PixelBuffer,
        width: int,
        height: int,
        config: DitherConfig | Mapping[str, Any],
        palette: np.ndarray | None = None,
    ) -> Future:
        # reject malformed frames before handing them over
        as_pixel_view(buffer, width, height)
        return self._executor.submit(
            process_frame, buffer, width, height, config, self.context, palette,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> FrameWorker:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
