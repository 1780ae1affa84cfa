"""
Dither Lab
==========

Reduce RGBA frames to a small palette while keeping the look of the
source. Operates in place on caller-owned buffers. Ships three engine
families:

- **Error diffusion** (Floyd-Steinberg, Atkinson, Stucki, JJN, Sierra family, Burkes)
- **Ordered** (Bayer and blue-noise threshold matrices)
- **Adaptive** (gradient-damped Floyd-Steinberg)

plus k-means++ palette extraction and PSNR / SSIM metrics.
"""

__version__ = "1.0.0"

from dither_lab.config import Algorithm, DitherConfig
from dither_lab.kernels import KERNELS, Kernel
from dither_lab.metrics import MetricsResult, compute_metrics, psnr, ssim, unique_color_count
from dither_lab.palette import PaletteExtractor
from dither_lab.processor import DitherContext, FrameWorker, process_frame
from dither_lab.quantizer import ColorQuantizer
from dither_lab.threshold import BAYER_4, BLUE_NOISE_8, ThresholdMatrix

__all__ = [
    "BAYER_4",
    "BLUE_NOISE_8",
    "KERNELS",
    "Algorithm",
    "ColorQuantizer",
    "DitherConfig",
    "DitherContext",
    "FrameWorker",
    "Kernel",
    "MetricsResult",
    "PaletteExtractor",
    "ThresholdMatrix",
    "compute_metrics",
    "process_frame",
    "psnr",
    "ssim",
    "unique_color_count",
]
