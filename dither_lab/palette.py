"""Palette extraction with k-means++ over a bounded pixel sample."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np
from PIL import Image

from dither_lab.buffer import PixelBuffer, as_pixel_view
from dither_lab.color_utils import (
    grayscale_ramp,
    lab_to_rgb,
    rgb_to_lab,
    sort_by_luma,
    squared_distances,
)

logger = logging.getLogger(__name__)

CANVAS_SIZE = 100
MIN_DISTINCT_COLORS = 5
MIN_AVG_BRIGHTNESS = 10.0
MIN_NON_BLACK_RATIO = 0.4


# -- Sample validation -------------------------------------------------


@dataclass(frozen=True)
class SampleStats:
    """Summary of a pixel sample, used to reject unusable frames.

    ``unique_colors`` counts colours at 16 levels per channel, so noise
    around a single colour still counts as one.
    """

    count: int
    avg_brightness: float
    avg_saturation: float
    non_black_ratio: float
    colorful_ratio: float
    unique_colors: int
    reason: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.reason is None


def validate_samples(samples: np.ndarray) -> SampleStats:
    """Check that *samples* ((N, 3) RGB) carry enough colour to cluster."""
    samples = np.asarray(samples).reshape(-1, 3)
    if len(samples) == 0:
        return SampleStats(0, 0.0, 0.0, 0.0, 0.0, 0, reason="no pixels")

    rgb = samples.astype(np.float64)
    brightness = rgb.mean(axis=1)
    hi = rgb.max(axis=1)
    lo = rgb.min(axis=1)
    saturation = np.divide(hi - lo, hi, out=np.zeros_like(hi), where=hi > 0)
    buckets = samples.astype(np.int64) // 16
    unique = len(np.unique(buckets[:, 0] * 256 + buckets[:, 1] * 16 + buckets[:, 2]))

    avg_brightness = float(brightness.mean())
    non_black = float(np.mean(brightness > 10))

    reason = None
    if avg_brightness < MIN_AVG_BRIGHTNESS:
        reason = "too dark"
    elif non_black < MIN_NON_BLACK_RATIO:
        reason = "mostly black pixels"
    elif unique < MIN_DISTINCT_COLORS:
        reason = "too little colour variety"

    return SampleStats(
        count=len(samples),
        avg_brightness=avg_brightness,
        avg_saturation=float(saturation.mean()),
        non_black_ratio=non_black,
        colorful_ratio=float(np.mean(saturation > 0.15)),
        unique_colors=unique,
        reason=reason,
    )


def stratified_subsample(samples: np.ndarray, target: int) -> np.ndarray:
    """Keep at most *target* samples, drawn evenly from 8 brightness bands.

    Dark and bright regions stay represented even when one of them
    dominates the frame.
    """
    if len(samples) <= target:
        return samples

    brightness = samples.astype(np.float64).mean(axis=1)
    band = np.minimum((brightness // 32).astype(np.int64), 7)
    per_band = -(-target // 8)

    picked = []
    for b in range(8):
        members = np.flatnonzero(band == b)
        if len(members) == 0:
            continue
        step = max(1, len(members) // per_band)
        picked.append(members[::step])

    idx = np.sort(np.concatenate(picked))[:target]
    return samples[idx]


def downsample(view: np.ndarray, size: int = CANVAS_SIZE) -> np.ndarray:
    """Shrink a (H, W, 3|4) frame onto a ``size`` x ``size`` canvas → (N, 3)."""
    h, w = view.shape[:2]
    rgb = np.ascontiguousarray(view[..., :3])
    if w * h > size * size:
        img = Image.fromarray(rgb).resize((size, size), Image.LANCZOS)
        rgb = np.array(img, dtype=np.uint8)
    return rgb.reshape(-1, 3)


# -- k-means++ ---------------------------------------------------------


@dataclass(frozen=True, eq=False)
class KMeansResult:
    centroids: np.ndarray  # (k, 3) float64, in the clustering colour space
    inertia: float
    iterations: int
    converged: bool


def kmeans_plus_plus_init(
    points: np.ndarray, k: int, rng: np.random.Generator,
) -> np.ndarray:
    """Seed *k* centroids, each chosen with probability ∝ squared distance.

    The first centroid is uniform. If every point already coincides with a
    centroid the next one is drawn uniformly.
    """
    n = len(points)
    centroids = [points[rng.integers(n)]]
    nearest = squared_distances(points, centroids[0][np.newaxis, :])[:, 0]

    while len(centroids) < k:
        total = float(nearest.sum())
        if total <= 0.0:
            logger.debug("All samples on existing centroids, seeding uniformly")
            idx = int(rng.integers(n))
        else:
            # roulette wheel
            wheel = np.cumsum(nearest)
            idx = int(np.searchsorted(wheel, rng.random() * total, side="right"))
            idx = min(idx, n - 1)
        centroids.append(points[idx])
        d = squared_distances(points, points[idx][np.newaxis, :])[:, 0]
        nearest = np.minimum(nearest, d)

    return np.array(centroids, dtype=np.float64)


def lloyd(
    points: np.ndarray,
    centroids: np.ndarray,
    max_iterations: int = 15,
    tolerance: float = 1.0,
) -> KMeansResult:
    """Refine *centroids* until they move less than *tolerance* or the cap.

    Empty clusters keep their previous centroid.
    """
    centroids = np.array(centroids, dtype=np.float64)
    k = len(centroids)
    converged = False
    iterations = 0

    for iterations in range(1, max_iterations + 1):
        assignment = np.argmin(squared_distances(points, centroids), axis=1)

        sums = np.zeros_like(centroids)
        np.add.at(sums, assignment, points)
        counts = np.bincount(assignment, minlength=k).astype(np.float64)

        updated = centroids.copy()
        filled = counts > 0
        updated[filled] = sums[filled] / counts[filled, np.newaxis]

        shift = float(np.sqrt(((updated - centroids) ** 2).sum(axis=1)).max())
        centroids = updated
        if shift < tolerance:
            converged = True
            break

    dist = squared_distances(points, centroids)
    inertia = float(dist.min(axis=1).sum())
    return KMeansResult(centroids, inertia, iterations, converged)


class PaletteExtractor:
    """Derive an N-colour palette from image content.

    Args:
        max_iterations: Lloyd iteration cap per attempt.
        tolerance:      Stop once no centroid moves further than this.
        attempts:       Independent k-means++ runs; lowest inertia wins.
        sample_size:    Upper bound on clustered samples.
        color_space:    ``"rgb"`` or ``"lab"`` (cluster in CIELAB).
        seed:           Reproducibility seed (``None`` = non-deterministic).
    """

    def __init__(
        self,
        max_iterations: int = 15,
        tolerance: float = 1.0,
        attempts: int = 3,
        sample_size: int = 10_000,
        color_space: str = "rgb",
        seed: int | None = None,
    ) -> None:
        if color_space not in ("rgb", "lab"):
            msg = f"Unknown colour space {color_space!r}, expected 'rgb' or 'lab'"
            raise ValueError(msg)
        self.max_iterations = max(1, max_iterations)
        self.tolerance = tolerance
        self.attempts = max(1, attempts)
        self.sample_size = sample_size
        self.color_space = color_space
        self.rng = np.random.default_rng(seed)

    def cluster(self, samples: np.ndarray, k: int) -> KMeansResult:
        """Best of ``attempts`` k-means++ runs over (N, 3) RGB *samples*."""
        points = np.asarray(samples, dtype=np.float64).reshape(-1, 3)
        if self.color_space == "lab":
            points = rgb_to_lab(points.astype(np.uint8))

        best: KMeansResult | None = None
        for attempt in range(self.attempts):
            seeds = kmeans_plus_plus_init(points, k, self.rng)
            result = lloyd(points, seeds, self.max_iterations, self.tolerance)
            logger.debug(
                "k-means attempt %d: %d iterations, inertia=%.0f",
                attempt + 1, result.iterations, result.inertia,
            )
            if best is None or result.inertia < best.inertia:
                best = result

        if self.color_space == "lab":
            best = KMeansResult(
                lab_to_rgb(best.centroids), best.inertia, best.iterations, best.converged,
            )
        return best

    def extract(self, samples: np.ndarray, k: int) -> np.ndarray:
        """Palette of *k* colours for (N, 3) RGB *samples*, darkest first.

        Unusable samples (see :func:`validate_samples`) yield a grayscale
        ramp instead.
        """
        k = max(1, int(k))
        samples = np.asarray(samples, dtype=np.uint8).reshape(-1, 3)

        stats = validate_samples(samples)
        if not stats.is_valid:
            logger.warning("Palette sample rejected (%s), using grayscale palette", stats.reason)
            return grayscale_palette(k)
        logger.info(
            "Clustering %d samples into %d colours (%d distinct)",
            stats.count, k, stats.unique_colors,
        )

        distinct = np.unique(samples, axis=0)
        if len(distinct) <= k:
            return _pad_with_grays(sort_by_luma(distinct), k)

        sampled = stratified_subsample(samples, self.sample_size)
        result = self.cluster(sampled, k)
        palette = np.clip(np.rint(result.centroids), 0, 255).astype(np.uint8)
        return sort_by_luma(palette)

    def extract_from_buffer(
        self, buffer: PixelBuffer, width: int, height: int, k: int,
    ) -> np.ndarray:
        """Downsample an RGBA frame to the sampling canvas and extract."""
        view = as_pixel_view(buffer, width, height)
        return self.extract(downsample(view), k)

    def extract_from_frames(
        self, frames: Iterable[tuple[PixelBuffer, int, int]], k: int,
    ) -> np.ndarray:
        """Pool samples from several ``(buffer, width, height)`` frames.

        Frames that fail validation on their own are skipped.
        """
        pooled = []
        for i, (buffer, width, height) in enumerate(frames):
            samples = downsample(as_pixel_view(buffer, width, height))
            stats = validate_samples(samples)
            if not stats.is_valid:
                logger.info("Skipping frame %d (%s)", i, stats.reason)
                continue
            pooled.append(samples)

        if not pooled:
            logger.warning("No usable frame, using grayscale palette")
            return grayscale_palette(max(1, int(k)))
        return self.extract(np.concatenate(pooled), k)


def grayscale_palette(k: int) -> np.ndarray:
    """Evenly spaced grayscale palette of *k* entries (black when k < 2)."""
    return grayscale_ramp(k)


def _pad_with_grays(colors: np.ndarray, k: int) -> np.ndarray:
    """Grow *colors* to *k* entries with ramp grays it does not contain yet."""
    have = {tuple(c) for c in colors}
    extra = [g for g in grayscale_ramp(k + len(colors)) if tuple(g) not in have]
    padded = np.concatenate([colors, np.array(extra, dtype=np.uint8).reshape(-1, 3)])[:k]
    return sort_by_luma(padded)
