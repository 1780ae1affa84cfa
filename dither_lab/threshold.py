"""Threshold matrices for ordered dithering.

Every matrix is square, read-only and normalized to [-0.5, 0.5]; pixels
address it modulo its size.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, eq=False)
class ThresholdMatrix:
    name: str
    values: np.ndarray

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 2 or values.shape[0] != values.shape[1] or values.size == 0:
            msg = f"Threshold matrix {self.name!r} must be square"
            raise ValueError(msg)
        if values.min() < -0.5 or values.max() > 0.5:
            msg = f"Threshold matrix {self.name!r} must lie in [-0.5, 0.5]"
            raise ValueError(msg)
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def size(self) -> int:
        return self.values.shape[0]

    def get(self, x: int, y: int) -> float:
        return float(self.values[y % self.size, x % self.size])

    def tile(self, width: int, height: int) -> np.ndarray:
        """(height, width) array of biases covering a whole frame."""
        reps_y = -(-height // self.size)
        reps_x = -(-width // self.size)
        return np.tile(self.values, (reps_y, reps_x))[:height, :width]

    @classmethod
    def from_ranks(cls, name: str, ranks: np.ndarray) -> ThresholdMatrix:
        """Normalize an n×n rank table (0 .. n²-1) to ``rank/n² - 0.5``."""
        ranks = np.asarray(ranks, dtype=np.float64)
        return cls(name, ranks / ranks.size - 0.5)


def bayer_ranks(n: int) -> np.ndarray:
    """Recursive Bayer index matrix of size *n* (a power of two)."""
    if n < 2 or n & (n - 1):
        msg = f"Bayer size must be a power of two >= 2, got {n}"
        raise ValueError(msg)
    m = np.array([[0, 2], [3, 1]], dtype=np.int64)
    while m.shape[0] < n:
        m = np.block([
            [4 * m + 0, 4 * m + 2],
            [4 * m + 3, 4 * m + 1],
        ])
    return m


BAYER_2 = ThresholdMatrix.from_ranks("bayer-2", bayer_ranks(2))
BAYER_4 = ThresholdMatrix.from_ranks("bayer-4", bayer_ranks(4))
BAYER_8 = ThresholdMatrix.from_ranks("bayer-8", bayer_ranks(8))

# Void-and-cluster style 8x8 texture, already centred on zero
BLUE_NOISE_8 = ThresholdMatrix("blue-noise-8", np.array([
    [0.03, -0.32, 0.21, -0.09, 0.44, -0.26, 0.32, -0.03],
    [-0.38, 0.15, -0.21, 0.38, -0.44, 0.09, -0.15, 0.26],
    [0.26, -0.15, 0.44, -0.32, 0.21, -0.38, 0.38, -0.26],
    [-0.26, 0.32, -0.03, 0.15, -0.21, 0.44, -0.09, 0.09],
    [0.38, -0.44, 0.21, -0.15, 0.32, -0.32, 0.15, -0.38],
    [-0.09, 0.09, -0.38, 0.26, -0.26, -0.03, 0.44, -0.21],
    [0.15, -0.21, 0.38, -0.44, 0.09, 0.21, -0.15, 0.32],
    [-0.32, 0.44, -0.26, 0.03, -0.38, 0.26, -0.03, -0.09],
]))

THRESHOLD_MATRICES: dict[str, ThresholdMatrix] = {
    m.name: m for m in (BAYER_2, BAYER_4, BAYER_8, BLUE_NOISE_8)
}
