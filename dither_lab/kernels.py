"""Error-diffusion kernels: neighbour offsets and weights over a divisor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple


class KernelPoint(NamedTuple):
    dx: int
    dy: int
    weight: int


@dataclass(frozen=True)
class Kernel:
    """A named diffusion template.

    Each point receives ``weight / divisor`` of the quantization error. The
    total share never exceeds 1, so diffusion cannot amplify error.
    """

    name: str
    divisor: int
    points: tuple[KernelPoint, ...]

    def __post_init__(self) -> None:
        if self.divisor <= 0:
            msg = f"Kernel {self.name!r}: divisor must be positive"
            raise ValueError(msg)
        if any(p.dy < 0 or (p.dy == 0 and p.dx <= 0) for p in self.points):
            msg = f"Kernel {self.name!r}: points must target unvisited pixels"
            raise ValueError(msg)
        if self.weight_sum > 1.0 + 1e-9:
            msg = f"Kernel {self.name!r}: weights sum to {self.weight_sum:.3f} > 1"
            raise ValueError(msg)

    @property
    def weight_sum(self) -> float:
        return sum(p.weight for p in self.points) / self.divisor

    def normalized(self) -> tuple[tuple[int, int, float], ...]:
        """``(dx, dy, weight / divisor)`` triples for the inner loops."""
        return tuple((p.dx, p.dy, p.weight / self.divisor) for p in self.points)


def _kernel(name: str, divisor: int, *points: tuple[int, int, int]) -> Kernel:
    return Kernel(name, divisor, tuple(KernelPoint(*p) for p in points))


FLOYD_STEINBERG = _kernel(
    "floyd-steinberg", 16,
    (1, 0, 7),
    (-1, 1, 3), (0, 1, 5), (1, 1, 1),
)

ATKINSON = _kernel(
    "atkinson", 8,
    (1, 0, 1), (2, 0, 1),
    (-1, 1, 1), (0, 1, 1), (1, 1, 1),
    (0, 2, 1),
)

STUCKI = _kernel(
    "stucki", 42,
    (1, 0, 8), (2, 0, 4),
    (-2, 1, 2), (-1, 1, 4), (0, 1, 8), (1, 1, 4), (2, 1, 2),
    (-2, 2, 1), (-1, 2, 2), (0, 2, 4), (1, 2, 2), (2, 2, 1),
)

JARVIS_JUDICE_NINKE = _kernel(
    "jarvis-judice-ninke", 48,
    (1, 0, 7), (2, 0, 5),
    (-2, 1, 3), (-1, 1, 5), (0, 1, 7), (1, 1, 5), (2, 1, 3),
    (-2, 2, 1), (-1, 2, 3), (0, 2, 5), (1, 2, 3), (2, 2, 1),
)

SIERRA = _kernel(
    "sierra", 32,
    (1, 0, 5), (2, 0, 3),
    (-2, 1, 2), (-1, 1, 4), (0, 1, 5), (1, 1, 4), (2, 1, 2),
    (-1, 2, 2), (0, 2, 3), (1, 2, 2),
)

TWO_ROW_SIERRA = _kernel(
    "two-row-sierra", 16,
    (1, 0, 4), (2, 0, 3),
    (-2, 1, 1), (-1, 1, 2), (0, 1, 3), (1, 1, 2), (2, 1, 1),
)

SIERRA_LITE = _kernel(
    "sierra-lite", 4,
    (1, 0, 2),
    (-1, 1, 1), (0, 1, 1),
)

BURKES = _kernel(
    "burkes", 32,
    (1, 0, 8), (2, 0, 4),
    (-2, 1, 2), (-1, 1, 4), (0, 1, 8), (1, 1, 4), (2, 1, 2),
)

KERNELS: dict[str, Kernel] = {
    k.name: k
    for k in (
        FLOYD_STEINBERG, ATKINSON, STUCKI, JARVIS_JUDICE_NINKE,
        SIERRA, TWO_ROW_SIERRA, SIERRA_LITE, BURKES,
    )
}
