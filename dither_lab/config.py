"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

import numpy as np

from dither_lab.color_utils import grayscale_ramp, parse_palette

logger = logging.getLogger(__name__)


class Algorithm(str, Enum):
    """Every processing variant the pipeline knows about."""

    NONE = "none"
    POSTERIZE = "posterize"
    FLOYD_STEINBERG = "floyd-steinberg"
    ATKINSON = "atkinson"
    STUCKI = "stucki"
    JARVIS_JUDICE_NINKE = "jarvis-judice-ninke"
    SIERRA = "sierra"
    TWO_ROW_SIERRA = "two-row-sierra"
    SIERRA_LITE = "sierra-lite"
    BURKES = "burkes"
    BAYER = "bayer"
    BLUE_NOISE = "blue-noise"
    VARIABLE_ERROR = "variable-error"

    @property
    def family(self) -> str:
        """``"none"``, ``"posterize"``, ``"diffusion"``, ``"ordered"`` or ``"adaptive"``."""
        if self in (Algorithm.BAYER, Algorithm.BLUE_NOISE):
            return "ordered"
        if self is Algorithm.VARIABLE_ERROR:
            return "adaptive"
        if self in (Algorithm.NONE, Algorithm.POSTERIZE):
            return self.value
        return "diffusion"

    @classmethod
    def parse(cls, value: str | Algorithm | None) -> Algorithm:
        """Resolve an id, treating anything unknown as :attr:`NONE`."""
        if isinstance(value, Algorithm):
            return value
        try:
            return cls(str(value).strip().lower().replace("_", "-"))
        except ValueError:
            logger.warning("Unknown algorithm %r, falling back to 'none'", value)
            return cls.NONE


DEFAULT_COLORS: tuple[str, ...] = ("#000000", "#555555", "#aaaaaa", "#ffffff")

# field -> (min, max); values outside are clamped
_RANGES: dict[str, tuple[float, float]] = {
    "color_count": (1, 256),
    "dither_scale": (1, 10),
    "diffusion_strength": (0.0, 1.5),
    "pattern_strength": (0.0, 1.0),
    "brightness": (-100.0, 100.0),
    "contrast": (0.0, 2.0),
    "saturation": (0.0, 2.0),
    "error_gamma": (0.1, 4.0),
    "diffusion_noise": (0.0, 64.0),
    "pattern_mix": (0.0, 1.0),
}

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")
_HEX = re.compile(r"#?[0-9a-fA-F]{6}")

_ALIASES = {
    "effect": "algorithm",
    "serpentine_scan": "serpentine",
}


@dataclass(frozen=True)
class DitherConfig:
    """All tuneable parameters for one frame transform.

    Attributes:
        algorithm:          Selected engine (see :class:`Algorithm`).
        color_count:        Palette size / number of luma levels (>= 1).
        colors:             Hex palette used when no palette is supplied.
        use_original_color: Quantize in full RGB against the palette instead of
                            through the luma lookup table.
        is_monochrome:      Replace the palette with a grayscale ramp.
        serpentine:         Alternate the scan direction on odd rows.
        diffusion_strength: Attenuation of propagated error (0 - 1.5).
        pattern_strength:   Scale of the ordered-dither bias (0 - 1).
        dither_scale:       Logical pixel size used by the image host.
        brightness:         Additive brightness (-100 - 100).
        contrast:           Contrast factor around mid-gray (0 - 2).
        saturation:         Saturation factor (0 - 2).
        curves:             Tone curves, ``{"rgb"|"r"|"g"|"b": ((x, y), ...)}``.
        error_gamma:        Exponent reshaping diffused error (1.0 = linear).
        diffusion_noise:    Amplitude of uniform noise added before
                            quantization in diffusion engines (0 = off).
        pattern_mix:        Fraction of the ordered bias applied (1.0 = full).
    """

    # Algorithm
    algorithm: Algorithm = Algorithm.FLOYD_STEINBERG

    # Palette
    color_count: int = 4
    colors: tuple[str, ...] = DEFAULT_COLORS
    use_original_color: bool = False
    is_monochrome: bool = False

    # Dithering
    serpentine: bool = False
    diffusion_strength: float = 1.0
    pattern_strength: float = 0.5
    dither_scale: int = 2

    # Adjustments
    brightness: float = 0.0
    contrast: float = 1.0
    saturation: float = 1.0
    curves: Mapping[str, tuple[tuple[int, int], ...]] | None = None

    # Extensions (defaults are no-ops)
    error_gamma: float = 1.0
    diffusion_noise: float = 0.0
    pattern_mix: float = 1.0

    @property
    def levels(self) -> int:
        """Quantization level count, never below 1."""
        return max(int(self.color_count), 1)

    @property
    def step(self) -> float:
        """Luma distance between adjacent quantization levels."""
        return 255.0 / max(self.levels - 1, 1)

    @property
    def has_adjustments(self) -> bool:
        return (
            self.brightness != 0 or self.contrast != 1.0
            or self.saturation != 1.0 or bool(self.curves)
        )

    def palette(self) -> np.ndarray:
        """The (n, 3) uint8 palette described by this config.

        Entries that are not ``#rrggbb`` colours are skipped; if none is
        left the default palette is used.
        """
        if self.is_monochrome:
            return grayscale_ramp(self.levels)
        colors = [c for c in self.colors if _is_hex(c)]
        if len(colors) != len(self.colors):
            logger.warning("Ignoring invalid palette colours in %r", self.colors)
        return parse_palette(colors or DEFAULT_COLORS)

    def sanitised(self) -> DitherConfig:
        """Copy passed through :meth:`from_mapping`, for configs built directly."""
        return type(self).from_mapping({f.name: getattr(self, f.name) for f in fields(self)})

    def with_palette(self, palette: np.ndarray) -> DitherConfig:
        """Copy with *palette* stored as hex colours and a matching count."""
        colors = tuple(
            "#{:02x}{:02x}{:02x}".format(*(int(v) for v in c)) for c in palette
        )
        return replace(self, colors=colors, color_count=max(len(colors), 1))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DitherConfig:
        """Build a sanitised config from loosely-typed state.

        Keys may be camelCase or snake_case. Unknown keys are ignored,
        numbers are clamped to their valid range, invalid hex colours are
        dropped, and a wrongly-typed or non-finite value keeps its default.
        """
        known = {f.name for f in fields(cls)}
        defaults = cls()
        values: dict[str, Any] = {}

        for raw_key, value in data.items():
            key = _CAMEL.sub("_", str(raw_key)).lower()
            key = _ALIASES.get(key, key)
            if key not in known:
                continue
            try:
                values[key] = _sanitise(key, value, getattr(defaults, key))
            except (TypeError, ValueError):
                logger.warning("Config error: %r has an invalid value %r", raw_key, value)

        return cls(**values)


def _sanitise(key: str, value: Any, default: Any) -> Any:
    if key == "algorithm":
        return Algorithm.parse(value)
    if key == "colors":
        if isinstance(value, str):
            value = [value]
        colors = tuple(c for c in value if _is_hex(c))
        return colors or DEFAULT_COLORS
    if key == "curves":
        if value is None:
            return None
        return {
            str(ch): tuple(_curve_point(p) for p in pts)
            for ch, pts in dict(value).items()
        }
    if isinstance(default, bool):
        if not isinstance(value, bool):
            msg = f"{key} must be a boolean"
            raise TypeError(msg)
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"{key} must be a number"
        raise TypeError(msg)
    if not math.isfinite(value):
        msg = f"{key} must be finite"
        raise ValueError(msg)

    lo, hi = _RANGES.get(key, (-np.inf, np.inf))
    clamped = min(max(value, lo), hi)
    if clamped != value:
        logger.warning("Config %s=%r clamped to %r", key, value, clamped)
    return int(clamped) if isinstance(default, int) else float(clamped)


def _is_hex(color: Any) -> bool:
    return isinstance(color, str) and _HEX.fullmatch(color.strip()) is not None


def _curve_point(point: Any) -> tuple[int, int]:
    """``(x, y)`` from a pair or an ``{"x": .., "y": ..}`` mapping."""
    if isinstance(point, Mapping):
        if "x" not in point or "y" not in point:
            msg = f"Curve point {point!r} needs 'x' and 'y'"
            raise ValueError(msg)
        point = (point["x"], point["y"])
    if isinstance(point, (str, bytes)) or len(point) != 2:
        msg = f"Curve point {point!r} must be an (x, y) pair"
        raise ValueError(msg)
    x, y = point
    return int(x), int(y)
