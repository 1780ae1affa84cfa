"""Palette quantization with a cached luminance lookup table."""

from __future__ import annotations

import logging

import numpy as np

from dither_lab.color_utils import luma, squared_distances

logger = logging.getLogger(__name__)

FALLBACK_PALETTE = np.zeros((1, 3), dtype=np.uint8)


class ColorQuantizer:
    """Maps luminance or RGB samples onto a palette.

    The luma path is O(1) per sample through a 256-entry table built once
    per palette. The RGB path (``nearest_rgb`` / ``map_rgb``) searches the
    whole palette, O(palette size) per sample, and bypasses the table.
    """

    def __init__(self, palette: np.ndarray | None = None) -> None:
        self._palette = FALLBACK_PALETTE
        self._palette_rows: list[tuple[int, int, int]] = [(0, 0, 0)]
        self._lut = np.zeros((256, 3), dtype=np.uint8)
        self._lut_rows: list[tuple[int, int, int]] = [(0, 0, 0)] * 256
        self._index = np.zeros(256, dtype=np.intp)
        self._signature: bytes | None = None
        self.rebuilds = 0
        if palette is not None:
            self.build_lut(palette)

    @property
    def palette(self) -> np.ndarray:
        """The active (n, 3) palette (read-only view)."""
        view = self._palette.view()
        view.setflags(write=False)
        return view

    @property
    def lut(self) -> np.ndarray:
        """The (256, 3) luminance → colour table (read-only view)."""
        view = self._lut.view()
        view.setflags(write=False)
        return view

    @property
    def lut_indices(self) -> np.ndarray:
        """Palette index chosen for each luminance level (read-only view)."""
        view = self._index.view()
        view.setflags(write=False)
        return view

    def build_lut(self, palette: np.ndarray) -> bool:
        """(Re)build the table for *palette*; return ``False`` if unchanged.

        Each level picks the entry whose own luma is closest, the first
        entry winning ties.
        """
        arr = np.asarray(palette)
        empty = arr.size == 0
        if empty:
            arr = FALLBACK_PALETTE
        arr = np.clip(np.asarray(arr, dtype=np.int64).reshape(-1, 3), 0, 255).astype(np.uint8)

        signature = arr.tobytes()
        if signature == self._signature:
            return False
        if empty:
            logger.warning("Empty palette, falling back to black")

        levels = np.arange(256, dtype=np.float64)
        distance = np.abs(levels[:, np.newaxis] - luma(arr)[np.newaxis, :])
        index = np.argmin(distance, axis=1)

        self._palette = arr
        self._palette_rows = [tuple(int(v) for v in c) for c in arr]
        self._lut = arr[index]
        self._index = index
        self._lut_rows = [self._palette_rows[i] for i in index]
        self._signature = signature
        self.rebuilds += 1
        logger.debug("Luma LUT rebuilt for %d colours", len(arr))
        return True

    # -- scalar lookups (per-pixel loops) ------------------------------

    def nearest(self, value: float) -> tuple[int, int, int]:
        """Palette colour for luminance *value*, clamped to [0, 255]."""
        level = int(value + 0.5)
        if level < 0:
            level = 0
        elif level > 255:
            level = 255
        return self._lut_rows[level]

    def nearest_rgb(self, r: float, g: float, b: float) -> tuple[int, int, int]:
        """Closest palette colour by squared RGB distance, first wins ties."""
        best = self._palette_rows[0]
        best_dist = float("inf")
        for c in self._palette_rows:
            dr = r - c[0]
            dg = g - c[1]
            db = b - c[2]
            d = dr * dr + dg * dg + db * db
            if d < best_dist:
                best_dist = d
                best = c
        return best

    # -- vectorised lookups (data-parallel engines) --------------------

    def map_luma(self, values: np.ndarray) -> np.ndarray:
        """(..., ) luminance array → (..., 3) uint8 colours."""
        idx = np.clip(np.floor(np.asarray(values, dtype=np.float64) + 0.5), 0, 255)
        return self._lut[idx.astype(np.intp)]

    def map_rgb(self, pixels: np.ndarray, chunk_size: int = 65_536) -> np.ndarray:
        """(..., 3) RGB array → (..., 3) uint8 nearest palette colours."""
        pixels = np.asarray(pixels, dtype=np.float64)
        flat = pixels.reshape(-1, 3)
        out = np.empty(flat.shape, dtype=np.uint8)
        for i in range(0, len(flat), chunk_size):
            j = min(i + chunk_size, len(flat))
            idx = np.argmin(squared_distances(flat[i:j], self._palette), axis=1)
            out[i:j] = self._palette[idx]
        return out.reshape(pixels.shape)
