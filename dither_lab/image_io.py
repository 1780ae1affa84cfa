"""Image loading, saving, pixel scaling and comparison-grid generation."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont


def compute_target_size(
    original_width: int,
    original_height: int,
    max_side: int,
) -> tuple[int, int]:
    """Compute downscaled (w, h) preserving aspect ratio.

    The longest side becomes *max_side*; the other is scaled
    proportionally (rounded to the nearest integer, minimum 1).
    """
    if original_width >= original_height:
        w = max_side
        h = max(1, round(original_height * max_side / original_width))
    else:
        h = max_side
        w = max(1, round(original_width * max_side / original_height))
    return w, h


def load_rgba(path: str | Path, max_side: int | None = None) -> np.ndarray:
    """Load an image as an (H, W, 4) uint8 RGBA array.

    With *max_side*, images larger than that are shrunk so their longest
    side equals it (aspect ratio preserved).
    """
    img = Image.open(path).convert("RGBA")
    if max_side is not None and max(img.width, img.height) > max_side:
        w, h = compute_target_size(img.width, img.height, max_side)
        img = img.resize((w, h), Image.LANCZOS)
    return np.array(img, dtype=np.uint8)


def save_rgba(array: np.ndarray, path: str | Path) -> None:
    """Save an (H, W, 4) RGBA array; formats without alpha get RGB."""
    img = Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8))
    if Path(path).suffix.lower() in {".jpg", ".jpeg", ".bmp"}:
        img = img.convert("RGB")
    img.save(path)


def pixelate(array: np.ndarray, scale: int) -> np.ndarray:
    """Shrink by *scale* so each logical pixel covers scale x scale pixels.

    Always returns a new writable array.
    """
    if scale <= 1:
        return np.array(array, dtype=np.uint8, copy=True)
    h, w = array.shape[:2]
    img = Image.fromarray(np.ascontiguousarray(array))
    img = img.resize((max(1, w // scale), max(1, h // scale)), Image.BOX)
    return np.array(img, dtype=np.uint8)


def upscale_nearest(array: np.ndarray, width: int, height: int) -> np.ndarray:
    """Nearest-neighbour resize back to (width, height)."""
    img = Image.fromarray(np.ascontiguousarray(array))
    return np.array(img.resize((width, height), Image.NEAREST), dtype=np.uint8)


def palette_strip(palette: np.ndarray, width: int, height: int) -> Image.Image:
    """Horizontal swatch strip for *palette* ((n, 3) uint8)."""
    strip = np.asarray(palette, dtype=np.uint8).reshape(1, -1, 3)
    if strip.size == 0:
        strip = np.zeros((1, 1, 3), dtype=np.uint8)
    return Image.fromarray(strip).resize((width, height), Image.NEAREST)


def make_comparison_grid(
    original: np.ndarray,
    dithered: np.ndarray,
    palette: np.ndarray,
    output_path: str | Path,
) -> None:
    """Create a 3-panel comparison: Original | Dithered | Palette.

    All panels share the original's pixel dimensions.
    """
    panel_h, panel_w = original.shape[:2]
    label_height = 36

    panels = [
        Image.fromarray(np.ascontiguousarray(original)).convert("RGB"),
        Image.fromarray(np.ascontiguousarray(dithered)).convert("RGB")
        .resize((panel_w, panel_h), Image.NEAREST),
        palette_strip(palette, panel_w, panel_h),
    ]
    labels = ["Original", "Dithered", f"Palette ({len(palette)})"]

    gap = 8
    total_w = len(panels) * panel_w + (len(panels) - 1) * gap
    total_h = panel_h + label_height

    canvas = Image.new("RGB", (total_w, total_h), (30, 30, 30))
    draw = ImageDraw.Draw(canvas)

    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 18,
        )
    except OSError:
        font = ImageFont.load_default()

    for i, (panel, label) in enumerate(zip(panels, labels, strict=False)):
        x = i * (panel_w + gap)
        canvas.paste(panel, (x, label_height))

        bbox = draw.textbbox((0, 0), label, font=font)
        text_w = bbox[2] - bbox[0]
        tx = x + (panel_w - text_w) // 2
        draw.text((tx, 6), label, fill=(220, 220, 220), font=font)

    canvas.save(output_path)
