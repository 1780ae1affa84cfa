"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from dither_lab.color_utils import rgb_to_hex
from dither_lab.config import Algorithm, DitherConfig
from dither_lab.image_io import (
    load_rgba,
    make_comparison_grid,
    pixelate,
    save_rgba,
    upscale_nearest,
)
from dither_lab.metrics import MetricsResult, compute_metrics
from dither_lab.palette import PaletteExtractor
from dither_lab.processor import DitherContext, process_frame
from dither_lab.threshold import THRESHOLD_MATRICES

app = typer.Typer(
    name="dither-lab",
    help="Reduced-palette dithering for images and frames.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()

SUPPORTED_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".jfif"}
)

# Defaults come from DitherConfig - single source of truth
_DEFAULTS = DitherConfig()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _collect_images(folder: Path) -> list[Path]:
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in SUPPORTED_EXTENSIONS
    )


def _swatches(palette: np.ndarray) -> str:
    return " ".join(f"[on {rgb_to_hex(c)}]   [/] {rgb_to_hex(c)}" for c in palette)


def _metrics_table(title: str, result: MetricsResult) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    psnr = "∞" if np.isinf(result.psnr) else f"{result.psnr:.2f} dB"
    table.add_row("PSNR", psnr)
    table.add_row("SSIM", f"{result.ssim:.4f}")
    table.add_row("Unique colours", str(result.unique_colors))
    table.add_row("Compression", f"{result.compression_ratio:.4f} %")
    return table


def _build_config(
    algorithm: Algorithm,
    colors: int,
    palette: str | None,
    serpentine: bool,
    strength: float,
    pattern: float,
    scale: int,
    original_color: bool,
    mono: bool,
    brightness: float,
    contrast: float,
    saturation: float,
) -> DitherConfig:
    data = {
        "algorithm": algorithm.value,
        "color_count": colors,
        "serpentine": serpentine,
        "diffusion_strength": strength,
        "pattern_strength": pattern,
        "dither_scale": scale,
        "use_original_color": original_color,
        "is_monochrome": mono,
        "brightness": brightness,
        "contrast": contrast,
        "saturation": saturation,
    }
    if palette:
        data["colors"] = [c.strip() for c in palette.split(",")]
    return DitherConfig.from_mapping(data)


def _resolve_palette(
    cfg: DitherConfig,
    frame: np.ndarray,
    extractor: PaletteExtractor,
    auto_palette: bool,
    palette_from: Path | None,
) -> np.ndarray:
    logger = logging.getLogger("dither_lab")
    if cfg.is_monochrome:
        return cfg.palette()
    if palette_from is not None:
        source = load_rgba(palette_from)
        h, w = source.shape[:2]
        logger.info("Palette extracted from %s", palette_from)
        return extractor.extract_from_buffer(source.reshape(-1), w, h, cfg.levels)
    if auto_palette:
        h, w = frame.shape[:2]
        return extractor.extract_from_buffer(frame.reshape(-1), w, h, cfg.levels)
    return cfg.palette()


def _dither_file(
    path: Path,
    output: Path,
    cfg: DitherConfig,
    context: DitherContext,
    extractor: PaletteExtractor,
    auto_palette: bool,
    palette_from: Path | None,
    max_side: int | None,
    comparison: Path | None,
) -> MetricsResult:
    logger = logging.getLogger("dither_lab")
    original = load_rgba(path, max_side)
    full_h, full_w = original.shape[:2]

    frame = pixelate(original, cfg.dither_scale)
    h, w = frame.shape[:2]
    logger.info("Frame: %dx%d (scale %d)", w, h, cfg.dither_scale)

    palette = _resolve_palette(cfg, frame, extractor, auto_palette, palette_from)
    logger.info("Palette: %s", _swatches(palette))

    t0 = time.perf_counter()
    process_frame(frame.reshape(-1), w, h, cfg, context, palette)
    logger.info("%s done (%.2f s)", cfg.algorithm.value, time.perf_counter() - t0)

    result = upscale_nearest(frame, full_w, full_h)
    output.parent.mkdir(parents=True, exist_ok=True)
    save_rgba(result, output)

    if comparison is not None:
        make_comparison_grid(original, result, palette, comparison)

    return compute_metrics(original.reshape(-1), result.reshape(-1))


# -- dither command ----------------------------------------------------

@app.command()
def dither(
    image: Path = typer.Argument(..., help="Source image"),
    output: Path = typer.Option(Path("output/dithered.png"), "--output", "-o"),
    algorithm: Algorithm = typer.Option(_DEFAULTS.algorithm, "--algorithm", "-a"),
    colors: int = typer.Option(_DEFAULTS.color_count, "--colors", "-c", help="Palette size"),
    palette: str | None = typer.Option(
        None, "--palette", "-p",
        help="Comma-separated hex colours, e.g. '#000000,#ffffff'",
    ),
    auto_palette: bool = typer.Option(
        False, "--auto-palette/--no-auto-palette", help="Extract the palette with k-means++",
    ),
    palette_from: Path | None = typer.Option(None, "--palette-from", help="Extract palette from image"),
    serpentine: bool = typer.Option(_DEFAULTS.serpentine, "--serpentine/--no-serpentine"),
    strength: float = typer.Option(_DEFAULTS.diffusion_strength, "--strength", help="Diffusion strength"),
    pattern: float = typer.Option(_DEFAULTS.pattern_strength, "--pattern", help="Ordered pattern strength"),
    scale: int = typer.Option(_DEFAULTS.dither_scale, "--scale", "-s", help="Logical pixel size"),
    original_color: bool = typer.Option(
        _DEFAULTS.use_original_color, "--original-color/--luma",
        help="Full-RGB nearest palette search instead of the luma table",
    ),
    mono: bool = typer.Option(_DEFAULTS.is_monochrome, "--mono/--no-mono", help="Grayscale palette"),
    brightness: float = typer.Option(_DEFAULTS.brightness, "--brightness"),
    contrast: float = typer.Option(_DEFAULTS.contrast, "--contrast"),
    saturation: float = typer.Option(_DEFAULTS.saturation, "--saturation"),
    max_side: int | None = typer.Option(None, "--max-side", "-m", help="Shrink input first"),
    comparison: Path | None = typer.Option(None, "--comparison", help="Save a comparison grid"),
    bayer_size: int = typer.Option(4, "--bayer-size", help="Bayer matrix size: 2, 4 or 8"),
    seed: int | None = typer.Option(None, "--seed", help="Random seed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Dither a single image."""
    _setup_logging(verbose)

    cfg = _build_config(
        algorithm, colors, palette, serpentine, strength, pattern, scale,
        original_color, mono, brightness, contrast, saturation,
    )
    matrix = THRESHOLD_MATRICES.get(f"bayer-{bayer_size}")
    if matrix is None:
        console.print(f"[red]Unsupported Bayer size {bayer_size} (use 2, 4 or 8)[/red]")
        raise typer.Exit(1)
    context = DitherContext(rng=np.random.default_rng(seed), bayer=matrix)
    extractor = PaletteExtractor(seed=seed)

    result = _dither_file(
        image, output, cfg, context, extractor,
        auto_palette, palette_from, max_side, comparison,
    )
    console.print(f"[green]✓[/green] Saved to {output}")
    console.print(_metrics_table(image.name, result))


# -- batch command -----------------------------------------------------

@app.command()
def batch(
    input_dir: Path = typer.Option(Path("images"), "--input", "-i", help="Folder with source images"),
    output_dir: Path = typer.Option(Path("output"), "--output", "-o", help="Results folder"),
    algorithm: Algorithm = typer.Option(_DEFAULTS.algorithm, "--algorithm", "-a"),
    colors: int = typer.Option(_DEFAULTS.color_count, "--colors", "-c"),
    palette: str | None = typer.Option(None, "--palette", "-p"),
    auto_palette: bool = typer.Option(True, "--auto-palette/--no-auto-palette"),
    serpentine: bool = typer.Option(_DEFAULTS.serpentine, "--serpentine/--no-serpentine"),
    strength: float = typer.Option(_DEFAULTS.diffusion_strength, "--strength"),
    pattern: float = typer.Option(_DEFAULTS.pattern_strength, "--pattern"),
    scale: int = typer.Option(_DEFAULTS.dither_scale, "--scale", "-s"),
    original_color: bool = typer.Option(_DEFAULTS.use_original_color, "--original-color/--luma"),
    mono: bool = typer.Option(_DEFAULTS.is_monochrome, "--mono/--no-mono"),
    max_side: int | None = typer.Option(None, "--max-side", "-m"),
    comparison: bool = typer.Option(False, "--comparison/--no-comparison"),
    seed: int | None = typer.Option(None, "--seed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Dither every image in INPUT_DIR and write results to OUTPUT_DIR."""
    _setup_logging(verbose)

    cfg = _build_config(
        algorithm, colors, palette, serpentine, strength, pattern, scale,
        original_color, mono, _DEFAULTS.brightness, _DEFAULTS.contrast, _DEFAULTS.saturation,
    )

    images = _collect_images(input_dir)
    if not images:
        console.print(f"\n[yellow]No images found in {input_dir}/[/yellow]")
        console.print("Place .jpg / .png / ... files there and re-run.\n")
        raise typer.Exit(0)

    console.print(Panel.fit(
        f"[bold]DITHER LAB[/bold]\n"
        f"Algorithm: {cfg.algorithm.value}  |  Colours: {cfg.levels}\n"
        f"Serpentine: {cfg.serpentine}  |  Scale: {cfg.dither_scale}\n"
        f"Auto palette: {auto_palette}  |  Images: {len(images)}",
        border_style="cyan",
    ))

    # one context for the whole batch so the LUT is reused while the palette holds
    context = DitherContext(rng=np.random.default_rng(seed))
    extractor = PaletteExtractor(seed=seed)
    output_dir.mkdir(parents=True, exist_ok=True)

    for idx, img_path in enumerate(images, 1):
        console.rule(f"[bold cyan][{idx}/{len(images)}] {img_path.name}[/bold cyan]")
        t_total = time.perf_counter()
        out = output_dir / f"{img_path.stem}_{cfg.algorithm.value}.png"
        comp = output_dir / f"{img_path.stem}_comparison.png" if comparison else None

        result = _dither_file(
            img_path, out, cfg, context, extractor,
            auto_palette, None, max_side, comp,
        )
        console.print(
            f"  [green]✓[/green] {out.name}  "
            f"[dim]PSNR={result.psnr:.1f} dB  SSIM={result.ssim:.3f}"
            f"  time={time.perf_counter() - t_total:.1f}s[/dim]"
        )

    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]",
        border_style="green",
    ))


# -- palette command ---------------------------------------------------

@app.command("palette")
def palette_cmd(
    image: Path = typer.Argument(..., help="Image to sample"),
    colors: int = typer.Option(_DEFAULTS.color_count, "--colors", "-c"),
    color_space: str = typer.Option("rgb", "--color-space", help="'rgb' or 'lab'"),
    seed: int | None = typer.Option(None, "--seed"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Extract a palette with k-means++ and print it."""
    _setup_logging(verbose)
    rgba = load_rgba(image)
    h, w = rgba.shape[:2]
    try:
        extractor = PaletteExtractor(color_space=color_space, seed=seed)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--color-space") from exc
    palette = extractor.extract_from_buffer(rgba.reshape(-1), w, h, colors)

    for c in palette:
        hex_color = rgb_to_hex(c)
        console.print(f"[on {hex_color}]      [/]  {hex_color}")
    console.print(",".join(rgb_to_hex(c) for c in palette))


# -- metrics command ---------------------------------------------------

@app.command()
def metrics(
    original: Path = typer.Argument(..., help="Reference image"),
    processed: Path = typer.Argument(..., help="Processed image"),
) -> None:
    """Compare two images of the same size."""
    a = load_rgba(original)
    b = load_rgba(processed)
    if a.shape != b.shape:
        console.print(f"[red]Size mismatch: {a.shape[1]}x{a.shape[0]} vs {b.shape[1]}x{b.shape[0]}[/red]")
        raise typer.Exit(1)
    console.print(_metrics_table(f"{original.name} vs {processed.name}", compute_metrics(a, b)))


if __name__ == "__main__":
    app()
