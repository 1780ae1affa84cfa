"""Tests for the quantizer, kernels, threshold matrices and dithering engines."""

from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest

from dither_lab.adaptive import apply_adaptive, compute_gradients
from dither_lab.buffer import as_pixel_view, new_buffer
from dither_lab.color_utils import luma
from dither_lab.config import Algorithm, DitherConfig
from dither_lab.diffusion import apply_error_diffusion, shape_error
from dither_lab.kernels import ATKINSON, FLOYD_STEINBERG, KERNELS, Kernel, KernelPoint
from dither_lab.ordered import apply_ordered, apply_posterize, pattern_amplitude
from dither_lab.quantizer import ColorQuantizer
from dither_lab.threshold import (
    BAYER_2,
    BAYER_4,
    BAYER_8,
    BLUE_NOISE_8,
    THRESHOLD_MATRICES,
    ThresholdMatrix,
    bayer_ranks,
)

# -- Fixtures ----------------------------------------------------------

W, H = 16, 12  # non-square

BLACK_WHITE = np.array([[0, 0, 0], [255, 255, 255]], dtype=np.uint8)


@pytest.fixture
def frame() -> np.ndarray:
    """Random opaque-ish RGBA frame, flat."""
    rng = np.random.default_rng(7)
    buf = rng.integers(0, 256, size=(H, W, 4), dtype=np.uint8)
    return buf.reshape(-1)


@pytest.fixture
def bw_config() -> DitherConfig:
    return DitherConfig(color_count=2, colors=("#000000", "#ffffff"))


def gray_frame(width: int, height: int, value: int) -> np.ndarray:
    return new_buffer(width, height, (value, value, value))


def rgb_of(buffer: np.ndarray, width: int, height: int) -> np.ndarray:
    return buffer.reshape(height, width, 4)[..., :3]


# -- Kernels -----------------------------------------------------------

class TestKernels:
    def test_error_never_amplified(self) -> None:
        for kernel in KERNELS.values():
            assert kernel.weight_sum <= 1.0 + 1e-9, kernel.name

    def test_floyd_steinberg_conserves_error(self) -> None:
        assert FLOYD_STEINBERG.weight_sum == pytest.approx(1.0)

    def test_atkinson_drops_a_quarter(self) -> None:
        assert ATKINSON.weight_sum == pytest.approx(0.75)

    def test_every_diffusion_algorithm_has_a_kernel(self) -> None:
        for algorithm in Algorithm:
            if algorithm.family == "diffusion":
                assert algorithm.value in KERNELS

    def test_rejects_backward_point(self) -> None:
        with pytest.raises(ValueError, match="unvisited"):
            Kernel("bad", 2, (KernelPoint(-1, 0, 1),))

    def test_rejects_overweight(self) -> None:
        with pytest.raises(ValueError, match="sum"):
            Kernel("bad", 2, (KernelPoint(1, 0, 2), KernelPoint(0, 1, 1)))


# -- Threshold matrices ------------------------------------------------

class TestThresholdMatrix:
    def test_bayer_4_ranks(self) -> None:
        expected = [
            [0, 8, 2, 10],
            [12, 4, 14, 6],
            [3, 11, 1, 9],
            [15, 7, 13, 5],
        ]
        np.testing.assert_array_equal(bayer_ranks(4), expected)

    def test_bayer_8_is_a_permutation(self) -> None:
        ranks = bayer_ranks(8)
        np.testing.assert_array_equal(np.sort(ranks.ravel()), np.arange(64))
        np.testing.assert_allclose(BAYER_8.values, ranks / 64 - 0.5)

    def test_catalogue(self) -> None:
        assert set(THRESHOLD_MATRICES) == {"bayer-2", "bayer-4", "bayer-8", "blue-noise-8"}
        assert BAYER_2.size == 2

    def test_normalized_range(self) -> None:
        for m in (BAYER_4, BLUE_NOISE_8):
            assert m.values.min() >= -0.5
            assert m.values.max() <= 0.5

    def test_wraps_modulo_size(self) -> None:
        assert BAYER_4.get(4, 4) == BAYER_4.get(0, 0)
        assert BLUE_NOISE_8.get(9, 17) == BLUE_NOISE_8.get(1, 1)

    def test_tile_shape(self) -> None:
        assert BAYER_4.tile(10, 6).shape == (6, 10)

    def test_read_only(self) -> None:
        with pytest.raises(ValueError):
            BAYER_4.values[0, 0] = 0.1

    def test_rejects_non_square(self) -> None:
        with pytest.raises(ValueError, match="square"):
            ThresholdMatrix("bad", np.zeros((2, 3)))

    def test_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="-0.5"):
            ThresholdMatrix("bad", np.full((2, 2), 0.9))


# -- Quantizer ---------------------------------------------------------

class TestQuantizer:
    def test_lut_picks_closest_luma(self) -> None:
        palette = np.array(
            [[0, 0, 0], [200, 30, 30], [30, 200, 30], [40, 40, 220], [255, 255, 255]],
            dtype=np.uint8,
        )
        q = ColorQuantizer(palette)
        palette_luma = luma(palette)
        lut_luma = luma(q.lut)
        for level in range(256):
            best = np.abs(palette_luma - level).min()
            assert abs(lut_luma[level] - level) == pytest.approx(best)

    def test_lut_entries_come_from_palette(self) -> None:
        q = ColorQuantizer(BLACK_WHITE)
        rows = {tuple(c) for c in BLACK_WHITE}
        assert all(tuple(c) in rows for c in q.lut)

    def test_mid_gray_goes_to_closer_entry(self) -> None:
        q = ColorQuantizer(BLACK_WHITE)
        assert q.nearest(127) == (0, 0, 0)
        assert q.nearest(128) == (255, 255, 255)

    def test_nearest_clamps(self) -> None:
        q = ColorQuantizer(BLACK_WHITE)
        assert q.nearest(-40) == (0, 0, 0)
        assert q.nearest(900) == (255, 255, 255)

    def test_rgb_tie_goes_to_first(self) -> None:
        q = ColorQuantizer(np.array([[0, 0, 0], [20, 0, 0]], dtype=np.uint8))
        assert q.nearest_rgb(10, 0, 0) == (0, 0, 0)

    def test_luma_tie_goes_to_first(self) -> None:
        gray = [50, 50, 50]
        q = ColorQuantizer(np.array([[0, 0, 0], gray, gray, [255, 255, 255]], dtype=np.uint8))
        assert q.lut_indices[50] == 1
        assert 2 not in q.lut_indices
        assert q.lut_indices[0] == 0
        assert q.lut_indices[255] == 3

    def test_map_rgb_matches_scalar(self) -> None:
        palette = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255]], dtype=np.uint8)
        q = ColorQuantizer(palette)
        pixels = np.array([[250, 10, 10], [10, 240, 30], [0, 20, 200]], dtype=np.uint8)
        expected = [q.nearest_rgb(*p) for p in pixels.astype(float)]
        np.testing.assert_array_equal(q.map_rgb(pixels), expected)

    def test_rebuild_only_on_change(self) -> None:
        q = ColorQuantizer()
        assert q.build_lut(BLACK_WHITE)
        assert not q.build_lut(BLACK_WHITE.copy())
        assert q.build_lut(BLACK_WHITE[::-1])

    def test_empty_palette_falls_back_to_black(self) -> None:
        q = ColorQuantizer(np.zeros((0, 3), dtype=np.uint8))
        np.testing.assert_array_equal(q.palette, [[0, 0, 0]])
        assert q.nearest(255) == (0, 0, 0)

    def test_exposed_arrays_read_only(self) -> None:
        q = ColorQuantizer(BLACK_WHITE)
        with pytest.raises(ValueError):
            q.lut[0] = 1


# -- Buffer validation -------------------------------------------------

class TestBufferValidation:
    def test_view_shares_memory(self, frame: np.ndarray) -> None:
        view = as_pixel_view(frame, W, H)
        view[0, 0, 0] = 42
        assert frame[0] == 42

    def test_bytearray_accepted(self) -> None:
        buf = bytearray(2 * 2 * 4)
        view = as_pixel_view(buf, 2, 2)
        view[1, 1, 2] = 9
        assert buf[2 * 4 + 4 + 2] == 9

    @pytest.mark.parametrize("width, height", [(0, 2), (2, -1), (2.0, 2), (True, 2)])
    def test_bad_dimensions(self, width, height) -> None:
        with pytest.raises(ValueError, match="size"):
            as_pixel_view(np.zeros(16, dtype=np.uint8), width, height)

    def test_none(self) -> None:
        with pytest.raises(ValueError, match="None"):
            as_pixel_view(None, 2, 2)

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError, match="expected 16"):
            as_pixel_view(np.zeros(15, dtype=np.uint8), 2, 2)

    def test_wrong_dtype(self) -> None:
        with pytest.raises(ValueError, match="uint8"):
            as_pixel_view(np.zeros(16, dtype=np.float32), 2, 2)

    def test_read_only(self) -> None:
        buf = np.zeros(16, dtype=np.uint8)
        buf.setflags(write=False)
        with pytest.raises(ValueError, match="read-only"):
            as_pixel_view(buf, 2, 2)

    def test_bytes_rejected(self) -> None:
        with pytest.raises(ValueError, match="read-only"):
            as_pixel_view(bytes(16), 2, 2)


# -- Error diffusion ---------------------------------------------------

class TestErrorDiffusion:
    def test_gray_127_pushes_neighbour_to_white(self, bw_config: DitherConfig) -> None:
        buf = gray_frame(2, 2, 127)
        apply_error_diffusion(buf, 2, 2, FLOYD_STEINBERG, bw_config, ColorQuantizer(BLACK_WHITE))
        rgb = rgb_of(buf, 2, 2)
        np.testing.assert_array_equal(rgb[0, 0], [0, 0, 0])
        np.testing.assert_array_equal(rgb[0, 1], [255, 255, 255])

    def test_gray_128_pushes_neighbour_to_black(self, bw_config: DitherConfig) -> None:
        # 128 is nearer to white, so the negative error darkens (1, 0)
        buf = gray_frame(2, 2, 128)
        apply_error_diffusion(buf, 2, 2, FLOYD_STEINBERG, bw_config, ColorQuantizer(BLACK_WHITE))
        rgb = rgb_of(buf, 2, 2)
        np.testing.assert_array_equal(rgb[0, 0], [255, 255, 255])
        np.testing.assert_array_equal(rgb[0, 1], [0, 0, 0])

    def test_mid_gray_averages_out(self, bw_config: DitherConfig) -> None:
        buf = gray_frame(32, 32, 128)
        apply_error_diffusion(buf, 32, 32, FLOYD_STEINBERG, bw_config, ColorQuantizer(BLACK_WHITE))
        white = np.mean(rgb_of(buf, 32, 32)[..., 0] == 255)
        assert 0.4 < white < 0.6

    def test_output_in_palette(self, frame: np.ndarray) -> None:
        cfg = DitherConfig()
        q = ColorQuantizer(cfg.palette())
        alpha = frame[3::4].copy()
        for kernel in KERNELS.values():
            buf = frame.copy()
            apply_error_diffusion(buf, W, H, kernel, cfg, q)
            colours = {tuple(c) for c in rgb_of(buf, W, H).reshape(-1, 3)}
            assert colours <= {tuple(c) for c in cfg.palette()}, kernel.name
            np.testing.assert_array_equal(buf[3::4], alpha)

    def test_original_colour_path(self, frame: np.ndarray) -> None:
        palette = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255], [0, 0, 0]], dtype=np.uint8)
        cfg = DitherConfig(use_original_color=True)
        apply_error_diffusion(frame, W, H, FLOYD_STEINBERG, cfg, ColorQuantizer(palette))
        colours = {tuple(c) for c in rgb_of(frame, W, H).reshape(-1, 3)}
        assert colours <= {tuple(c) for c in palette}

    @pytest.mark.parametrize(("first", "expected"), [
        ((120, 0, 0), (255, 0, 0)),
        ((0, 0, 120), (0, 0, 255)),
    ])
    def test_original_colour_error_per_channel(self, first, expected) -> None:
        # both first pixels quantize to black; only the channel of their error differs
        palette = np.array([[0, 0, 0], [255, 0, 0], [0, 0, 255]], dtype=np.uint8)
        buf = np.array([*first, 255, 100, 0, 100, 255], dtype=np.uint8)
        apply_error_diffusion(buf, 2, 1, FLOYD_STEINBERG, DitherConfig(use_original_color=True),
                              ColorQuantizer(palette))
        rgb = rgb_of(buf, 2, 1)
        np.testing.assert_array_equal(rgb[0, 0], [0, 0, 0])
        np.testing.assert_array_equal(rgb[0, 1], expected)

    def test_serpentine_mirrors_odd_rows(self, bw_config: DitherConfig) -> None:
        # black first row carries no error, so row 1 depends only on itself
        row = [60, 127, 200, 90, 30]
        w = len(row)
        q = ColorQuantizer(BLACK_WHITE)

        snake = gray_frame(w, 2, 0)
        rgb_of(snake, w, 2)[1] = np.array(row)[:, np.newaxis]
        apply_error_diffusion(snake, w, 2, FLOYD_STEINBERG, replace(bw_config, serpentine=True), q)

        mirrored = gray_frame(w, 2, 0)
        rgb_of(mirrored, w, 2)[1] = np.array(row[::-1])[:, np.newaxis]
        apply_error_diffusion(mirrored, w, 2, FLOYD_STEINBERG, bw_config, q)

        np.testing.assert_array_equal(rgb_of(snake, w, 2)[1], rgb_of(mirrored, w, 2)[1][::-1])

    def test_zero_strength_is_posterize(self, frame: np.ndarray) -> None:
        cfg = DitherConfig(diffusion_strength=0.0)
        q = ColorQuantizer(cfg.palette())
        diffused = frame.copy()
        apply_error_diffusion(diffused, W, H, FLOYD_STEINBERG, cfg, q)
        posterized = frame.copy()
        apply_posterize(posterized, W, H, cfg, q)
        np.testing.assert_array_equal(diffused, posterized)

    def test_single_pixel(self, bw_config: DitherConfig) -> None:
        buf = gray_frame(1, 1, 200)
        apply_error_diffusion(buf, 1, 1, KERNELS["stucki"], bw_config, ColorQuantizer(BLACK_WHITE))
        np.testing.assert_array_equal(buf, [255, 255, 255, 255])

    def test_noise_is_seeded(self, frame: np.ndarray) -> None:
        cfg = DitherConfig(diffusion_noise=20.0)
        q = ColorQuantizer(cfg.palette())
        a, b = frame.copy(), frame.copy()
        apply_error_diffusion(a, W, H, FLOYD_STEINBERG, cfg, q, rng=np.random.default_rng(3))
        apply_error_diffusion(b, W, H, FLOYD_STEINBERG, cfg, q, rng=np.random.default_rng(3))
        np.testing.assert_array_equal(a, b)


class TestShapeError:
    def test_linear_is_identity(self) -> None:
        assert shape_error(-37.5, 1.0) == -37.5

    def test_keeps_sign(self) -> None:
        assert shape_error(-51.0, 2.0) == pytest.approx(-51.0 ** 2 / 255.0)
        assert shape_error(51.0, 0.5) > 51.0


# -- Ordered -----------------------------------------------------------

class TestOrdered:
    def test_bayer_tile_on_mid_gray(self, bw_config: DitherConfig) -> None:
        cfg = replace(bw_config, pattern_strength=0.5)
        buf = gray_frame(8, 8, 128)
        apply_ordered(buf, 8, 8, BAYER_4, cfg, ColorQuantizer(BLACK_WHITE))
        white = rgb_of(buf, 8, 8)[..., 0] == 255
        expected = np.tile(bayer_ranks(4) >= 8, (2, 2))
        np.testing.assert_array_equal(white, expected)

    def test_amplitude(self, bw_config: DitherConfig) -> None:
        assert pattern_amplitude(replace(bw_config, pattern_strength=0.5)) == pytest.approx(255.0)
        assert pattern_amplitude(DitherConfig(pattern_strength=0.5)) == pytest.approx(85.0)
        assert pattern_amplitude(DitherConfig(pattern_mix=0.0)) == 0.0

    def test_zero_strength_is_posterize(self, frame: np.ndarray) -> None:
        cfg = DitherConfig(pattern_strength=0.0)
        q = ColorQuantizer(cfg.palette())
        ordered = frame.copy()
        apply_ordered(ordered, W, H, BLUE_NOISE_8, cfg, q)
        posterized = frame.copy()
        apply_posterize(posterized, W, H, cfg, q)
        np.testing.assert_array_equal(ordered, posterized)

    def test_original_colour_path(self, frame: np.ndarray) -> None:
        palette = np.array([[255, 0, 0], [0, 0, 255], [255, 255, 255]], dtype=np.uint8)
        cfg = DitherConfig(use_original_color=True)
        apply_ordered(frame, W, H, BAYER_4, cfg, ColorQuantizer(palette))
        colours = {tuple(c) for c in rgb_of(frame, W, H).reshape(-1, 3)}
        assert colours <= {tuple(c) for c in palette}


class TestPosterize:
    def test_idempotent(self, frame: np.ndarray) -> None:
        cfg = DitherConfig()
        q = ColorQuantizer(cfg.palette())
        apply_posterize(frame, W, H, cfg, q)
        once = frame.copy()
        apply_posterize(frame, W, H, cfg, q)
        np.testing.assert_array_equal(frame, once)

    def test_alpha_untouched(self, frame: np.ndarray) -> None:
        alpha = frame[3::4].copy()
        cfg = DitherConfig()
        apply_posterize(frame, W, H, cfg, ColorQuantizer(cfg.palette()))
        np.testing.assert_array_equal(frame[3::4], alpha)


# -- Adaptive ----------------------------------------------------------

class TestAdaptive:
    def test_vertical_edge_gradient(self) -> None:
        buf = gray_frame(4, 4, 0)
        rgb_of(buf, 4, 4)[:, 2:] = 255
        grad = compute_gradients(buf, 4, 4)
        assert grad[1, 1] == pytest.approx(1.0)
        assert grad[1, 2] == pytest.approx(0.0)

    def test_borders_are_zero(self, frame: np.ndarray) -> None:
        grad = compute_gradients(frame, W, H)
        assert not grad[0].any()
        assert not grad[-1].any()
        assert not grad[:, 0].any()
        assert not grad[:, -1].any()

    def test_tiny_frame(self) -> None:
        grad = compute_gradients(gray_frame(2, 5, 100), 2, 5)
        np.testing.assert_array_equal(grad, np.zeros((5, 2)))

    def test_gradients_read_only(self, frame: np.ndarray) -> None:
        before = frame.copy()
        compute_gradients(frame, W, H)
        np.testing.assert_array_equal(frame, before)

    def test_flat_frame_matches_floyd_steinberg(self) -> None:
        cfg = DitherConfig()
        q = ColorQuantizer(cfg.palette())
        adaptive = gray_frame(6, 5, 100)
        apply_adaptive(adaptive, 6, 5, cfg, q)
        reference = gray_frame(6, 5, 100)
        apply_error_diffusion(reference, 6, 5, FLOYD_STEINBERG, cfg, q)
        np.testing.assert_array_equal(adaptive, reference)

    def test_edge_damps_diffused_error(self, bw_config: DitherConfig) -> None:
        # (1, 1) sits on an edge; its error alone decides whether (2, 1) flips
        q = ColorQuantizer(BLACK_WHITE)
        adaptive = gray_frame(3, 3, 0)
        rgb_of(adaptive, 3, 3)[1, 1] = 120
        rgb_of(adaptive, 3, 3)[1, 2] = 80
        reference = adaptive.copy()

        apply_error_diffusion(reference, 3, 3, FLOYD_STEINBERG, bw_config, q)
        apply_adaptive(adaptive, 3, 3, bw_config, q)

        np.testing.assert_array_equal(rgb_of(reference, 3, 3)[1, 2], [255, 255, 255])
        np.testing.assert_array_equal(rgb_of(adaptive, 3, 3)[1, 2], [0, 0, 0])

    def test_output_in_palette(self, frame: np.ndarray) -> None:
        cfg = DitherConfig()
        apply_adaptive(frame, W, H, cfg, ColorQuantizer(cfg.palette()))
        colours = {tuple(c) for c in rgb_of(frame, W, H).reshape(-1, 3)}
        assert colours <= {tuple(c) for c in cfg.palette()}
