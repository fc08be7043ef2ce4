"""
Tests for the lazy correlator view
"""

import pytest
import numpy as np
import cv2
from hypothesis import given, settings, strategies as st

from stereo_correlation.data_models import BBox, SearchRange, CorrelatorSettings
from stereo_correlation.disparity.correlator_view import CorrelatorView
from stereo_correlation.image import (
    BufferView, ImageBuffer, ImageFormat, PixelFormat, ChannelType, EdgeExtension, crop, edge_extend
)

from conftest import shift_image


class TestCorrelatorView:
    """Test suite for the correlator view."""

    @pytest.fixture
    def view(self, shifted_pair, small_settings):
        left, right = shifted_pair
        return CorrelatorView(left, right, settings=small_settings)

    def test_default_settings(self, shifted_pair):
        view = CorrelatorView(*shifted_pair)
        settings = view.settings()
        assert settings.search_range == SearchRange(-50, -50, 50, 50)
        assert settings.kernel_size == (24, 24)
        assert view.subpixel_options() == (True, True, False)
        assert view.cross_corr_threshold() == 2.0
        assert view.corr_score_threshold() == 1.3

    def test_settings_from_config(self, shifted_pair, config_manager):
        config_manager.set('correlator.kernel_size', [6, 6])
        view = CorrelatorView(*shifted_pair, config_manager=config_manager)
        assert view.kernel_size() == (6, 6)

    def test_format(self, view):
        assert (view.cols, view.rows, view.planes) == (64, 64, 1)
        assert view.pixel_format is PixelFormat.DISPARITY
        assert view.channel_type is ChannelType.FLOAT32
        assert view.supports_block_read()

    def test_size_mismatch_rejected(self, random_texture):
        with pytest.raises(ValueError, match="differ in size"):
            CorrelatorView(random_texture, random_texture[:, :60])

    def test_multi_channel_rejected(self):
        color = BufferView(ImageBuffer.allocate(ImageFormat(16, 16, 1, PixelFormat.RGB, ChannelType.UINT8)))
        with pytest.raises(ValueError, match="channels"):
            CorrelatorView(color, color)

    def test_multi_plane_rejected(self):
        planes = BufferView(ImageBuffer.allocate(ImageFormat(16, 16, 2, PixelFormat.GRAY, ChannelType.UINT8)))
        with pytest.raises(ValueError, match="planes"):
            CorrelatorView(planes, planes)

    def test_setters(self, view):
        view.set_search_range(SearchRange(-2, -1, 2, 1))
        view.set_kernel_size((3, 4))
        view.set_subpixel_options(False, True, True)
        view.set_cross_corr_threshold(1.0)
        view.set_corr_score_threshold(2.0)
        view.set_edge_extension('nearest')

        settings = view.settings()
        assert settings.search_range == SearchRange(-2, -1, 2, 1)
        assert settings.kernel_size == (3, 4)
        assert view.subpixel_options() == (False, True, True)
        assert settings.cross_corr_threshold == 1.0
        assert settings.corr_score_threshold == 2.0
        assert settings.edge_extension == 'nearest'

    def test_bad_setting_rejected(self, view):
        with pytest.raises(ValueError, match="Kernel size"):
            view.set_kernel_size((0, 2))
        assert view.kernel_size() == (5, 5)

    def test_settings_snapshot_is_immutable(self, view):
        snapshot = view.settings()
        view.set_kernel_size((2, 2))
        assert snapshot.kernel_size == (5, 5)

    def test_materialize_size(self, view):
        for bbox in [BBox(0, 0, 64, 64), BBox(10, 5, 27, 40), BBox(60, 60, 64, 64), BBox(-5, -5, 3, 3)]:
            result = view.materialize_disparity(bbox)
            assert (result.cols, result.rows) == bbox.size

    def test_empty_region(self, view):
        result = view.materialize_disparity(BBox(5, 5, 5, 12))
        assert (result.cols, result.rows) == (0, 7)

    def test_determinism(self, view):
        bbox = BBox(8, 8, 40, 40)
        first = view.materialize_disparity(bbox)
        second = view.materialize_disparity(bbox)
        assert first.equals(second)
        np.testing.assert_array_equal(first.h, second.h)
        np.testing.assert_array_equal(first.v, second.v)

    def test_border_invalidity(self, view):
        kx, ky = view.kernel_size()
        top_left = view.materialize_disparity(BBox(0, 0, 20, 20))
        assert not top_left.valid[:ky, :].any()
        assert not top_left.valid[:, :kx].any()

        bottom_right = view.materialize_disparity(BBox(44, 44, 64, 64))
        assert not bottom_right.valid[-ky:, :].any()
        assert not bottom_right.valid[:, -kx:].any()

        outside = view.materialize_disparity(BBox(64, 0, 70, 10))
        assert outside.valid_count() == 0

    def test_tiling_consistency(self, view):
        kx = view.kernel_size()[0]
        whole = view.materialize_disparity(BBox(0, 0, 64, 64))
        left_half = view.materialize_disparity(BBox(0, 0, 32, 64))
        right_half = view.materialize_disparity(BBox(32, 0, 64, 64))

        h = np.hstack([left_half.h, right_half.h])
        v = np.hstack([left_half.v, right_half.v])
        valid = np.hstack([left_half.valid, right_half.valid])

        # Away from the split everything agrees
        far = np.ones(valid.shape, dtype=bool)
        far[:, 32 - 2 * kx - 8:32 + 2 * kx + 8] = False
        np.testing.assert_array_equal(valid[far], whole.valid[far])

        # Where both are valid the values agree
        both = valid & whole.valid
        np.testing.assert_allclose(h[both], whole.h[both], atol=1e-4)
        np.testing.assert_allclose(v[both], whole.v[both], atol=1e-4)

    def test_zero_search_range(self, random_texture):
        settings = CorrelatorSettings(search_range=SearchRange(0, 0, 0, 0), kernel_size=(4, 4))
        view = CorrelatorView(random_texture, random_texture, settings=settings)
        result = view.materialize_disparity(view.bbox)
        assert result.valid[4:60, 4:60].all()
        assert np.abs(result.h[result.valid]).max() < 0.1
        assert np.abs(result.v[result.valid]).max() < 0.1

    def test_constant_shift_passes_consistency_check(self, random_texture):
        right = shift_image(random_texture, 2, 1)
        settings = CorrelatorSettings(search_range=SearchRange(-4, -4, 4, 4), kernel_size=(5, 5),
                                      do_h_subpixel=False, do_v_subpixel=False)
        view = CorrelatorView(random_texture, right, settings=settings)
        result = view.materialize_disparity(view.bbox)
        interior = (slice(5, 59), slice(5, 59))
        assert result.valid[interior].all()
        assert (result.h[interior] == 2).all()
        assert (result.v[interior] == 1).all()

    def test_end_to_end_64x64(self, shifted_pair):
        """Right image is the left moved 3 pixels right; the central 48x48 block reports (3, 0)."""
        left, right = shifted_pair
        settings = CorrelatorSettings(search_range=SearchRange(-5, -5, 5, 5), kernel_size=(8, 8),
                                      do_h_subpixel=False, do_v_subpixel=False)
        view = CorrelatorView(BufferView(left), BufferView(right), settings=settings)
        result = view.materialize_disparity(BBox(0, 0, 64, 64))

        assert (result.cols, result.rows) == (64, 64)
        centre = (slice(8, 56), slice(8, 56))
        assert result.valid[centre].all()
        assert (result.h[centre] == 3).all()
        assert (result.v[centre] == 0).all()

        border = np.ones((64, 64), dtype=bool)
        border[centre] = False
        assert not result.valid[border].any()

    def test_settings_change_applies_to_next_materialization(self, view):
        bbox = BBox(10, 10, 30, 30)
        before = view.materialize_disparity(bbox)
        view.set_search_range(SearchRange(0, 0, 0, 0))
        after = view.materialize_disparity(bbox)
        assert np.abs(after.h[after.valid]).max() <= 0.5
        assert np.abs(before.h[before.valid] - 3).max() < 0.5

    def test_materialize_returns_disparity_buffer(self, view):
        buffer = view.materialize(BBox(10, 10, 20, 20))
        assert buffer.pixel_format is PixelFormat.DISPARITY
        assert buffer.channel_type is ChannelType.FLOAT32
        assert (buffer.cols, buffer.rows) == (10, 10)

    def test_materialize_as_integer(self, view):
        buffer = view.materialize_as(BBox(10, 10, 20, 20), ChannelType.INT16)
        assert buffer.channel_type is ChannelType.INT16
        assert buffer.data[0, 5, 5, 0] in (2, 3)
        assert buffer.data[0, 5, 5, 2] == 0

    def test_rasterize_into_buffer(self, view):
        dst = ImageBuffer.allocate(ImageFormat(8, 6, 1, PixelFormat.DISPARITY, ChannelType.FLOAT32))
        view.rasterize(dst, BBox(20, 20, 28, 26))
        np.testing.assert_allclose(dst.data[0, ..., 0], view.materialize_disparity(BBox(20, 20, 28, 26)).h)

    def test_edge_extend_over_view(self, view):
        inside = view.materialize(BBox(0, 0, 20, 20))
        extended = edge_extend(view, EdgeExtension.ZERO).materialize(BBox(-4, -4, 20, 20))
        assert extended.pixel_format is PixelFormat.DISPARITY
        assert (extended.cols, extended.rows) == (24, 24)
        np.testing.assert_array_equal(extended.data[:, 4:, 4:, :], inside.data)
        assert (extended.data[0, :4, :, 2] == 1).all()
        assert (extended.data[0, :, :4, 2] == 1).all()

    def test_nearest_extension_over_view(self, view):
        inside = view.materialize(BBox(0, 0, 20, 20))
        extended = edge_extend(view, EdgeExtension.NEAREST).materialize(BBox(-4, -4, 20, 20))
        assert (extended.cols, extended.rows) == (24, 24)
        np.testing.assert_array_equal(extended.data[:, 4:, 4:, :], inside.data)
        np.testing.assert_array_equal(extended.data[0, 0, 0], inside.data[0, 0, 0])

    def test_crop_over_view(self, view):
        cropped = crop(view, BBox(10, 10, 30, 30))
        assert (cropped.cols, cropped.rows) == (20, 20)
        assert cropped.pixel_format is PixelFormat.DISPARITY
        np.testing.assert_array_equal(cropped.materialize(BBox(0, 0, 5, 5)).data,
                                      view.materialize(BBox(10, 10, 15, 15)).data)

    def test_extended_crop_of_view(self, view):
        composed = edge_extend(crop(view, BBox(30, 30, 40, 40)))
        buffer = composed.materialize(BBox(-2, -2, 10, 10))
        assert (buffer.cols, buffer.rows) == (12, 12)
        assert (buffer.data[0, :2, :, 2] == 1).all()
        np.testing.assert_array_equal(buffer.data[:, 2:, 2:, :], view.materialize(BBox(30, 30, 40, 40)).data)

    def test_debug_prefix_writes_images(self, shifted_pair, small_settings, tmp_path):
        view = CorrelatorView(*shifted_pair, settings=small_settings)
        view.set_debug_mode(str(tmp_path / "debug"))
        view.materialize_disparity(BBox(0, 0, 32, 32))
        written = sorted(path.name for path in tmp_path.iterdir())
        assert "debug-0-32_0-32-result-H.png" in written
        assert "debug-0-32_0-32-level0-H.png" in written
        assert "debug-0-32_0-32-lrc.png" in written

    def test_describe(self, view):
        text = str(view)
        assert "kernel 5x5" in text
        assert "h [-4, 4]" in text

    @pytest.mark.property
    @settings(max_examples=15, deadline=None)
    @given(
        x=st.integers(min_value=0, max_value=40),
        y=st.integers(min_value=0, max_value=40),
        width=st.integers(min_value=1, max_value=24),
        height=st.integers(min_value=1, max_value=24)
    )
    def test_property_output_matches_region_size(self, x, y, width, height):
        """Property test: every region materializes to exactly its own size."""
        image = np.random.default_rng(5).integers(0, 256, (64, 64), dtype=np.uint8)
        correlator_settings = CorrelatorSettings(search_range=SearchRange(-2, -2, 2, 2), kernel_size=(3, 3))
        view = CorrelatorView(image, shift_image(image, 1, 0), settings=correlator_settings)
        result = view.materialize_disparity(BBox.from_size(x, y, width, height))
        assert (result.cols, result.rows) == (width, height)
        assert not result.h[~result.valid].any()


def layered_texture(size: int, seed: int) -> np.ndarray:
    """Noise with both fine and coarse structure, so every pyramid level has something to match."""
    rng = np.random.default_rng(seed)
    layers = []
    for sigma in (1.0, 4.0):
        layer = cv2.GaussianBlur(rng.uniform(0, 255, (size, size)).astype(np.float32), (0, 0), sigma)
        layers.append((layer - layer.mean()) / layer.std())
    texture = sum(layers)
    texture = (texture - texture.min()) / (texture.max() - texture.min()) * 255
    return texture.astype(np.uint8)


class TestCorrelatorViewPyramid:
    """Constant shifts through views whose search ranges need several pyramid levels."""

    @pytest.mark.parametrize("half_range, size, block", [
        (10, 128, BBox(32, 32, 96, 96)),
        (20, 160, BBox(48, 48, 112, 112)),
    ])
    def test_constant_shift(self, half_range, size, block):
        left = layered_texture(size, 31)
        right = shift_image(left, 7, 0)
        correlator_settings = CorrelatorSettings(
            search_range=SearchRange(-half_range, -half_range, half_range, half_range),
            kernel_size=(5, 5), do_h_subpixel=False, do_v_subpixel=False)
        view = CorrelatorView(left, right, settings=correlator_settings)

        result = view.materialize_disparity(block)
        assert result.valid.mean() > 0.95
        assert (result.h[result.valid] == 7).all()
        assert (result.v[result.valid] == 0).all()

    def test_constant_shift_with_defaults(self):
        left = layered_texture(320, 32)
        right = shift_image(left, 7, 0)
        view = CorrelatorView(left, right)
        assert view.search_range() == SearchRange(-50, -50, 50, 50)

        result = view.materialize_disparity(BBox(96, 96, 160, 160))
        assert result.valid.mean() > 0.9
        assert np.abs(result.h[result.valid] - 7).max() <= 0.5
        assert np.abs(result.v[result.valid]).max() <= 0.5

    def test_multi_level_block_uses_several_levels(self, tmp_path):
        left = layered_texture(128, 33)
        correlator_settings = CorrelatorSettings(search_range=SearchRange(-10, -10, 10, 10), kernel_size=(5, 5))
        view = CorrelatorView(left, shift_image(left, 7, 0), settings=correlator_settings)
        view.set_debug_mode(str(tmp_path / "debug"))
        view.materialize_disparity(BBox(32, 32, 96, 96))
        written = {path.name for path in tmp_path.iterdir()}
        assert "debug-32-96_32-96-level2-H.png" in written
