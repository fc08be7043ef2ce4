"""
Tests for lazy image views and edge extension
"""

import pytest
import numpy as np
from hypothesis import given, strategies as st

from stereo_correlation.data_models import BBox
from stereo_correlation.exceptions import ArgumentError
from stereo_correlation.image import (
    BufferView, CropView, EdgeExtendView, EdgeExtension, ChannelType, ImageBuffer, ImageFormat, PixelFormat,
    crop, edge_extend
)


class CountingView(BufferView):
    """Buffer view that records every requested region."""

    def __init__(self, array):
        super().__init__(array)
        self.requests = []

    def materialize(self, bbox):
        self.requests.append(bbox)
        return super().materialize(bbox)


class TestBufferView:
    """Test suite for in-memory views."""

    @pytest.fixture
    def image(self):
        return np.arange(20, dtype=np.uint8).reshape(4, 5)

    def test_format_queries(self, image):
        view = BufferView(image)
        assert (view.cols, view.rows, view.planes, view.channels) == (5, 4, 1, 1)
        assert view.channel_type is ChannelType.UINT8
        assert view.supports_block_read()

    def test_materialize_copies(self, image):
        view = BufferView(image)
        result = view.materialize(BBox(1, 1, 3, 3))
        np.testing.assert_array_equal(result.as_array(), image[1:3, 1:3])
        result.data[...] = 0
        assert image[1, 1] == 6

    def test_materialize_is_idempotent(self, image):
        view = BufferView(image)
        first = view.materialize(BBox(0, 0, 5, 4)).as_array()
        second = view.materialize(BBox(0, 0, 5, 4)).as_array()
        np.testing.assert_array_equal(first, second)

    def test_materialize_outside_rejected(self, image):
        with pytest.raises(ArgumentError, match="outside the image bounds"):
            BufferView(image).materialize(BBox(3, 0, 7, 2))

    def test_materialize_as(self, image):
        result = BufferView(image).materialize_as(BBox(0, 0, 2, 1), ChannelType.FLOAT32, rescale=True)
        np.testing.assert_allclose(result.as_array(), [[0.0, 1 / 255]], rtol=1e-6)


class TestCropView:
    """Test suite for crop views."""

    def test_crop_translates_requests(self):
        image = np.arange(100, dtype=np.uint8).reshape(10, 10)
        source = CountingView(image)
        view = crop(source, BBox(2, 3, 8, 9))
        assert (view.cols, view.rows) == (6, 6)
        result = view.materialize(BBox(1, 1, 3, 2))
        np.testing.assert_array_equal(result.as_array(), image[4:5, 3:5])
        assert source.requests == [BBox(3, 4, 5, 5)]

    def test_crop_outside_source_rejected(self):
        with pytest.raises(ArgumentError, match="not inside the source"):
            CropView(BufferView(np.zeros((4, 4), dtype=np.uint8)), BBox(2, 2, 6, 4))

    def test_nested_crops_hold_references(self):
        image = np.arange(64, dtype=np.uint8).reshape(8, 8)
        base = BufferView(image)
        inner = crop(crop(base, BBox(1, 1, 7, 7)), BBox(1, 1, 4, 4))
        assert inner.view.view is base
        np.testing.assert_array_equal(inner.materialize(inner.bbox).as_array(), image[2:5, 2:5])


class TestEdgeExtendView:
    """Test suite for edge extension."""

    @pytest.fixture
    def image(self):
        return np.array([[1, 2, 3],
                         [4, 5, 6]], dtype=np.uint8)

    def test_zero_extension(self, image):
        result = edge_extend(image).materialize(BBox(-1, -1, 4, 3)).as_array()
        expected = np.zeros((4, 5), dtype=np.uint8)
        expected[1:3, 1:4] = image
        np.testing.assert_array_equal(result, expected)

    def test_constant_extension(self, image):
        result = edge_extend(image, EdgeExtension.CONSTANT, 9).materialize(BBox(3, 0, 5, 1)).as_array()
        np.testing.assert_array_equal(result, [[9, 9]])

    def test_nearest_extension(self, image):
        result = edge_extend(image, EdgeExtension.NEAREST).materialize(BBox(-2, 0, 5, 1)).as_array()
        np.testing.assert_array_equal(result, [[1, 1, 1, 2, 3, 3, 3]])

    def test_reflect_extension(self, image):
        result = edge_extend(image, EdgeExtension.REFLECT).materialize(BBox(-2, 0, 5, 1)).as_array()
        np.testing.assert_array_equal(result, [[3, 2, 1, 2, 3, 2, 1]])

    def test_periodic_extension(self, image):
        result = edge_extend(image, EdgeExtension.PERIODIC).materialize(BBox(-1, -1, 4, 1)).as_array()
        np.testing.assert_array_equal(result, [[6, 4, 5, 6, 4], [3, 1, 2, 3, 1]])

    def test_fully_outside_region(self, image):
        source = CountingView(image)
        result = EdgeExtendView(source).materialize(BBox(10, 10, 13, 12))
        assert (result.cols, result.rows) == (3, 2)
        assert not result.as_array().any()
        assert source.requests == []

    def test_only_inside_part_requested(self, image):
        source = CountingView(image)
        EdgeExtendView(source).materialize(BBox(-5, -5, 2, 1))
        assert source.requests == [BBox(0, 0, 2, 1)]

    def test_disparity_outside_source_is_missing(self):
        disparities = ImageBuffer.allocate(ImageFormat(3, 2, 1, PixelFormat.DISPARITY, ChannelType.FLOAT32))
        disparities.data[..., 0] = 4
        result = edge_extend(disparities, EdgeExtension.CONSTANT, 7).materialize(BBox(-1, 0, 3, 2))
        np.testing.assert_array_equal(result.data[0, :, 0, 2], [1, 1])
        np.testing.assert_array_equal(result.data[0, :, 1:, 0], 4)
        assert not result.data[0, :, 1:, 2].any()

    @pytest.mark.property
    @given(
        x=st.integers(min_value=-20, max_value=20),
        y=st.integers(min_value=-20, max_value=20),
        width=st.integers(min_value=0, max_value=15),
        height=st.integers(min_value=0, max_value=15),
        mode=st.sampled_from(list(EdgeExtension))
    )
    def test_property_any_region_is_defined(self, x, y, width, height, mode):
        """Property test: every region materializes to its exact size, agreeing with the source inside."""
        image = np.arange(1, 31, dtype=np.uint8).reshape(5, 6)
        bbox = BBox.from_size(x, y, width, height)
        result = edge_extend(image, mode).materialize(bbox).as_array()
        assert result.shape == (height, width)

        inside = BBox(0, 0, 6, 5).intersection(bbox)
        if not inside.empty:
            rows, cols = inside.translated(-x, -y).to_slices()
            source_rows, source_cols = inside.to_slices()
            np.testing.assert_array_equal(result[rows, cols], image[source_rows, source_cols])
