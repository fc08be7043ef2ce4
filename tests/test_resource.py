"""
Tests for image resources and capability queries
"""

import pytest
import numpy as np
import cv2

from stereo_correlation.data_models import BBox
from stereo_correlation.exceptions import NoImplError, ArgumentError
from stereo_correlation.image import (
    ImageBuffer, ImageFormat, PixelFormat, ChannelType, BufferResource, ImageFileResource,
    ResourceView, open_image, write_image
)


class CountingFileResource(ImageFileResource):
    """File resource that counts full reads."""

    def __init__(self, path):
        super().__init__(path)
        self.reads = 0

    def read(self, buffer, bbox):
        self.reads += 1
        super().read(buffer, bbox)


class TestBufferResource:
    """Test suite for in-memory resources."""

    def test_capabilities(self):
        buffer = ImageBuffer.from_array(np.zeros((4, 4), dtype=np.uint8))
        resource = BufferResource(buffer)
        assert resource.supports_block_read()
        assert not resource.has_nodata_read()
        with pytest.raises(NoImplError):
            resource.nodata_read()

    def test_nodata(self):
        resource = BufferResource(ImageBuffer.from_array(np.zeros((2, 2), dtype=np.float32)), nodata=-1.0)
        assert resource.has_nodata_read()
        assert resource.nodata_read() == -1.0

    def test_block_read_through_view(self):
        array = np.arange(36, dtype=np.uint16).reshape(6, 6)
        view = ResourceView(BufferResource(ImageBuffer.from_array(array)))
        result = view.materialize(BBox(2, 1, 5, 3))
        np.testing.assert_array_equal(result.as_array(), array[1:3, 2:5])


class TestImageFileResource:
    """Test suite for OpenCV file resources."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ImageFileResource(tmp_path / "missing.png")

    def test_format(self, image_file):
        resource = ImageFileResource(image_file)
        assert resource.format == ImageFormat(64, 64, 1, PixelFormat.GRAY, ChannelType.UINT8)
        assert not resource.supports_block_read()
        assert resource.block_read_size() == (64, 64)

    def test_partial_read_not_implemented(self, image_file):
        resource = ImageFileResource(image_file)
        buffer = ImageBuffer.allocate(resource.format.with_size(8, 8))
        with pytest.raises(NoImplError, match="partial reads"):
            resource.read(buffer, BBox(0, 0, 8, 8))

    def test_view_reads_file_once(self, image_file, random_texture):
        resource = CountingFileResource(image_file)
        view = ResourceView(resource)
        first = view.materialize(BBox(0, 0, 10, 10))
        second = view.materialize(BBox(30, 20, 40, 64))
        assert resource.reads == 1
        np.testing.assert_array_equal(first.as_array(), random_texture[:10, :10])
        np.testing.assert_array_equal(second.as_array(), random_texture[20:64, 30:40])

    def test_color_file_is_rgb(self, tmp_path):
        bgr = np.zeros((4, 4, 3), dtype=np.uint8)
        bgr[..., 0] = 255  # blue in OpenCV order
        path = tmp_path / "color.png"
        cv2.imwrite(str(path), bgr)
        view = open_image(path)
        assert view.pixel_format is PixelFormat.RGB
        pixel = view.materialize(BBox(0, 0, 1, 1)).data[0, 0, 0]
        np.testing.assert_array_equal(pixel, [0, 0, 255])


class TestWriteImage:
    """Test suite for write_image()."""

    def test_round_trip_16_bit(self, tmp_path):
        array = (np.arange(64, dtype=np.uint16).reshape(8, 8) * 1000)
        path = tmp_path / "wide.png"
        write_image(path, ImageBuffer.from_array(array))
        loaded = open_image(path)
        assert loaded.channel_type is ChannelType.UINT16
        np.testing.assert_array_equal(loaded.materialize(loaded.bbox).as_array(), array)

    def test_float_disparity_tif(self, tmp_path):
        data = np.random.default_rng(0).normal(size=(1, 5, 6, 3)).astype(np.float32)
        path = tmp_path / "result-D.tif"
        write_image(path, ImageBuffer(data, PixelFormat.DISPARITY))
        loaded = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        np.testing.assert_allclose(loaded, data[0])

    def test_multi_plane_rejected(self, tmp_path):
        buffer = ImageBuffer.allocate(ImageFormat(2, 2, 2, PixelFormat.GRAY, ChannelType.UINT8))
        with pytest.raises(ArgumentError, match="single-plane"):
            write_image(tmp_path / "planes.png", buffer)
