"""
Generic Image Buffers

Runtime-typed descriptions of in-memory pixel data plus the single pixel
conversion primitive that every read, write and materialization routes through.
"""

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from ..data_models import BBox
from ..exceptions import ArgumentError, FormatError
from .pixel_types import PixelFormat, ChannelType, simple_conversion


# Luminance weights used when collapsing colour to gray
LUMINANCE_WEIGHTS = np.array([0.30, 0.59, 0.11])

_GRAY_FAMILY = (PixelFormat.SCALAR, PixelFormat.GRAY, PixelFormat.GRAYA)
_COLOR_FAMILY = (PixelFormat.RGB, PixelFormat.RGBA)


@dataclass(frozen=True)
class ImageFormat:
    """Dimensions, pixel layout and channel type of an image."""
    cols: int = 0
    rows: int = 0
    planes: int = 0
    pixel_format: PixelFormat = PixelFormat.UNKNOWN
    channel_type: ChannelType = ChannelType.UNKNOWN

    @property
    def channels(self) -> int:
        return self.pixel_format.num_channels()

    def complete(self) -> bool:
        """Does this describe a fully specified data format?"""
        return (self.cols != 0 and self.rows != 0 and self.planes != 0
                and self.pixel_format.num_channels() > 0
                and self.channel_type.channel_size() > 0)

    def same_size(self, other: 'ImageFormat') -> bool:
        return self.cols == other.cols and self.rows == other.rows and self.planes == other.planes

    def simple_convert(self, other: 'ImageFormat') -> bool:
        return (self.same_size(other)
                and simple_conversion(self.channel_type, other.channel_type)
                and simple_conversion(self.pixel_format, other.pixel_format))

    def with_size(self, cols: int, rows: int) -> 'ImageFormat':
        return replace(self, cols=cols, rows=rows)


class ImageBuffer:
    """
    A view over pixel memory with run-time format information.

    Storage is a numpy array shaped ``(planes, rows, cols, channels)``. The
    buffer never copies on cropping; the memory belongs to whoever allocated
    the array.
    """

    def __init__(self, data: np.ndarray, pixel_format: PixelFormat, unpremultiplied: bool = False):
        if data.ndim != 4:
            raise ArgumentError(f"Buffer data must be 4-D (planes, rows, cols, channels), got {data.ndim}-D")
        planes, rows, cols, channels = data.shape
        if pixel_format.num_channels() != channels:
            raise ArgumentError(f"Pixel format {pixel_format.value} needs {pixel_format.num_channels()} "
                                f"channels, data has {channels}")
        self.data = data
        self.format = ImageFormat(cols, rows, planes, pixel_format, ChannelType.from_dtype(data.dtype))
        self.unpremultiplied = unpremultiplied

    @classmethod
    def allocate(cls, image_format: ImageFormat) -> 'ImageBuffer':
        """Allocate a zero-filled buffer for the given format."""
        if image_format.pixel_format is PixelFormat.UNKNOWN:
            raise ArgumentError("Cannot allocate a buffer with an unknown pixel format")
        shape = (image_format.planes, image_format.rows, image_format.cols, image_format.channels)
        return cls(np.zeros(shape, dtype=image_format.channel_type.dtype), image_format.pixel_format)

    @classmethod
    def from_array(cls, array: np.ndarray, pixel_format: Optional[PixelFormat] = None) -> 'ImageBuffer':
        """
        Wrap a numpy image without copying.

        Args:
            array: 2-D (rows, cols) or 3-D (rows, cols, channels) array
            pixel_format: Layout of the last axis. A single-channel format with
                a 3-D array treats the last axis as planes.

        Returns:
            ImageBuffer sharing memory with ``array``
        """
        if array.ndim == 2:
            return cls(array[None, :, :, None], pixel_format or PixelFormat.GRAY)
        if array.ndim != 3:
            raise ArgumentError(f"Expected a 2-D or 3-D array, got {array.ndim}-D")
        if pixel_format is not None and pixel_format.num_channels() == 1 and array.shape[2] != 1:
            return cls(np.moveaxis(array, 2, 0)[..., None], pixel_format)
        return cls(array[None], pixel_format or PixelFormat.for_channel_count(array.shape[2]))

    def as_array(self) -> np.ndarray:
        """Numpy view in conventional layout: (rows, cols), (rows, cols, channels) or (rows, cols, planes)."""
        if self.planes == 1:
            image = self.data[0]
            return image[..., 0] if self.channels == 1 else image
        if self.channels == 1:
            return np.moveaxis(self.data[..., 0], 0, -1)
        raise ArgumentError("Multi-plane multi-channel buffers have no conventional array layout")

    @property
    def cols(self) -> int:
        return self.format.cols

    @property
    def rows(self) -> int:
        return self.format.rows

    @property
    def planes(self) -> int:
        return self.format.planes

    @property
    def channels(self) -> int:
        return self.format.channels

    @property
    def pixel_format(self) -> PixelFormat:
        return self.format.pixel_format

    @property
    def channel_type(self) -> ChannelType:
        return self.format.channel_type

    @property
    def bbox(self) -> BBox:
        return BBox(0, 0, self.cols, self.rows)

    # Strides are in bytes, as numpy reports them
    @property
    def cstride(self) -> int:
        return self.data.strides[2]

    @property
    def rstride(self) -> int:
        return self.data.strides[1]

    @property
    def pstride(self) -> int:
        return self.data.strides[0]

    def byte_size(self) -> int:
        """Size in bytes of the data described by this buffer."""
        return self.planes * self.pstride

    def pixel_offset(self, i: int, j: int, p: int = 0) -> int:
        """Byte offset of pixel (column i, row j, plane p) from the data origin."""
        return i * self.cstride + j * self.rstride + p * self.pstride

    def cropped(self, bbox: BBox) -> 'ImageBuffer':
        """A buffer over the same memory restricted to ``bbox``."""
        rows, cols = bbox.to_slices()
        return ImageBuffer(self.data[:, rows, cols, :], self.pixel_format, self.unpremultiplied)

    def read(self, dst: 'ImageBuffer', bbox: BBox) -> None:
        """Copy the pixels in ``bbox`` into ``dst``, converting as needed."""
        convert(dst, self.cropped(bbox))

    def write(self, src: 'ImageBuffer', bbox: BBox) -> None:
        """Copy ``src`` into the pixels in ``bbox``, converting as needed."""
        convert(self.cropped(bbox), src)

    def copy(self) -> 'ImageBuffer':
        return ImageBuffer(self.data.copy(), self.pixel_format, self.unpremultiplied)

    def __repr__(self) -> str:
        return (f"ImageBuffer({self.cols}x{self.rows}x{self.planes}, "
                f"{self.pixel_format.value}, {self.channel_type.value})")


def convert(dst: ImageBuffer, src: ImageBuffer, rescale: bool = False) -> None:
    """
    Copy ``src`` pixels into ``dst``, converting pixel layout and channel type.

    Args:
        dst: Destination buffer, written in place
        src: Source buffer
        rescale: If True, values are scaled between the natural ranges of the
            two channel types; otherwise they are cast and clamped.

    Raises:
        FormatError: If the buffers differ in columns or rows
        ArgumentError: If the plane/channel structures cannot be reconciled
    """
    if dst.cols != src.cols or dst.rows != src.rows:
        raise FormatError(f"Cannot convert {src.cols}x{src.rows} buffer into {dst.cols}x{dst.rows} buffer")

    if not rescale and dst.format.simple_convert(src.format):
        np.copyto(dst.data, src.data)
        return

    values = src.data.astype(np.float64)
    if rescale:
        values *= dst.channel_type.range_max() / src.channel_type.range_max()

    if src.planes == dst.planes:
        values = _convert_layout(values, src.pixel_format, dst.pixel_format, dst.channel_type)
    elif src.channels == 1 and dst.planes == 1 and dst.channels == src.planes:
        # planes become channels
        values = np.moveaxis(values[..., 0], 0, -1)[None]
    elif dst.channels == 1 and src.planes == 1 and src.channels == dst.planes:
        # channels become planes
        values = np.moveaxis(values[0], -1, 0)[..., None]
    else:
        raise ArgumentError(f"Cannot convert {src.planes}-plane {src.pixel_format.value} data into "
                            f"{dst.planes}-plane {dst.pixel_format.value} buffer")

    dst.data[...] = _cast_channels(values, dst.channel_type, rescale)


def _convert_layout(values: np.ndarray, src_format: PixelFormat, dst_format: PixelFormat,
                    dst_type: ChannelType) -> np.ndarray:
    """Convert the channel axis of float64 pixel data between layouts."""
    if src_format == dst_format:
        return values
    if PixelFormat.UNKNOWN in (src_format, dst_format):
        raise ArgumentError("Cannot convert pixels with an unknown pixel format")
    if PixelFormat.DISPARITY in (src_format, dst_format):
        raise ArgumentError(f"Cannot convert between {src_format.value} and {dst_format.value} pixels")

    if src_format in _COLOR_FAMILY and dst_format in _GRAY_FAMILY:
        base = values[..., :3] @ LUMINANCE_WEIGHTS
        base = base[..., None]
    elif src_format in _GRAY_FAMILY and dst_format in _COLOR_FAMILY:
        base = np.repeat(values[..., :1], 3, axis=-1)
    else:
        base = values[..., :1] if src_format in _GRAY_FAMILY else values[..., :3]

    if not dst_format.has_alpha:
        return base
    if src_format.has_alpha:
        alpha = values[..., -1:]
    else:
        alpha = np.full(values.shape[:-1] + (1,), dst_type.range_max())
    return np.concatenate([base, alpha], axis=-1)


def _cast_channels(values: np.ndarray, dst_type: ChannelType, rescale: bool) -> np.ndarray:
    """Round or truncate, clamp, and cast float64 values to the destination type."""
    if dst_type.is_integer:
        values = np.rint(values) if rescale else np.trunc(values)
    low, high = dst_type.limits()
    return np.clip(values, low, high).astype(dst_type.dtype)
