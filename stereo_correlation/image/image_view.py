"""
Lazy Image Views

Composable, read-only images whose pixels are only computed when a region is
materialized. Views hold the views they wrap by reference, so one source can
feed any number of derived views without copying.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Tuple, Union

import numpy as np

from ..data_models import BBox
from ..exceptions import ArgumentError
from .image_buffer import ImageBuffer, ImageFormat, convert
from .pixel_types import PixelFormat, ChannelType


class EdgeExtension(Enum):
    """Out-of-bounds policies for EdgeExtendView."""
    ZERO = 'zero'
    CONSTANT = 'constant'
    NEAREST = 'nearest'
    REFLECT = 'reflect'
    PERIODIC = 'periodic'


class ImageView(ABC):
    """Base class of every lazily evaluated image."""

    @property
    @abstractmethod
    def format(self) -> ImageFormat:
        """Static description of the view, available without materializing."""

    @abstractmethod
    def materialize(self, bbox: BBox) -> ImageBuffer:
        """
        Compute the pixels inside ``bbox``.

        Args:
            bbox: Region in view coordinates

        Returns:
            A new buffer of exactly ``bbox``'s size
        """

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

    def supports_block_read(self) -> bool:
        """Can arbitrary sub-regions be materialized without computing the whole image?"""
        return True

    def block_read_size(self) -> Tuple[int, int]:
        """Preferred (cols, rows) of a materialization request."""
        return self.cols, self.rows

    def materialize_as(self, bbox: BBox, channel_type: ChannelType, rescale: bool = False) -> ImageBuffer:
        """Materialize ``bbox`` and convert it to ``channel_type``."""
        buffer = self.materialize(bbox)
        if buffer.channel_type == channel_type:
            return buffer
        result = ImageBuffer.allocate(ImageFormat(buffer.cols, buffer.rows, buffer.planes,
                                                  buffer.pixel_format, channel_type))
        convert(result, buffer, rescale)
        return result

    def rasterize(self, dst: ImageBuffer, bbox: BBox) -> None:
        """Materialize ``bbox`` into an existing buffer."""
        convert(dst, self.materialize(bbox))

    def _check_inside(self, bbox: BBox) -> None:
        if not self.bbox.contains(bbox):
            raise ArgumentError(f"{type(self).__name__}: region {bbox} is outside the image bounds {self.bbox}")


class BufferView(ImageView):
    """A concrete in-memory image."""

    def __init__(self, buffer: Union[ImageBuffer, np.ndarray]):
        if isinstance(buffer, np.ndarray):
            buffer = ImageBuffer.from_array(buffer)
        self.buffer = buffer

    @property
    def format(self) -> ImageFormat:
        return self.buffer.format

    def materialize(self, bbox: BBox) -> ImageBuffer:
        self._check_inside(bbox)
        return self.buffer.cropped(bbox).copy()


class CropView(ImageView):
    """A rectangular window onto another view."""

    def __init__(self, view: ImageView, bbox: BBox):
        if not view.bbox.contains(bbox):
            raise ArgumentError(f"Crop region {bbox} is not inside the source bounds {view.bbox}")
        self.view = view
        self.crop_bbox = bbox

    @property
    def format(self) -> ImageFormat:
        return self.view.format.with_size(self.crop_bbox.width, self.crop_bbox.height)

    def supports_block_read(self) -> bool:
        return self.view.supports_block_read()

    def materialize(self, bbox: BBox) -> ImageBuffer:
        self._check_inside(bbox)
        return self.view.materialize(bbox.translated(self.crop_bbox.min_x, self.crop_bbox.min_y))


class EdgeExtendView(ImageView):
    """Gives defined pixel values everywhere, including outside the source bounds."""

    def __init__(self, view: ImageView, mode: EdgeExtension = EdgeExtension.ZERO, value: float = 0):
        self.view = view
        self.mode = EdgeExtension(mode)
        self.value = 0 if self.mode is EdgeExtension.ZERO else value

    @property
    def format(self) -> ImageFormat:
        return self.view.format

    def supports_block_read(self) -> bool:
        return self.view.supports_block_read()

    def materialize(self, bbox: BBox) -> ImageBuffer:
        source_empty = self.view.cols == 0 or self.view.rows == 0
        if self.mode in (EdgeExtension.ZERO, EdgeExtension.CONSTANT) or source_empty or bbox.empty:
            return self._fill_and_paste(bbox)

        cols = _extend_indices(np.arange(bbox.min_x, bbox.max_x), self.view.cols, self.mode)
        rows = _extend_indices(np.arange(bbox.min_y, bbox.max_y), self.view.rows, self.mode)
        source_bbox = BBox(int(cols.min()), int(rows.min()), int(cols.max()) + 1, int(rows.max()) + 1)
        source = self.view.materialize(source_bbox)
        data = source.data[:, (rows - source_bbox.min_y)[:, None], (cols - source_bbox.min_x)[None, :], :]
        return ImageBuffer(np.ascontiguousarray(data), source.pixel_format)

    def _fill_and_paste(self, bbox: BBox) -> ImageBuffer:
        result = ImageBuffer.allocate(self.format.with_size(bbox.width, bbox.height))
        if self.value:
            result.data[...] = self.value
        if result.pixel_format is PixelFormat.DISPARITY:
            # Disparities outside the source are missing
            result.data[..., 2] = 1
        inside = self.view.bbox.intersection(bbox)
        if not inside.empty and not bbox.empty:
            source = self.view.materialize(inside)
            target = inside.translated(-bbox.min_x, -bbox.min_y)
            rows, cols = target.to_slices()
            result.data[:, rows, cols, :] = source.data
        return result


def _extend_indices(indices: np.ndarray, size: int, mode: EdgeExtension) -> np.ndarray:
    """Map possibly out-of-range coordinates onto [0, size)."""
    if mode is EdgeExtension.NEAREST:
        return np.clip(indices, 0, size - 1)
    if mode is EdgeExtension.PERIODIC:
        return np.mod(indices, size)
    if size == 1:
        return np.zeros_like(indices)
    period = 2 * (size - 1)
    folded = np.mod(indices, period)
    return np.where(folded > size - 1, period - folded, folded)


def as_view(image: Union[ImageView, ImageBuffer, np.ndarray]) -> ImageView:
    """Wrap buffers and arrays so they satisfy the view interface."""
    if isinstance(image, ImageView):
        return image
    return BufferView(image)


def crop(view: Union[ImageView, ImageBuffer, np.ndarray], bbox: BBox) -> CropView:
    return CropView(as_view(view), bbox)


def edge_extend(view: Union[ImageView, ImageBuffer, np.ndarray],
                mode: EdgeExtension = EdgeExtension.ZERO, value: float = 0) -> EdgeExtendView:
    return EdgeExtendView(as_view(view), mode, value)
