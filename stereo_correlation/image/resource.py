"""
Image Resources

The boundary between stored image data and lazy views. A resource describes
its format up front and reads regions into generic buffers; optional
capabilities are advertised through query methods.
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from ..data_models import BBox
from ..exceptions import ArgumentError, NoImplError
from .image_buffer import ImageBuffer, ImageFormat, convert
from .image_view import ImageView
from .pixel_types import PixelFormat, ChannelType


class ImageResource(ABC):
    """A read-only source of pixels with a known format."""

    @property
    @abstractmethod
    def format(self) -> ImageFormat:
        """Format of the stored image."""

    @abstractmethod
    def read(self, buffer: ImageBuffer, bbox: BBox) -> None:
        """Read the pixels in ``bbox`` into ``buffer``, converting as needed."""

    @abstractmethod
    def supports_block_read(self) -> bool:
        """Can ``read`` be called with a region smaller than the whole image?"""

    def block_read_size(self) -> Tuple[int, int]:
        return self.format.cols, self.format.rows

    def has_nodata_read(self) -> bool:
        return False

    def nodata_read(self) -> float:
        raise NoImplError(f"{type(self).__name__} does not provide a nodata value")

    @property
    def bbox(self) -> BBox:
        return BBox(0, 0, self.format.cols, self.format.rows)


class BufferResource(ImageResource):
    """An in-memory buffer exposed through the resource interface."""

    def __init__(self, buffer: ImageBuffer, nodata: Optional[float] = None):
        self.buffer = buffer
        self.nodata = nodata

    @property
    def format(self) -> ImageFormat:
        return self.buffer.format

    def read(self, buffer: ImageBuffer, bbox: BBox) -> None:
        self.buffer.read(buffer, bbox)

    def supports_block_read(self) -> bool:
        return True

    def has_nodata_read(self) -> bool:
        return self.nodata is not None

    def nodata_read(self) -> float:
        if self.nodata is None:
            return super().nodata_read()
        return self.nodata


class ImageFileResource(ImageResource):
    """
    An image file decoded with OpenCV.

    OpenCV decodes whole files only, so partial reads are not supported and
    the header is only known after the first decode.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        if not self.path.exists():
            raise FileNotFoundError(f"Image file not found: {self.path}")
        self._image = None
        self._lock = threading.Lock()

    def _decode(self) -> np.ndarray:
        with self._lock:
            if self._image is None:
                image = cv2.imread(str(self.path), cv2.IMREAD_UNCHANGED)
                if image is None:
                    raise ArgumentError(f"Could not decode image file: {self.path}")
                if image.ndim == 3 and image.shape[2] in (3, 4):
                    code = cv2.COLOR_BGR2RGB if image.shape[2] == 3 else cv2.COLOR_BGRA2RGBA
                    image = cv2.cvtColor(image, code)
                self._image = image
                self.logger.info(f"Loaded image {self.path.name}: {image.shape[1]}x{image.shape[0]}, "
                                 f"{image.dtype}")
            return self._image

    @property
    def format(self) -> ImageFormat:
        return ImageBuffer.from_array(self._decode()).format

    def read(self, buffer: ImageBuffer, bbox: BBox) -> None:
        if bbox != self.bbox:
            raise NoImplError(f"{self.path.name}: partial reads are not supported")
        convert(buffer, ImageBuffer.from_array(self._decode()))

    def supports_block_read(self) -> bool:
        return False


class ResourceView(ImageView):
    """
    A lazy view over an image resource.

    Resources without block reads are read once in full; the decoded image is
    kept so later regions are crops of it.
    """

    def __init__(self, resource: ImageResource):
        self.resource = resource
        self._format = resource.format
        self._cache = None
        self._lock = threading.Lock()

    @property
    def format(self) -> ImageFormat:
        return self._format

    def supports_block_read(self) -> bool:
        return self.resource.supports_block_read()

    def block_read_size(self) -> Tuple[int, int]:
        return self.resource.block_read_size()

    def materialize(self, bbox: BBox) -> ImageBuffer:
        self._check_inside(bbox)
        if self.resource.supports_block_read():
            result = ImageBuffer.allocate(self._format.with_size(bbox.width, bbox.height))
            self.resource.read(result, bbox)
            return result
        return self._whole_image().cropped(bbox).copy()

    def _whole_image(self) -> ImageBuffer:
        with self._lock:
            if self._cache is None:
                buffer = ImageBuffer.allocate(self._format)
                self.resource.read(buffer, self.bbox)
                self._cache = buffer
            return self._cache


def open_image(path: Union[str, Path]) -> ResourceView:
    """Open an image file as a lazy view."""
    return ResourceView(ImageFileResource(path))


def write_image(path: Union[str, Path], buffer: ImageBuffer) -> None:
    """
    Encode a single-plane buffer to disk with OpenCV.

    Args:
        path: Output file; the extension selects the codec
        buffer: Single-plane image buffer
    """
    if buffer.planes != 1:
        raise ArgumentError("write_image: only single-plane buffers can be written")
    if buffer.cols == 0 or buffer.rows == 0:
        raise ArgumentError("write_image: cannot write an empty image")
    image = buffer.as_array()
    if buffer.pixel_format is PixelFormat.RGB:
        image = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    elif buffer.pixel_format is PixelFormat.RGBA:
        image = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), np.ascontiguousarray(image)):
        raise ArgumentError(f"OpenCV could not write {path}")
