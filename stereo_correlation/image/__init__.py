"""
Image Module

Runtime-typed pixel buffers, the conversion primitive, lazy image views and
the resource boundary used to read image data.
"""

from .pixel_types import PixelFormat, ChannelType
from .image_buffer import ImageFormat, ImageBuffer, convert
from .image_view import (
    ImageView, BufferView, CropView, EdgeExtendView, EdgeExtension,
    as_view, crop, edge_extend
)
from .resource import (
    ImageResource, BufferResource, ImageFileResource, ResourceView,
    open_image, write_image
)

__all__ = [
    'PixelFormat', 'ChannelType', 'ImageFormat', 'ImageBuffer', 'convert',
    'ImageView', 'BufferView', 'CropView', 'EdgeExtendView', 'EdgeExtension',
    'as_view', 'crop', 'edge_extend',
    'ImageResource', 'BufferResource', 'ImageFileResource', 'ResourceView',
    'open_image', 'write_image'
]
