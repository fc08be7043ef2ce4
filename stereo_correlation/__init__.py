"""
Out-of-core Multi-resolution Stereo Correlation

Produces dense two-dimensional disparity maps for co-registered image pairs
without holding either input or the output in memory at once.

This package implements:
- Runtime-typed pixel buffers with a single conversion primitive
- Lazy, composable image views (crop, edge extension, file resources)
- Coarse-to-fine pyramid correlation with left-right consistency checking
- Parabolic and affine subpixel refinement
- A correlator view that computes any requested tile on demand
"""

__version__ = "1.0.0"
__author__ = "Stereo Correlation Team"

from .exceptions import StereoCorrelationError, ArgumentError, FormatError, NoImplError
from .data_models import BBox, SearchRange, DisparityValue, CorrelatorSettings
from .image import (
    PixelFormat, ChannelType, ImageFormat, ImageBuffer, convert,
    ImageView, BufferView, CropView, EdgeExtendView, EdgeExtension, crop, edge_extend,
    ImageResource, ImageFileResource, ResourceView, open_image
)
from .disparity import DisparityMap, PyramidCorrelator, CorrelatorView, DiagnosticsSink
from .tiling import image_blocks, rasterize_disparity

__all__ = [
    # Errors
    'StereoCorrelationError', 'ArgumentError', 'FormatError', 'NoImplError',
    # Data Models
    'BBox', 'SearchRange', 'DisparityValue', 'CorrelatorSettings',
    # Images
    'PixelFormat', 'ChannelType', 'ImageFormat', 'ImageBuffer', 'convert',
    'ImageView', 'BufferView', 'CropView', 'EdgeExtendView', 'EdgeExtension', 'crop', 'edge_extend',
    'ImageResource', 'ImageFileResource', 'ResourceView', 'open_image',
    # Correlation
    'DisparityMap', 'PyramidCorrelator', 'CorrelatorView', 'DiagnosticsSink',
    'image_blocks', 'rasterize_disparity'
]
