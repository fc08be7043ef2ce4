"""
Correlator View

A lazy disparity image over a pair of input views. Each materialization
pulls only the padded input regions it needs and runs the pyramid correlator
on them, so arbitrarily large images can be correlated tile by tile.
"""

import logging
import threading
from typing import Callable, Optional, Tuple

import numpy as np

from ..data_models import BBox, SearchRange, CorrelatorSettings
from ..exceptions import ArgumentError
from ..image.image_buffer import ImageBuffer, ImageFormat
from ..image.image_view import ImageView, EdgeExtension, as_view, edge_extend
from ..image.pixel_types import PixelFormat, ChannelType
from ..utils.config_manager import ConfigManager
from .diagnostics import DebugImageWriter
from .disparity_map import DisparityMap
from .pyramid_correlator import PyramidCorrelator

PreprocessFunc = Callable[[np.ndarray], np.ndarray]


class CorrelatorView(ImageView):
    """Disparity map of a stereo pair, computed per requested region."""

    def __init__(self,
                 left,
                 right,
                 preprocess: Optional[PreprocessFunc] = None,
                 settings: Optional[CorrelatorSettings] = None,
                 config_manager: Optional[ConfigManager] = None):
        """
        Initialize correlator view.

        Args:
            left: Left image view (or buffer/array)
            right: Right image view (or buffer/array)
            preprocess: Function applied to both padded input buffers
            settings: Correlator settings; take precedence over ``config_manager``
            config_manager: Configuration source used when ``settings`` is None
        """
        self.logger = logging.getLogger(__name__)
        self.left = as_view(left)
        self.right = as_view(right)

        if (self.left.cols, self.left.rows) != (self.right.cols, self.right.rows):
            raise ArgumentError(f"Input images differ in size: {self.left.cols}x{self.left.rows} "
                                f"vs {self.right.cols}x{self.right.rows}")
        for name, view in (('left', self.left), ('right', self.right)):
            if view.channels > 1:
                raise ArgumentError(f"The {name} image has {view.channels} channels; "
                                    f"correlation needs single-channel input")
            if view.planes > 1:
                raise ArgumentError(f"The {name} image has {view.planes} planes; "
                                    f"correlation needs single-plane input")

        if settings is None:
            settings = CorrelatorSettings.from_config(config_manager) if config_manager else CorrelatorSettings()
        settings.validate()
        self.preprocess = preprocess
        self._settings = settings
        self._lock = threading.Lock()

        self.logger.info(f"Correlator view initialized: {self.left.cols}x{self.left.rows}, "
                         f"search {settings.search_range}, kernel {settings.kernel_size}")

    @property
    def format(self) -> ImageFormat:
        return ImageFormat(self.left.cols, self.left.rows, 1, PixelFormat.DISPARITY, ChannelType.FLOAT32)

    # Configuration

    def settings(self) -> CorrelatorSettings:
        """Snapshot of the current configuration."""
        with self._lock:
            return self._settings

    def _update(self, **changes) -> None:
        with self._lock:
            updated = self._settings.updated(**changes)
            updated.validate()
            self._settings = updated
        self.logger.info(f"Correlator settings changed: {changes}")

    def set_search_range(self, search_range: SearchRange) -> None:
        self._update(search_range=search_range)

    def search_range(self) -> SearchRange:
        return self.settings().search_range

    def set_kernel_size(self, kernel_size: Tuple[int, int]) -> None:
        self._update(kernel_size=(int(kernel_size[0]), int(kernel_size[1])))

    def kernel_size(self) -> Tuple[int, int]:
        return self.settings().kernel_size

    def set_subpixel_options(self, do_h: bool, do_v: bool, do_affine: bool = False) -> None:
        self._update(do_h_subpixel=do_h, do_v_subpixel=do_v, do_affine_subpixel=do_affine)

    def subpixel_options(self) -> Tuple[bool, bool, bool]:
        settings = self.settings()
        return settings.do_h_subpixel, settings.do_v_subpixel, settings.do_affine_subpixel

    def set_cross_corr_threshold(self, threshold: float) -> None:
        self._update(cross_corr_threshold=float(threshold))

    def cross_corr_threshold(self) -> float:
        return self.settings().cross_corr_threshold

    def set_corr_score_threshold(self, threshold: float) -> None:
        self._update(corr_score_threshold=float(threshold))

    def corr_score_threshold(self) -> float:
        return self.settings().corr_score_threshold

    def set_debug_mode(self, debug_prefix: str) -> None:
        """Write per-level debug images under ``debug_prefix``; an empty prefix turns them off."""
        self._update(debug_prefix=debug_prefix or '')

    def debug_prefix(self) -> str:
        return self.settings().debug_prefix

    def set_edge_extension(self, mode: str) -> None:
        self._update(edge_extension=EdgeExtension(mode).value)

    # Materialization

    def materialize(self, bbox: BBox) -> ImageBuffer:
        """The region as a DISPARITY float32 buffer of (h, v, missing) pixels."""
        return self.materialize_disparity(bbox).as_buffer()

    def materialize_disparity(self, bbox: BBox) -> DisparityMap:
        """
        Correlate the region ``bbox`` of the output disparity image.

        Args:
            bbox: Output region; may extend beyond the image, where it is invalid

        Returns:
            DisparityMap of exactly ``bbox``'s size
        """
        settings = self.settings()
        settings.validate()
        if bbox.empty:
            return DisparityMap.allocate(bbox.width, bbox.height)

        sr = settings.search_range
        kx, ky = settings.kernel_size
        self.logger.info(f"Correlating block {bbox}")

        right_bbox = BBox(bbox.min_x + sr.min_h, bbox.min_y + sr.min_v,
                          bbox.max_x + sr.max_h, bbox.max_y + sr.max_v)
        left_bbox = BBox.from_size(bbox.min_x, bbox.min_y, right_bbox.width, right_bbox.height)
        right_bbox = right_bbox.expanded(kx, ky)
        left_bbox = left_bbox.expanded(kx, ky)
        self.logger.debug(f"Left region {left_bbox}, right region {right_bbox}")

        mode = EdgeExtension(settings.edge_extension)
        left_buffer = edge_extend(self.left, mode).materialize(left_bbox)
        right_buffer = edge_extend(self.right, mode).materialize(right_bbox)

        diagnostics = None
        if settings.debug_prefix:
            diagnostics = DebugImageWriter(f"{settings.debug_prefix}-{bbox.min_x}-{bbox.max_x}_"
                                           f"{bbox.min_y}-{bbox.max_y}-")

        local_range = SearchRange(0, 0, sr.width, sr.height)
        correlator = PyramidCorrelator.from_settings(settings, local_range, diagnostics)
        disparity = correlator(left_buffer, right_buffer, self.preprocess)
        disparity.translate_values(sr.min_h, sr.min_v)

        result = disparity.cropped(BBox.from_size(kx, ky, bbox.width, bbox.height)).copy()
        result.invalidate(self._outside_image(bbox, kx, ky))
        self.logger.debug(f"Block {bbox}: {result.valid_count()}/{bbox.width * bbox.height} valid")
        return result

    def _outside_image(self, bbox: BBox, kx: int, ky: int) -> np.ndarray:
        """Pixels of ``bbox`` whose left kernel window leaves the true image."""
        cols = np.arange(bbox.min_x, bbox.max_x)
        rows = np.arange(bbox.min_y, bbox.max_y)
        bad_cols = (cols < kx) | (cols >= self.cols - kx)
        bad_rows = (rows < ky) | (rows >= self.rows - ky)
        return bad_rows[:, None] | bad_cols[None, :]

    # Reporting

    def describe(self) -> str:
        settings = self.settings()
        return (f"CorrelatorView: search range {settings.search_range}, "
                f"kernel {settings.kernel_size[0]}x{settings.kernel_size[1]}, "
                f"subpixel h={settings.do_h_subpixel} v={settings.do_v_subpixel} "
                f"affine={settings.do_affine_subpixel}, "
                f"cross-corr threshold {settings.cross_corr_threshold}, "
                f"score threshold {settings.corr_score_threshold}, "
                f"metric {settings.cost_metric}")

    def __str__(self) -> str:
        return self.describe()
