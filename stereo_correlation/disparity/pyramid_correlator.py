"""
Pyramid Correlator

Coarse-to-fine window correlation over a Gaussian pyramid. The full search
range is only explored at the coarsest level; every finer level refines a
small neighbourhood around the upsampled coarse result.
"""

import logging
import math
from typing import Callable, List, Optional, Tuple, Union

import cv2
import numpy as np
from scipy import ndimage

from ..data_models import SearchRange, CorrelatorSettings
from ..exceptions import ArgumentError
from ..image.image_buffer import ImageBuffer
from .consistency import LRCValidator
from .diagnostics import DiagnosticsSink
from .disparity_map import DisparityMap
from .subpixel import refine_affine, refine_parabolic
from .window_matcher import SearchResult, WindowMatcher

PreprocessFunc = Callable[[np.ndarray], np.ndarray]


class PyramidCorrelator:
    """Integer pyramid search, left-right check, ambiguity rejection and subpixel refinement."""

    def __init__(self,
                 search_range: SearchRange,
                 kernel_size: Tuple[int, int] = (24, 24),
                 cross_corr_threshold: float = 2.0,
                 corr_score_threshold: float = 1.3,
                 do_h_subpixel: bool = True,
                 do_v_subpixel: bool = True,
                 do_affine_subpixel: bool = False,
                 cost_metric: str = 'absolute_difference',
                 refinement_radius: int = 2,
                 max_coarse_search: int = 8,
                 min_pyramid_levels: int = 0,
                 affine_iterations: int = 10,
                 diagnostics: Optional[DiagnosticsSink] = None):
        """
        Initialize pyramid correlator.

        Args:
            search_range: Inclusive disparity limits, relative to the input buffers
            kernel_size: Kernel half-width and half-height; windows are (2k+1) wide
            cross_corr_threshold: Left-right disagreement tolerance in pixels
            corr_score_threshold: Required ratio between runner-up and best cost
            do_h_subpixel: Parabolic refinement of the horizontal component
            do_v_subpixel: Parabolic refinement of the vertical component
            do_affine_subpixel: Affine refinement, replaces the parabolic fits
            cost_metric: One of absolute_difference, squared_difference, ncc
            refinement_radius: Per-level search radius around the coarse seed
            max_coarse_search: Largest search span handled without reduction
            min_pyramid_levels: Lower bound on the number of reductions
            affine_iterations: Gauss-Newton iterations of the affine fit
            diagnostics: Receiver of intermediate maps
        """
        self.logger = logging.getLogger(__name__)
        kx, ky = kernel_size
        if kx < 1 or ky < 1:
            raise ArgumentError(f"Kernel size must be positive, got {kernel_size}")
        if refinement_radius < 1:
            raise ArgumentError("Refinement radius must be at least 1")

        self.search_range = search_range
        self.kernel_size = (int(kx), int(ky))
        self.corr_score_threshold = corr_score_threshold
        self.do_h_subpixel = do_h_subpixel
        self.do_v_subpixel = do_v_subpixel
        self.do_affine_subpixel = do_affine_subpixel
        self.cost_metric = cost_metric
        self.refinement_radius = refinement_radius
        self.max_coarse_search = max_coarse_search
        self.min_pyramid_levels = min_pyramid_levels
        self.affine_iterations = affine_iterations
        self.diagnostics = diagnostics
        self.lrc_validator = LRCValidator(cross_corr_threshold)

    @classmethod
    def from_settings(cls, settings: CorrelatorSettings, search_range: Optional[SearchRange] = None,
                      diagnostics: Optional[DiagnosticsSink] = None) -> 'PyramidCorrelator':
        """Correlator configured from a settings snapshot, optionally with a different range."""
        return cls(search_range or settings.search_range,
                   kernel_size=settings.kernel_size,
                   cross_corr_threshold=settings.cross_corr_threshold,
                   corr_score_threshold=settings.corr_score_threshold,
                   do_h_subpixel=settings.do_h_subpixel,
                   do_v_subpixel=settings.do_v_subpixel,
                   do_affine_subpixel=settings.do_affine_subpixel,
                   cost_metric=settings.cost_metric,
                   refinement_radius=settings.refinement_radius,
                   max_coarse_search=settings.max_coarse_search,
                   min_pyramid_levels=settings.min_pyramid_levels,
                   affine_iterations=settings.affine_iterations,
                   diagnostics=diagnostics)

    def set_diagnostics(self, diagnostics: Optional[DiagnosticsSink]) -> None:
        self.diagnostics = diagnostics

    def pyramid_levels(self, shape: Tuple[int, int], search_range: SearchRange) -> int:
        """
        Number of pyramid reductions for an image and search range.

        Args:
            shape: (rows, cols) of the full resolution image
            search_range: Full resolution search range

        Returns:
            Reductions such that the coarse search span stays near
            ``max_coarse_search`` and the coarsest image still holds a window
            together with its whole scaled search span
        """
        span = max(search_range.width, search_range.height)
        levels = 0
        if span > self.max_coarse_search:
            levels = int(math.ceil(math.log2(span / self.max_coarse_search)))
        levels = max(levels, self.min_pyramid_levels)

        rows, cols = shape
        fitting = 0
        while fitting < levels:
            rows, cols = (rows + 1) // 2, (cols + 1) // 2
            kx, ky = self.level_kernel(fitting + 1)
            level_range = search_range.scaled_down(fitting + 1)
            # One column and row of slack for rounding of the scaled range
            if rows < 2 * ky + level_range.height + 3 or cols < 2 * kx + level_range.width + 3:
                break
            fitting += 1
        return fitting

    def level_kernel(self, level: int) -> Tuple[int, int]:
        """Kernel half-size at a pyramid level, covering the same scene area as the full kernel."""
        factor = 2 ** level
        kx, ky = self.kernel_size
        return max(1, math.ceil(kx / factor)), max(1, math.ceil(ky / factor))

    def __call__(self, left: Union[ImageBuffer, np.ndarray], right: Union[ImageBuffer, np.ndarray],
                 preprocess: Optional[PreprocessFunc] = None) -> DisparityMap:
        """
        Correlate two equally sized single-channel images.

        Args:
            left: Left image buffer
            right: Right image buffer
            preprocess: Function applied to float32 copies of both images

        Returns:
            DisparityMap of the input size
        """
        left_image = self._prepare(left, preprocess)
        right_image = self._prepare(right, preprocess)
        if left_image.shape != right_image.shape:
            raise ArgumentError(f"Correlator inputs differ in size: {left_image.shape} vs {right_image.shape}")

        rows, cols = left_image.shape
        kx, ky = self.kernel_size
        if rows < 2 * ky + 1 or cols < 2 * kx + 1:
            self.logger.debug(f"Buffer {cols}x{rows} cannot hold a {2 * kx + 1}x{2 * ky + 1} window")
            result = DisparityMap.allocate(cols, rows)
            self._record_result(result)
            return result

        forward_result, matcher = self._pyramid_search(left_image, right_image, self.search_range, True)
        forward = self._to_disparity_map(forward_result)
        backward_result, _ = self._pyramid_search(right_image, left_image, self.search_range.negated(), False)
        backward = self._to_disparity_map(backward_result)

        disparity, metrics = self.lrc_validator.validate_consistency(forward, backward)
        if self.diagnostics is not None:
            self.diagnostics.record_consistency(forward, disparity)

        if self.corr_score_threshold > 1.0:
            ambiguous = disparity.valid & (forward_result.second_cost <=
                                           self.corr_score_threshold * forward_result.cost)
            disparity.invalidate(ambiguous)
            self.logger.debug(f"Rejected {int(np.count_nonzero(ambiguous))} ambiguous matches")

        if self.do_affine_subpixel:
            disparity = refine_affine(left_image, right_image, disparity, self.kernel_size,
                                      self.affine_iterations)
        elif self.do_h_subpixel or self.do_v_subpixel:
            disparity = refine_parabolic(matcher, disparity, self.do_h_subpixel, self.do_v_subpixel)

        self.logger.debug(f"Correlated {cols}x{rows} buffer: {disparity.valid_count()} valid pixels, "
                          f"LRC ratio {metrics['consistency_ratio']:.3f}")
        self._record_result(disparity)
        return disparity

    def _prepare(self, image: Union[ImageBuffer, np.ndarray], preprocess: Optional[PreprocessFunc]) -> np.ndarray:
        """Float32 copy of a single-channel image, preprocessed."""
        if isinstance(image, ImageBuffer):
            if image.planes != 1 or image.channels != 1:
                raise ArgumentError("Correlator inputs must have one plane and one channel")
            array = image.as_array()
        else:
            array = np.asarray(image)
            if array.ndim == 3 and array.shape[2] == 1:
                array = array[..., 0]
            if array.ndim != 2:
                raise ArgumentError("Correlator inputs must be single-channel 2-D images")

        working = array.astype(np.float32, copy=True)
        if preprocess is not None:
            working = np.asarray(preprocess(working), dtype=np.float32)
            if working.shape != array.shape:
                raise ArgumentError("Preprocessing must not change the image size")
        return working

    def _pyramid_search(self, left: np.ndarray, right: np.ndarray, search_range: SearchRange,
                        record: bool) -> Tuple[SearchResult, WindowMatcher]:
        """
        Integer coarse-to-fine search.

        Returns:
            Tuple of (full resolution search result, full resolution matcher)
        """
        levels = self.pyramid_levels(left.shape, search_range)
        left_pyramid: List[np.ndarray] = [left]
        right_pyramid: List[np.ndarray] = [right]
        for _ in range(levels):
            left_pyramid.append(cv2.pyrDown(left_pyramid[-1]))
            right_pyramid.append(cv2.pyrDown(right_pyramid[-1]))
        self.logger.debug(f"Pyramid of {levels} reductions for range {search_range}, coarsest "
                          f"{left_pyramid[-1].shape[1]}x{left_pyramid[-1].shape[0]}")

        # Coarsest level covers the whole scaled range
        level_range = search_range.scaled_down(levels)
        center_h = (level_range.min_h + level_range.max_h) // 2
        center_v = (level_range.min_v + level_range.max_v) // 2
        shape = left_pyramid[levels].shape
        matcher = WindowMatcher(left_pyramid[levels], right_pyramid[levels], self.level_kernel(levels),
                                self.cost_metric)
        # Coarse winners become seeds, so truncated candidate sets must not produce one
        result = matcher.search(np.full(shape, center_h, dtype=np.int32),
                                np.full(shape, center_v, dtype=np.int32),
                                level_range.max_h - center_h, level_range.max_v - center_v,
                                level_range, require_complete=levels > 0)
        self._record_level(levels, result, record)

        for level in range(levels - 1, -1, -1):
            level_range = search_range.scaled_down(level)
            matcher = WindowMatcher(left_pyramid[level], right_pyramid[level], self.level_kernel(level),
                                    self.cost_metric)
            seeds = self._propagate(result, left_pyramid[level].shape, level_range)
            if seeds is None:
                shape = left_pyramid[level].shape
                result = SearchResult(np.zeros(shape, dtype=np.int32), np.zeros(shape, dtype=np.int32),
                                      np.full(shape, np.inf, dtype=np.float32),
                                      np.full(shape, np.inf, dtype=np.float32))
            else:
                result = matcher.search(seeds[0], seeds[1], self.refinement_radius, self.refinement_radius,
                                        level_range, require_complete=level > 0)
            self._record_level(level, result, record)

        return result, matcher

    def _propagate(self, coarse: SearchResult, shape: Tuple[int, int],
                   level_range: SearchRange) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """
        Seeds for the next finer level from a coarse result.

        Invalid coarse pixels take the disparity of the nearest valid one.

        Returns:
            Tuple of (seed_h, seed_v) at ``shape``, or None when no coarse pixel is valid
        """
        valid = coarse.valid
        if not valid.any():
            return None

        coarse_h, coarse_v = coarse.h, coarse.v
        if not valid.all():
            _, (nearest_y, nearest_x) = ndimage.distance_transform_edt(~valid, return_indices=True)
            coarse_h = coarse_h[nearest_y, nearest_x]
            coarse_v = coarse_v[nearest_y, nearest_x]

        rows, cols = shape
        source_y = np.minimum(np.arange(rows) // 2, coarse_h.shape[0] - 1)
        source_x = np.minimum(np.arange(cols) // 2, coarse_h.shape[1] - 1)
        seed_h = 2 * coarse_h[np.ix_(source_y, source_x)]
        seed_v = 2 * coarse_v[np.ix_(source_y, source_x)]
        seed_h = np.clip(seed_h, level_range.min_h, level_range.max_h).astype(np.int32)
        seed_v = np.clip(seed_v, level_range.min_v, level_range.max_v).astype(np.int32)
        return seed_h, seed_v

    @staticmethod
    def _to_disparity_map(result: SearchResult) -> DisparityMap:
        valid = result.valid
        return DisparityMap(np.where(valid, result.h, 0).astype(np.float32),
                            np.where(valid, result.v, 0).astype(np.float32),
                            valid.copy(),
                            result.cost.astype(np.float32))

    def _record_level(self, level: int, result: SearchResult, record: bool) -> None:
        if record and self.diagnostics is not None:
            self.diagnostics.record_level(level, self._to_disparity_map(result))

    def _record_result(self, disparity: DisparityMap) -> None:
        if self.diagnostics is not None:
            self.diagnostics.record_result(disparity)
