"""
Window Matching

Scores kernel windows of the left image against displaced windows of the
right image. All metrics are costs: lower is better. A left pixel at (x, y)
with disparity (h, v) is matched against the right pixel at (x + h, y + v).
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from ..data_models import SearchRange, COST_METRICS
from ..exceptions import ArgumentError

# Windows whose variance falls below this cannot be scored with NCC
NCC_MIN_VARIANCE = 1e-6


@dataclass
class SearchResult:
    """Per-pixel outcome of a window search."""
    h: np.ndarray            # int32 best horizontal disparity
    v: np.ndarray            # int32 best vertical disparity
    cost: np.ndarray         # float32 best cost, inf when nothing matched
    second_cost: np.ndarray  # float32 best cost among candidates not adjacent to the winner

    @property
    def valid(self) -> np.ndarray:
        return np.isfinite(self.cost)


class WindowMatcher:
    """Computes window costs between two equally sized float32 images."""

    def __init__(self, left: np.ndarray, right: np.ndarray, kernel_size: Tuple[int, int],
                 metric: str = 'absolute_difference'):
        if left.shape != right.shape or left.ndim != 2:
            raise ArgumentError("Window matching needs two 2-D images of the same size")
        if metric not in COST_METRICS:
            raise ArgumentError(f"Unknown cost metric '{metric}'")
        self.left = left.astype(np.float32, copy=False)
        self.right = right.astype(np.float32, copy=False)
        self.kx, self.ky = kernel_size
        self.metric = metric
        self.shape = left.shape
        self.window = (2 * self.kx + 1, 2 * self.ky + 1)

        if metric == 'ncc':
            self._left_mean = self._box(self.left)
            self._left_var = self._box(self.left * self.left) - self._left_mean ** 2

    def _box(self, image: np.ndarray) -> np.ndarray:
        """Mean over the kernel window centred on each pixel."""
        return cv2.boxFilter(image, -1, self.window, normalize=True, borderType=cv2.BORDER_CONSTANT)

    def _window_fits(self, dh: int, dv: int) -> np.ndarray:
        """Centres whose left window and displaced right window both lie inside the buffer."""
        rows, cols = self.shape
        fits = np.zeros(self.shape, dtype=bool)
        y0, y1 = max(self.ky, self.ky - dv), min(rows - self.ky, rows - self.ky - dv)
        x0, x1 = max(self.kx, self.kx - dh), min(cols - self.kx, cols - self.kx - dh)
        if y1 > y0 and x1 > x0:
            fits[y0:y1, x0:x1] = True
        return fits

    def cost_map(self, dh: int, dv: int) -> np.ndarray:
        """
        Cost of every left window against the right window displaced by (dh, dv).

        Returns:
            float32 array of the image size; inf where either window leaves the buffer
        """
        fits = self._window_fits(dh, dv)
        if not fits.any():
            return np.full(self.shape, np.inf, dtype=np.float32)

        rows, cols = self.shape
        shifted = np.zeros(self.shape, dtype=np.float32)
        y0, y1 = max(0, -dv), min(rows, rows - dv)
        x0, x1 = max(0, -dh), min(cols, cols - dh)
        shifted[y0:y1, x0:x1] = self.right[y0 + dv:y1 + dv, x0 + dh:x1 + dh]

        if self.metric == 'absolute_difference':
            cost = self._box(np.abs(self.left - shifted))
        elif self.metric == 'squared_difference':
            diff = self.left - shifted
            cost = self._box(diff * diff)
        else:
            right_mean = self._box(shifted)
            right_var = self._box(shifted * shifted) - right_mean ** 2
            covariance = self._box(self.left * shifted) - self._left_mean * right_mean
            denominator = np.sqrt(np.maximum(self._left_var * right_var, 0))
            textured = (self._left_var > NCC_MIN_VARIANCE) & (right_var > NCC_MIN_VARIANCE)
            with np.errstate(divide='ignore', invalid='ignore'):
                ncc = np.where(textured, covariance / denominator, np.nan)
            cost = np.where(textured, 1.0 - np.clip(ncc, -1.0, 1.0), np.inf).astype(np.float32)
            fits &= textured

        cost = np.maximum(cost, 0).astype(np.float32)
        cost[~fits] = np.inf
        return cost

    def search(self, center_h: np.ndarray, center_v: np.ndarray, radius_h: int, radius_v: int,
               search_range: Optional[SearchRange] = None,
               mask: Optional[np.ndarray] = None,
               require_complete: bool = False) -> SearchResult:
        """
        Evaluate the per-pixel candidate neighbourhood around given centres.

        Args:
            center_h: int array, horizontal centre of each pixel's candidates
            center_v: int array, vertical centre of each pixel's candidates
            radius_h: Candidates span center_h - radius_h .. center_h + radius_h
            radius_v: Candidates span center_v - radius_v .. center_v + radius_v
            search_range: Candidates outside this range are skipped
            mask: Pixels to evaluate; others come back invalid
            require_complete: Pixels with any candidate window off the buffer come back
                invalid instead of taking the best of the remaining candidates

        Returns:
            SearchResult with the winner of every pixel
        """
        if mask is None:
            mask = np.ones(self.shape, dtype=bool)
        center_h = center_h.astype(np.int32)
        center_v = center_v.astype(np.int32)
        span_h, span_v = 2 * radius_h + 1, 2 * radius_v + 1
        volume = np.full((span_v * span_h,) + self.shape, np.inf, dtype=np.float32)
        incomplete = np.zeros(self.shape, dtype=bool)

        if mask.any():
            lo_h, hi_h = int(center_h[mask].min()) - radius_h, int(center_h[mask].max()) + radius_h
            lo_v, hi_v = int(center_v[mask].min()) - radius_v, int(center_v[mask].max()) + radius_v
            if search_range is not None:
                lo_h, hi_h = max(lo_h, search_range.min_h), min(hi_h, search_range.max_h)
                lo_v, hi_v = max(lo_v, search_range.min_v), min(hi_v, search_range.max_v)

            ys, xs = np.nonzero(mask)
            pixel_h, pixel_v = center_h[ys, xs], center_v[ys, xs]
            for dv in range(lo_v, hi_v + 1):
                offset_v = dv - pixel_v
                near_v = np.abs(offset_v) <= radius_v
                if not near_v.any():
                    continue
                for dh in range(lo_h, hi_h + 1):
                    offset_h = dh - pixel_h
                    selected = near_v & (np.abs(offset_h) <= radius_h)
                    if not selected.any():
                        continue
                    cost = self.cost_map(dh, dv)
                    if require_complete:
                        fits = self._window_fits(dh, dv)
                        incomplete[ys[selected], xs[selected]] |= ~fits[ys[selected], xs[selected]]
                    index = (offset_v[selected] + radius_v) * span_h + offset_h[selected] + radius_h
                    volume[index, ys[selected], xs[selected]] = cost[ys[selected], xs[selected]]

        best_index = np.argmin(volume, axis=0)
        best_cost = np.take_along_axis(volume, best_index[None], axis=0)[0]
        best_cost[incomplete] = np.inf
        best_offset_h = best_index % span_h - radius_h
        best_offset_v = best_index // span_h - radius_v

        # Candidates at least two steps from the winner in either direction
        grid_h = (np.arange(volume.shape[0]) % span_h - radius_h)[:, None, None]
        grid_v = (np.arange(volume.shape[0]) // span_h - radius_v)[:, None, None]
        distant = np.maximum(np.abs(grid_h - best_offset_h[None]), np.abs(grid_v - best_offset_v[None])) >= 2
        second_cost = np.where(distant, volume, np.inf).min(axis=0)

        valid = np.isfinite(best_cost)
        h = np.where(valid, center_h + best_offset_h, 0).astype(np.int32)
        v = np.where(valid, center_v + best_offset_v, 0).astype(np.int32)
        return SearchResult(h, v, best_cost.astype(np.float32), second_cost.astype(np.float32))

    def costs_for(self, disp_h: np.ndarray, disp_v: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Cost of each masked pixel at its own integer disparity."""
        return self.search(disp_h, disp_v, 0, 0, None, mask).cost
