"""
Left-Right Consistency (LRC) Validator

Validates forward (left-to-right) disparities against a backward
(right-to-left) search and removes occluded or ambiguous matches.
"""

import logging
from typing import Any, Dict, Tuple

import numpy as np

from ..exceptions import ArgumentError
from .disparity_map import DisparityMap


class LRCValidator:
    """Left-Right Consistency validator for two-dimensional disparity maps."""

    def __init__(self, threshold: float = 2.0):
        """
        Initialize LRC validator.

        Args:
            threshold: Largest allowed disagreement in pixels, per axis
        """
        self.logger = logging.getLogger(__name__)
        self.threshold = 0.0
        self.set_threshold(threshold)

    def validate_consistency(self,
                             forward: DisparityMap,
                             backward: DisparityMap) -> Tuple[DisparityMap, Dict[str, Any]]:
        """
        Perform left-right consistency check.

        A forward disparity d at pixel p survives when the backward map is
        valid at p + d and points back to within ``threshold`` of p.

        Args:
            forward: Left-to-right disparity map
            backward: Right-to-left disparity map over the same buffer

        Returns:
            Tuple of (validated copy of ``forward``, metrics)
        """
        if (forward.rows, forward.cols) != (backward.rows, backward.cols):
            raise ArgumentError("Forward and backward disparity maps must have same dimensions")

        height, width = forward.rows, forward.cols
        y_coords, x_coords = np.mgrid[0:height, 0:width]

        # Corresponding pixel in the right image
        target_x = x_coords + np.rint(forward.h).astype(np.int64)
        target_y = y_coords + np.rint(forward.v).astype(np.int64)
        in_bounds = (target_x >= 0) & (target_x < width) & (target_y >= 0) & (target_y < height)
        candidates = forward.valid & in_bounds

        consistency_mask = np.zeros((height, width), dtype=bool)
        if np.any(candidates):
            tx, ty = target_x[candidates], target_y[candidates]
            back_valid = backward.valid[ty, tx]
            agree_h = np.abs(forward.h[candidates] + backward.h[ty, tx]) <= self.threshold
            agree_v = np.abs(forward.v[candidates] + backward.v[ty, tx]) <= self.threshold
            consistency_mask[candidates] = back_valid & agree_h & agree_v

        validated = forward.copy()
        validated.invalidate(~consistency_mask)

        total_valid = forward.valid_count()
        total_consistent = int(np.count_nonzero(consistency_mask))
        metrics = {
            'total_pixels': forward.h.size,
            'valid_left_pixels': total_valid,
            'consistent_pixels': total_consistent,
            'consistency_ratio': total_consistent / total_valid if total_valid > 0 else 0.0,
            'error_rate': 1.0 - (total_consistent / total_valid) if total_valid > 0 else 1.0
        }

        self.logger.debug(f"LRC validation: {total_consistent}/{total_valid} pixels consistent "
                          f"({metrics['consistency_ratio']:.3f})")

        return validated, metrics

    def set_threshold(self, threshold: float) -> None:
        """
        Update LRC threshold.

        Args:
            threshold: New threshold in pixels
        """
        if threshold < 0:
            raise ArgumentError("LRC threshold must be non-negative")

        self.threshold = threshold
        self.logger.debug(f"LRC threshold set to {threshold} pixels")
