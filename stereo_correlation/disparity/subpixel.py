"""
Subpixel Disparity Refinement

Parabola fits to the costs around the integer optimum, or a per-pixel affine
warp fit between the two kernel windows.
"""

import logging
from typing import Tuple

import cv2
import numpy as np

from .disparity_map import DisparityMap
from .window_matcher import WindowMatcher

logger = logging.getLogger(__name__)

# Affine fits stop once the translation update is smaller than this
AFFINE_CONVERGENCE = 1e-3


def parabola_offsets(c_minus: np.ndarray, c_zero: np.ndarray, c_plus: np.ndarray) -> np.ndarray:
    """
    Vertex of the parabola through costs sampled at -1, 0 and +1.

    Returns:
        Offsets in [-0.5, 0.5]; 0 where the samples are missing or not convex
    """
    c_minus, c_zero, c_plus = (np.asarray(c, dtype=np.float64) for c in (c_minus, c_zero, c_plus))
    # Missing samples are inf, so the arithmetic below may see inf - inf
    with np.errstate(divide='ignore', invalid='ignore'):
        curvature = c_minus - 2.0 * c_zero + c_plus
        usable = np.isfinite(c_minus) & np.isfinite(c_zero) & np.isfinite(c_plus) & (curvature > 1e-12)
        offsets = np.where(usable, (c_minus - c_plus) / (2.0 * curvature), 0.0)
    return np.clip(offsets, -0.5, 0.5).astype(np.float32)


def refine_parabolic(matcher: WindowMatcher, disparity: DisparityMap,
                     do_h: bool = True, do_v: bool = True) -> DisparityMap:
    """
    Add fractional offsets along the enabled axes to every valid integer disparity.

    Args:
        matcher: Matcher over the images the integer disparities came from
        disparity: Integer disparity map with best costs in ``score``
        do_h: Refine the horizontal component
        do_v: Refine the vertical component

    Returns:
        Refined copy of ``disparity``
    """
    refined = disparity.copy()
    valid = disparity.valid
    if not valid.any():
        return refined
    h = np.rint(disparity.h).astype(np.int32)
    v = np.rint(disparity.v).astype(np.int32)

    if do_h:
        c_minus = matcher.costs_for(h - 1, v, valid)
        c_plus = matcher.costs_for(h + 1, v, valid)
        offsets = parabola_offsets(c_minus, disparity.score, c_plus)
        refined.h[valid] += offsets[valid]
    if do_v:
        c_minus = matcher.costs_for(h, v - 1, valid)
        c_plus = matcher.costs_for(h, v + 1, valid)
        offsets = parabola_offsets(c_minus, disparity.score, c_plus)
        refined.v[valid] += offsets[valid]
    return refined


def refine_affine(left: np.ndarray, right: np.ndarray, disparity: DisparityMap,
                  kernel_size: Tuple[int, int], iterations: int = 10) -> DisparityMap:
    """
    Estimate a local affine warp between each pair of kernel windows.

    The warp maps left window offsets (x, y) to right image positions
    (px + h + a*x + b*y, py + v + c*x + d*y). Only the translation (h, v) is
    reported. Fits that are singular or drift more than a pixel from the
    integer start keep the integer disparity.

    Args:
        left: Preprocessed left image (float32)
        right: Preprocessed right image (float32)
        disparity: Integer disparity map
        kernel_size: Kernel half-width and half-height
        iterations: Maximum Gauss-Newton iterations per pixel

    Returns:
        Refined copy of ``disparity``
    """
    refined = disparity.copy()
    kx, ky = kernel_size
    left = left.astype(np.float32, copy=False)
    right = right.astype(np.float32, copy=False)
    grad_x = cv2.Sobel(right, cv2.CV_32F, 1, 0, ksize=3) / 8.0
    grad_y = cv2.Sobel(right, cv2.CV_32F, 0, 1, ksize=3) / 8.0
    offset_y, offset_x = np.mgrid[-ky:ky + 1, -kx:kx + 1].astype(np.float32)
    ox, oy = offset_x.ravel(), offset_y.ravel()

    rejected = 0
    for row, col in zip(*np.nonzero(disparity.valid)):
        template = left[row - ky:row + ky + 1, col - kx:col + kx + 1].ravel()
        start = np.array([disparity.h[row, col], disparity.v[row, col]], dtype=np.float64)
        params = np.array([start[0], start[1], 0.0, 0.0, 0.0, 0.0])
        converged = True

        for _ in range(iterations):
            map_x = (col + offset_x + params[0] + params[2] * offset_x + params[3] * offset_y).astype(np.float32)
            map_y = (row + offset_y + params[1] + params[4] * offset_x + params[5] * offset_y).astype(np.float32)
            warped = cv2.remap(right, map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE).ravel()
            gx = cv2.remap(grad_x, map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE).ravel()
            gy = cv2.remap(grad_y, map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE).ravel()

            jacobian = np.stack([gx, gy, gx * ox, gx * oy, gy * ox, gy * oy], axis=1).astype(np.float64)
            error = (template - warped).astype(np.float64)
            try:
                delta = np.linalg.solve(jacobian.T @ jacobian, jacobian.T @ error)
            except np.linalg.LinAlgError:
                converged = False
                break
            params += delta
            if abs(delta[0]) < AFFINE_CONVERGENCE and abs(delta[1]) < AFFINE_CONVERGENCE:
                break

        translation = params[:2]
        if not converged or not np.all(np.isfinite(params)) or np.any(np.abs(translation - start) > 1.0):
            rejected += 1
            continue
        refined.h[row, col] = translation[0]
        refined.v[row, col] = translation[1]

    if rejected:
        logger.debug(f"Affine subpixel: {rejected} pixels kept their integer disparity")
    return refined
