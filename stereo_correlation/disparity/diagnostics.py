"""
Correlation Diagnostics

Optional sinks that receive intermediate disparity maps. A sink is a side
channel only; nothing it does changes the correlation result.
"""

import logging
from pathlib import Path
from typing import List, Tuple

import cv2
import numpy as np

from .disparity_map import DisparityMap


def create_disparity_visualization(values: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """
    Create a colour-coded visualization of one disparity component.

    Args:
        values: Disparity values
        valid: Validity mask

    Returns:
        BGR image, JET colour map, invalid pixels black
    """
    disp_norm = np.zeros(values.shape, dtype=np.uint8)
    if np.any(valid):
        valid_disp = values[valid]
        min_disp = np.min(valid_disp)
        max_disp = np.max(valid_disp)
        if max_disp > min_disp:
            disp_norm[valid] = ((values[valid] - min_disp) / (max_disp - min_disp) * 255).astype(np.uint8)
        else:
            disp_norm[valid] = 128

    disparity_color = cv2.applyColorMap(disp_norm, cv2.COLORMAP_JET)
    disparity_color[~valid] = [0, 0, 0]
    return disparity_color


def create_consistency_visualization(before: DisparityMap, after: DisparityMap) -> np.ndarray:
    """
    Create visualization showing left-right check results.

    Args:
        before: Disparity map before the check
        after: Disparity map after the check

    Returns:
        BGR image (green=consistent, red=inconsistent, black=invalid)
    """
    visualization = np.zeros((before.rows, before.cols, 3), dtype=np.uint8)
    visualization[after.valid] = [0, 255, 0]
    visualization[before.valid & ~after.valid] = [0, 0, 255]
    return visualization


class DiagnosticsSink:
    """Receiver of intermediate correlator output. Methods default to no-ops."""

    def record_level(self, level: int, disparity: DisparityMap) -> None:
        """Integer disparities found at one pyramid level (0 is full resolution)."""

    def record_consistency(self, before: DisparityMap, after: DisparityMap) -> None:
        """Forward disparities before and after the left-right check."""

    def record_result(self, disparity: DisparityMap) -> None:
        """Final disparity map returned by the correlator."""


class MemoryDiagnostics(DiagnosticsSink):
    """Keeps copies of everything it receives."""

    def __init__(self):
        self.levels: List[Tuple[int, DisparityMap]] = []
        self.consistency: List[Tuple[DisparityMap, DisparityMap]] = []
        self.results: List[DisparityMap] = []

    def record_level(self, level: int, disparity: DisparityMap) -> None:
        self.levels.append((level, disparity.copy()))

    def record_consistency(self, before: DisparityMap, after: DisparityMap) -> None:
        self.consistency.append((before.copy(), after.copy()))

    def record_result(self, disparity: DisparityMap) -> None:
        self.results.append(disparity.copy())


class DebugImageWriter(DiagnosticsSink):
    """Writes colour-mapped disparity images to files starting with ``prefix``."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.logger = logging.getLogger(__name__)

    def _write(self, suffix: str, image: np.ndarray) -> None:
        path = Path(f"{self.prefix}{suffix}")
        path.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(path), image)
        self.logger.debug(f"Wrote debug image {path}")

    def record_level(self, level: int, disparity: DisparityMap) -> None:
        if disparity.cols == 0 or disparity.rows == 0:
            return
        self._write(f"level{level}-H.png", create_disparity_visualization(disparity.h, disparity.valid))
        self._write(f"level{level}-V.png", create_disparity_visualization(disparity.v, disparity.valid))

    def record_consistency(self, before: DisparityMap, after: DisparityMap) -> None:
        if before.cols == 0 or before.rows == 0:
            return
        self._write("lrc.png", create_consistency_visualization(before, after))

    def record_result(self, disparity: DisparityMap) -> None:
        if disparity.cols == 0 or disparity.rows == 0:
            return
        self._write("result-H.png", create_disparity_visualization(disparity.h, disparity.valid))
        self._write("result-V.png", create_disparity_visualization(disparity.v, disparity.valid))
