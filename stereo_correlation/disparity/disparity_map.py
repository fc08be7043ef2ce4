"""
Disparity Maps

Dense per-pixel disparities with explicit validity. Offsets of invalid pixels
are held at zero and carry no meaning.
"""

from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..data_models import BBox, DisparityValue
from ..exceptions import ArgumentError
from ..image.image_buffer import ImageBuffer
from ..image.pixel_types import PixelFormat


class DisparityMap:
    """Horizontal/vertical offsets, validity mask and best-match cost of a region."""

    def __init__(self, h: np.ndarray, v: np.ndarray, valid: np.ndarray, score: Optional[np.ndarray] = None):
        if not (h.shape == v.shape == valid.shape) or h.ndim != 2:
            raise ArgumentError("Disparity components must be 2-D arrays of the same shape")
        self.h = h
        self.v = v
        self.valid = valid
        self.score = score if score is not None else np.full(h.shape, np.inf, dtype=np.float32)

    @classmethod
    def allocate(cls, cols: int, rows: int) -> 'DisparityMap':
        """An all-invalid map."""
        return cls(np.zeros((rows, cols), dtype=np.float32),
                   np.zeros((rows, cols), dtype=np.float32),
                   np.zeros((rows, cols), dtype=bool),
                   np.full((rows, cols), np.inf, dtype=np.float32))

    @property
    def cols(self) -> int:
        return self.h.shape[1]

    @property
    def rows(self) -> int:
        return self.h.shape[0]

    @property
    def bbox(self) -> BBox:
        return BBox(0, 0, self.cols, self.rows)

    def __getitem__(self, position: Tuple[int, int]) -> DisparityValue:
        col, row = position
        if not self.valid[row, col]:
            return DisparityValue(0.0, 0.0, False, None)
        return DisparityValue(float(self.h[row, col]), float(self.v[row, col]), True,
                              float(self.score[row, col]))

    def missing(self) -> np.ndarray:
        return ~self.valid

    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid))

    def cropped(self, bbox: BBox) -> 'DisparityMap':
        """A map sharing memory with this one, restricted to ``bbox``."""
        if not self.bbox.contains(bbox):
            raise ArgumentError(f"Crop region {bbox} is outside the disparity map {self.bbox}")
        rows, cols = bbox.to_slices()
        return DisparityMap(self.h[rows, cols], self.v[rows, cols], self.valid[rows, cols],
                            self.score[rows, cols])

    def copy(self) -> 'DisparityMap':
        return DisparityMap(self.h.copy(), self.v.copy(), self.valid.copy(), self.score.copy())

    def invalidate(self, mask: np.ndarray) -> None:
        """Mark the pixels under ``mask`` invalid, in place."""
        self.valid[mask] = False
        self.h[mask] = 0
        self.v[mask] = 0

    def translate_values(self, dh: float, dv: float) -> None:
        """Add a constant offset to every valid disparity, in place."""
        self.h[self.valid] += dh
        self.v[self.valid] += dv

    def paste(self, other: 'DisparityMap', col: int, row: int) -> None:
        """Copy ``other`` into this map with its origin at (col, row)."""
        target = BBox.from_size(col, row, other.cols, other.rows)
        rows, cols = target.to_slices()
        self.h[rows, cols] = other.h
        self.v[rows, cols] = other.v
        self.valid[rows, cols] = other.valid
        self.score[rows, cols] = other.score

    def as_buffer(self) -> ImageBuffer:
        """Float32 buffer of (h, v, missing) pixels for generic image consumers."""
        data = np.stack([self.h, self.v, (~self.valid).astype(np.float32)], axis=-1)
        return ImageBuffer(data[None].astype(np.float32), PixelFormat.DISPARITY)

    @classmethod
    def from_buffer(cls, buffer: ImageBuffer) -> 'DisparityMap':
        if buffer.pixel_format is not PixelFormat.DISPARITY or buffer.planes != 1:
            raise ArgumentError("Expected a single-plane disparity buffer")
        data = buffer.data[0].astype(np.float32)
        valid = data[..., 2] == 0
        result = cls(data[..., 0].copy(), data[..., 1].copy(), valid)
        result.invalidate(~valid)
        return result

    def equals(self, other: 'DisparityMap', atol: float = 0.0) -> bool:
        """Same validity everywhere and matching offsets where valid."""
        if self.h.shape != other.h.shape or not np.array_equal(self.valid, other.valid):
            return False
        return (np.allclose(self.h[self.valid], other.h[other.valid], atol=atol, rtol=0) and
                np.allclose(self.v[self.valid], other.v[other.valid], atol=atol, rtol=0))

    def statistics(self) -> Dict[str, Any]:
        """Quality metrics of the map."""
        total = self.h.size
        valid = self.valid_count()
        metrics = {
            'total_pixels': total,
            'valid_pixels': valid,
            'valid_pixel_ratio': valid / total if total > 0 else 0.0,
        }
        for name, values in (('h', self.h), ('v', self.v)):
            selected = values[self.valid]
            if len(selected) > 0:
                metrics.update({
                    f'mean_{name}': float(np.mean(selected)),
                    f'std_{name}': float(np.std(selected)),
                    f'min_{name}': float(np.min(selected)),
                    f'max_{name}': float(np.max(selected)),
                })
            else:
                metrics.update({f'mean_{name}': 0.0, f'std_{name}': 0.0,
                                f'min_{name}': 0.0, f'max_{name}': 0.0})
        return metrics

    def __repr__(self) -> str:
        return f"DisparityMap({self.cols}x{self.rows}, {self.valid_count()} valid)"
