"""
Stereo Preprocessing Filters

Functions applied to both correlator inputs before matching. Every filter
takes and returns a single-channel float32 array and never modifies its input.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from ..exceptions import ArgumentError


class NullFilter:
    """Pass images through unchanged."""

    def __call__(self, image: np.ndarray) -> np.ndarray:
        return image.astype(np.float32, copy=True)

    def __repr__(self) -> str:
        return "NullFilter()"


class BlurFilter:
    """Gaussian smoothing."""

    def __init__(self, sigma: float = 1.5):
        if sigma <= 0:
            raise ArgumentError("Blur sigma must be positive")
        self.sigma = sigma

    def __call__(self, image: np.ndarray) -> np.ndarray:
        return cv2.GaussianBlur(image.astype(np.float32), (0, 0), self.sigma,
                                borderType=cv2.BORDER_REPLICATE)

    def __repr__(self) -> str:
        return f"BlurFilter(sigma={self.sigma})"


class LogFilter(BlurFilter):
    """Laplacian of Gaussian; removes brightness offsets between the images."""

    def __call__(self, image: np.ndarray) -> np.ndarray:
        blurred = super().__call__(image)
        return cv2.Laplacian(blurred, cv2.CV_32F, ksize=3, borderType=cv2.BORDER_REPLICATE)

    def __repr__(self) -> str:
        return f"LogFilter(sigma={self.sigma})"


class SlogFilter(LogFilter):
    """Sign of the Laplacian of Gaussian (+1 / -1)."""

    def __call__(self, image: np.ndarray) -> np.ndarray:
        log = super().__call__(image)
        return np.where(log > 0, 1.0, -1.0).astype(np.float32)

    def __repr__(self) -> str:
        return f"SlogFilter(sigma={self.sigma})"


class NormalizeFilter:
    """Zero mean, unit variance over the whole tile."""

    def __call__(self, image: np.ndarray) -> np.ndarray:
        image = image.astype(np.float32)
        std = float(image.std())
        if std == 0:
            return image - image.mean()
        return (image - image.mean()) / std

    def __repr__(self) -> str:
        return "NormalizeFilter()"


class ClaheFilter:
    """Contrast-limited adaptive histogram equalization followed by a light blur."""

    def __init__(self, clip_limit: float = 2.0, tile_grid: Tuple[int, int] = (8, 8), blur_sigma: float = 0.5):
        self.clip_limit = clip_limit
        self.tile_grid = tuple(tile_grid)
        self.blur_sigma = blur_sigma

    def __call__(self, image: np.ndarray) -> np.ndarray:
        # CLAHE works on 8-bit data
        scaled = cv2.normalize(image.astype(np.float32), None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        clahe = cv2.createCLAHE(clipLimit=self.clip_limit, tileGridSize=self.tile_grid)
        enhanced = clahe.apply(scaled).astype(np.float32)
        if self.blur_sigma > 0:
            enhanced = cv2.GaussianBlur(enhanced, (3, 3), self.blur_sigma)
        return enhanced

    def __repr__(self) -> str:
        return f"ClaheFilter(clip_limit={self.clip_limit}, tile_grid={self.tile_grid})"


FILTERS = {
    'null': NullFilter,
    'blur': BlurFilter,
    'log': LogFilter,
    'slog': SlogFilter,
    'normalize': NormalizeFilter,
    'clahe': ClaheFilter,
}


def create_filter(name: str, **params):
    """
    Create a preprocessing filter by name.

    Args:
        name: One of 'null', 'blur', 'log', 'slog', 'normalize', 'clahe'
        **params: Constructor arguments of the filter

    Returns:
        Callable filter instance
    """
    try:
        filter_class = FILTERS[name]
    except KeyError:
        raise ArgumentError(f"Unknown preprocessing filter '{name}', expected one of {sorted(FILTERS)}")
    return filter_class(**params)


def filter_from_config(params: Optional[Dict[str, Any]] = None):
    """Create the filter described by a 'preprocessing' configuration section."""
    params = dict(params or {})
    name = params.pop('filter', 'log')
    logging.getLogger(__name__).debug(f"Preprocessing filter: {name} {params}")
    return create_filter(name, **params)
