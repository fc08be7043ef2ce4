"""
Pytest configuration and fixtures for stereo correlation tests.
"""

import pytest
import numpy as np
import cv2

from stereo_correlation.data_models import CorrelatorSettings, SearchRange
from stereo_correlation.utils.config_manager import ConfigManager


def shift_image(image: np.ndarray, dh: int, dv: int) -> np.ndarray:
    """Move image content right by ``dh`` and down by ``dv`` (both >= 0), zero filling."""
    rows, cols = image.shape
    shifted = np.zeros_like(image)
    shifted[dv:, dh:] = image[:rows - dv, :cols - dh]
    return shifted


@pytest.fixture
def config_manager():
    """Fixture providing a configuration manager instance."""
    return ConfigManager()


@pytest.fixture
def random_texture():
    """Fixture providing a 64x64 8-bit noise image."""
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, (64, 64), dtype=np.uint8)


@pytest.fixture
def smooth_texture():
    """Fixture providing a 96x96 8-bit blurred noise image that survives pyramid reduction."""
    rng = np.random.default_rng(99)
    noise = rng.uniform(0, 255, (96, 96)).astype(np.float32)
    blurred = cv2.GaussianBlur(noise, (0, 0), 1.0)
    blurred = (blurred - blurred.min()) / (blurred.max() - blurred.min()) * 255
    return blurred.astype(np.uint8)


@pytest.fixture
def shifted_pair(random_texture):
    """Fixture providing a stereo pair whose right image is the left moved 3 pixels right."""
    return random_texture, shift_image(random_texture, 3, 0)


@pytest.fixture
def small_settings():
    """Fixture providing fast correlator settings for small synthetic images."""
    return CorrelatorSettings(search_range=SearchRange(-4, -4, 4, 4), kernel_size=(5, 5))


@pytest.fixture
def image_file(tmp_path, random_texture):
    """Fixture providing the noise image written as a PNG file."""
    path = tmp_path / "left.png"
    cv2.imwrite(str(path), random_texture)
    return path
