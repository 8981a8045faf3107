"""Shared test fixtures for surface inspection tests."""

import numpy as np
import cv2
import pytest

from surface_inspection.models import PixelBuffer


def _rgba(rgb):
    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb.astype(np.uint8), alpha], axis=2)


@pytest.fixture
def buffer_of():
    """Convert an RGB uint8 array into an opaque PixelBuffer."""
    def _make(rgb):
        return PixelBuffer.from_array(_rgba(rgb))
    return _make


@pytest.fixture
def png_of():
    """Encode an RGB uint8 array as PNG bytes."""
    def _encode(rgb):
        ok, encoded = cv2.imencode(".png", cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
        assert ok
        return encoded.tobytes()
    return _encode


@pytest.fixture
def gray_image():
    """256x256 solid mid-gray square."""
    return np.full((256, 256, 3), 128, dtype=np.uint8)


@pytest.fixture
def white_image():
    return np.full((256, 256, 3), 255, dtype=np.uint8)


@pytest.fixture
def black_image():
    return np.zeros((256, 256, 3), dtype=np.uint8)


@pytest.fixture
def dark_spot_image():
    """White 256x256 with a 20x20 black patch at (50, 50)."""
    img = np.full((256, 256, 3), 255, dtype=np.uint8)
    img[50:70, 50:70] = 0
    return img


@pytest.fixture
def flash_image():
    """Gray noisy surface with a saturated red blob near the lower right."""
    rng = np.random.RandomState(3)
    surface = np.clip(rng.normal(150, 25, (256, 256)), 0, 255).astype(np.uint8)
    img = np.stack([surface] * 3, axis=2)
    img[180:210, 190:230] = [200, 30, 30]
    return img


@pytest.fixture
def textured_image():
    """256x256 checkerboard with 16px squares."""
    img = np.ones((256, 256, 3), dtype=np.uint8) * 200
    for y in range(0, 256, 16):
        for x in range(0, 256, 16):
            if (x // 16 + y // 16) % 2 == 0:
                img[y:y + 16, x:x + 16] = [50, 50, 50]
    return img


@pytest.fixture
def noise_image():
    rng = np.random.RandomState(42)
    return rng.randint(0, 256, (256, 256, 3)).astype(np.uint8)


@pytest.fixture
def other_noise_image():
    rng = np.random.RandomState(7)
    return rng.randint(0, 256, (256, 256, 3)).astype(np.uint8)
