from __future__ import annotations

import numpy as np
import pytest

from raster import Raster

MAX16 = 65535


def make_mono(height: int, width: int, fill: int = 0) -> np.ndarray:
    return np.full((height, width), fill, dtype=np.uint16)


def make_hot_pixel(size: int = 7, value: int = MAX16) -> np.ndarray:
    """All-zero mono16 frame with one saturated pixel in the middle."""
    img = make_mono(size, size)
    img[size // 2, size // 2] = value
    return img


@pytest.fixture
def hot_pixel_raster() -> Raster:
    return Raster.from_array(make_hot_pixel())


@pytest.fixture
def noisy_raster() -> Raster:
    rng = np.random.RandomState(7)
    return Raster.from_array(rng.randint(0, MAX16 + 1, (12, 15)).astype(np.uint16))
