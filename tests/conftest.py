"""
Test Configuration
==================

Pytest fixtures and test configuration for robostream.
"""

import cv2
import numpy as np
import pytest


class FakeClock:
    """Manually advanced monotonic clock."""
    
    def __init__(self, start: float = 100.0) -> None:
        self.now = start
    
    def __call__(self) -> float:
        return self.now
    
    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def sample_image():
    """Provide a 64x48 BGR test image."""
    image = np.zeros((48, 64, 3), dtype=np.uint8)
    image[:, :32] = (255, 0, 0)
    image[:, 32:] = (0, 0, 255)
    return image


@pytest.fixture
def jpeg_bytes(sample_image):
    """Provide a valid JPEG payload."""
    ok, buffer = cv2.imencode(".jpg", sample_image)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def corrupt_bytes():
    """Provide a payload that is not an image."""
    return b"\x00\x01not-a-jpeg\xff"
