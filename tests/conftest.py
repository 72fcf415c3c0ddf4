import numpy as np
import cv2
import pytest

from cell_counter import IMAGE_WIDTH, IMAGE_HEIGHT


CELL_CENTERS = [
    (100, 100),
    (250, 120),
    (400, 400),
    (600, 200),
    (820, 830),
    (130, 700),
    (475, 780),
]


def make_cell_image(centers=CELL_CENTERS, radius=5, value=255):
    """Black RGB image of the fixed extent with one filled disc per center."""
    rgb = np.zeros((IMAGE_HEIGHT, IMAGE_WIDTH, 3), dtype=np.uint8)
    for x, y in centers:
        cv2.circle(rgb, (x, y), radius, (value, value, value), -1)
    return rgb


@pytest.fixture
def cell_image():
    return make_cell_image()
