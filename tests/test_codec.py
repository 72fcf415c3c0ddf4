from pathlib import Path

import numpy as np
import cv2
import pytest

from cell_counter import IMAGE_WIDTH, IMAGE_HEIGHT
from cell_counter.scripts.codec import (
    check_extent,
    construct_output_path,
    read_rgb_image,
    write_rgb_image,
)


def _random_rgb(seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, (IMAGE_HEIGHT, IMAGE_WIDTH, 3), dtype=np.uint8)


def test_png_round_trip_keeps_rgb_order(tmp_path):
    rgb = _random_rgb()
    rgb[0, 0] = [255, 0, 0]
    path = write_rgb_image(rgb, tmp_path / "img.png")
    assert path == tmp_path / "img.png"

    # OpenCV stores BGR, so the red pixel lands in the last channel
    assert cv2.imread(str(path))[0, 0].tolist() == [0, 0, 255]

    back = read_rgb_image(path)
    assert back.dtype == np.uint8
    assert np.array_equal(back, rgb)


def test_single_band_raster_is_replicated(tmp_path):
    gray = _random_rgb(1)[..., 0]
    path = tmp_path / "gray.png"
    cv2.imwrite(str(path), gray)
    rgb = read_rgb_image(path)
    for c in range(3):
        assert np.array_equal(rgb[..., c], gray)


def test_sixteen_bit_raster_is_rescaled(tmp_path):
    data = np.zeros((IMAGE_HEIGHT, IMAGE_WIDTH, 3), dtype=np.uint16)
    data[10:20, 10:20] = 65535
    path = tmp_path / "deep.png"
    cv2.imwrite(str(path), data)
    rgb = read_rgb_image(path)
    assert rgb.dtype == np.uint8
    assert np.all(rgb[10:20, 10:20] == 255)
    assert not rgb[:10].any()


def test_wrong_extent_is_rejected(tmp_path):
    path = tmp_path / "small.png"
    cv2.imwrite(str(path), np.zeros((100, 120, 3), dtype=np.uint8))
    with pytest.raises(ValueError, match="950"):
        read_rgb_image(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_rgb_image(tmp_path / "absent.bmp")


def test_check_extent():
    check_extent(np.zeros((IMAGE_HEIGHT, IMAGE_WIDTH, 3), dtype=np.uint8))
    check_extent(np.zeros((IMAGE_HEIGHT, IMAGE_WIDTH), dtype=np.uint8), channels=1)
    with pytest.raises(ValueError):
        check_extent(np.zeros((IMAGE_HEIGHT, IMAGE_WIDTH), dtype=np.uint8))
    with pytest.raises(ValueError):
        check_extent(np.zeros((IMAGE_WIDTH, IMAGE_HEIGHT + 1, 3), dtype=np.uint8))


def test_write_to_missing_directory_raises(tmp_path):
    with pytest.raises(OSError):
        write_rgb_image(_random_rgb(), tmp_path / "no" / "such" / "dir.png")


def test_construct_output_path():
    assert construct_output_path("out/cells.bmp", "_binary") == Path("out/cells_binary.bmp")
    assert construct_output_path(Path("a.b.png"), "_erode3") == Path("a.b_erode3.png")
