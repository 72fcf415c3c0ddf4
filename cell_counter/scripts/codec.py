"""
Raster I/O for Cell Counter.

Reading goes through rasterio so any GDAL-supported raster (BMP, PNG,
TIFF) can be used as input; writing uses OpenCV. Images are kept in RGB
order in memory.
"""

import logging
import warnings
from pathlib import Path
from typing import Tuple

import numpy as np
import cv2
import rasterio
from rasterio.errors import NotGeoreferencedWarning
from skimage.util import img_as_ubyte

from .utils import IMAGE_WIDTH, IMAGE_HEIGHT, IMAGE_CHANNELS

logger = logging.getLogger(__name__)

DEFAULT_USE_BANDS_RGB = (1, 2, 3)


def check_extent(image: np.ndarray, channels: int = IMAGE_CHANNELS) -> None:
    """
    Ensure an image has the fixed pipeline extent.

    Raises:
        ValueError: If the shape is not (IMAGE_HEIGHT, IMAGE_WIDTH[, channels])
    """
    expected: Tuple[int, ...] = (IMAGE_HEIGHT, IMAGE_WIDTH)
    if channels > 1:
        expected = expected + (channels,)
    if image.shape != expected:
        raise ValueError(
            f"Expected image of shape {expected}, got {image.shape}"
        )


def read_rgb_image(
    path: Path | str, bands: Tuple[int, int, int] = DEFAULT_USE_BANDS_RGB
) -> np.ndarray:
    """
    Read a raster file into an RGB uint8 array.

    Single-band rasters are replicated into three channels. Non-uint8
    data (e.g. 16-bit TIFF) is rescaled to 8 bits.

    Args:
        path: Raster file path
        bands: Tuple of (R_band, G_band, B_band) indices

    Returns:
        RGB array (IMAGE_HEIGHT, IMAGE_WIDTH, 3) as uint8

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the raster does not have the fixed extent
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input image not found: {path}")

    logger.debug("Loading raster from %s", path)
    with warnings.catch_warnings():
        # plain bitmaps carry no georeferencing
        warnings.simplefilter("ignore", NotGeoreferencedWarning)
        with rasterio.open(str(path)) as ds:
            if ds.count >= 3:
                channels = [ds.read(b) for b in bands]
            else:
                band = ds.read(1)
                channels = [band, band, band]

    rgb = np.dstack(channels)
    if rgb.dtype != np.uint8:
        logger.warning("Rescaling %s raster %s to uint8", rgb.dtype, path.name)
        rgb = img_as_ubyte(rgb)

    check_extent(rgb)
    return np.ascontiguousarray(rgb)


def write_rgb_image(rgb: np.ndarray, path: Path | str) -> Path:
    """
    Write an RGB image to disk (format chosen by the file extension).

    Args:
        rgb: RGB array (H, W, 3) as uint8
        path: Destination path

    Returns:
        The destination path

    Raises:
        OSError: If OpenCV cannot encode or write the file
    """
    path = Path(path)
    bgr = np.ascontiguousarray(rgb[..., ::-1])
    if not cv2.imwrite(str(path), bgr):
        raise OSError(f"Unable to write image: {path}")
    logger.debug("Wrote %s", path)
    return path


def construct_output_path(base_path: Path | str, suffix: str) -> Path:
    """
    Insert a suffix between the file stem and its extension.

    Example:
        >>> construct_output_path("out/cells.bmp", "_binary")
        PosixPath('out/cells_binary.bmp')
    """
    base_path = Path(base_path)
    return base_path.with_name(base_path.stem + suffix + base_path.suffix)
