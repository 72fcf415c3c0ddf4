"""
Cell Counter
============

Locate compact bright blobs ("cells") in a fixed-size raster image and
mark each one with a red cross on the original picture.

Key Features:
- Grayscale reduction and Gaussian/sharpen convolution
- Otsu threshold selection and binary thresholding with border blanking
- Iterative 4-neighbor morphological erosion
- Two blob detectors: exact (windowed) and quick (isolated pixel)
- Cross marker rendering and CSV/JSON result export

Example:
    >>> from cell_counter import CellCounter
    >>> counter = CellCounter(detector="exact")
    >>> result = counter.process_image("sample.bmp", "sample_out.bmp")
    >>> print(result.n_cells)

Stage-by-stage Example:
    >>> from cell_counter import (
    ...     convert_to_grayscale, gaussian_blur_5x5, otsu_threshold_value,
    ...     binary_threshold, erode_image, detect_cells_quick, DetectionLedger,
    ... )
    >>> gray = gaussian_blur_5x5(convert_to_grayscale(rgb))
    >>> binary = binary_threshold(gray, otsu_threshold_value(gray))
    >>> ledger = DetectionLedger()
    >>> binary, changed = erode_image(binary)
    >>> detect_cells_quick(binary, ledger)
"""

__version__ = "1.0.0"

from .scripts.skill import CellCounter, CountResult
from .scripts.detection import (
    DetectedCoordinate,
    DetectionLedger,
    ExactCellDetector,
    QuickCellDetector,
    make_detector,
    detect_cells,
    detect_cells_quick,
    draw_points,
)
from .scripts.utils import (
    IMAGE_WIDTH,
    IMAGE_HEIGHT,
    IMAGE_CHANNELS,
    Kernel,
    GAUSSIAN_3X3,
    GAUSSIAN_5X5,
    SHARPEN_3X3,
    convert_to_grayscale,
    convert_to_rgb,
    apply_convolution,
    gaussian_blur_3x3,
    gaussian_blur_5x5,
    sharpen_image,
    otsu_threshold_value,
    binary_threshold,
    erode_image,
)
from .scripts.codec import read_rgb_image, write_rgb_image, construct_output_path

__all__ = [
    "CellCounter",
    "CountResult",
    "DetectedCoordinate",
    "DetectionLedger",
    "ExactCellDetector",
    "QuickCellDetector",
    "make_detector",
    "detect_cells",
    "detect_cells_quick",
    "draw_points",
    "IMAGE_WIDTH",
    "IMAGE_HEIGHT",
    "IMAGE_CHANNELS",
    "Kernel",
    "GAUSSIAN_3X3",
    "GAUSSIAN_5X5",
    "SHARPEN_3X3",
    "convert_to_grayscale",
    "convert_to_rgb",
    "apply_convolution",
    "gaussian_blur_3x3",
    "gaussian_blur_5x5",
    "sharpen_image",
    "otsu_threshold_value",
    "binary_threshold",
    "erode_image",
    "read_rgb_image",
    "write_rgb_image",
    "construct_output_path",
]
