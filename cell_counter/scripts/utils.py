"""
Utility functions for Cell Counter.

These functions handle the low-level image processing stages of the
pipeline: color reduction, convolution, threshold selection,
binarization and morphological erosion.

Every stage works on an explicit numpy buffer. Grayscale stages mutate
their buffer in place and return it for chaining; erosion returns a new
buffer so each decision only sees the pre-pass state.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import cv2

logger = logging.getLogger(__name__)


# Fixed raster extent shared by every stage of a run
IMAGE_WIDTH = 950
IMAGE_HEIGHT = 950
IMAGE_CHANNELS = 3

# Binary pixel values
WHITE = 255
BLACK = 0

# Drawing colors (RGB)
RED = (255, 0, 0)


@dataclass(frozen=True)
class Kernel:
    """
    Odd-sized square convolution kernel.

    Attributes:
        weights: Square matrix of signed integer weights. ``weights[r, c]``
            multiplies the neighbor at row offset ``r - radius`` and column
            offset ``c - radius``.
        name: Label used in log messages
    """

    weights: Tuple[Tuple[int, ...], ...]
    name: str = "custom"

    @property
    def size(self) -> int:
        return len(self.weights)

    @property
    def radius(self) -> int:
        return self.size // 2

    @property
    def divisor(self) -> int:
        """Sum of the weights, with 1 substituted for a zero sum."""
        total = int(sum(sum(row) for row in self.weights))
        return total if total != 0 else 1

    def is_valid(self) -> bool:
        """True if the kernel is square with an odd side length."""
        n = self.size
        return n % 2 == 1 and all(len(row) == n for row in self.weights)

    def as_array(self) -> np.ndarray:
        return np.array(self.weights, dtype=np.int64)


GAUSSIAN_3X3 = Kernel(
    weights=(
        (1, 2, 1),
        (2, 4, 2),
        (1, 2, 1),
    ),
    name="gaussian_3x3",
)

GAUSSIAN_5X5 = Kernel(
    weights=(
        (1, 4, 7, 4, 1),
        (4, 16, 26, 16, 4),
        (7, 26, 41, 26, 7),
        (4, 16, 26, 16, 4),
        (1, 4, 7, 4, 1),
    ),
    name="gaussian_5x5",
)

SHARPEN_3X3 = Kernel(
    weights=(
        (0, -1, 0),
        (-1, 5, -1),
        (0, -1, 0),
    ),
    name="sharpen_3x3",
)


def convert_to_grayscale(rgb: np.ndarray) -> np.ndarray:
    """
    Reduce an RGB image to a single intensity channel.

    gray = (R + G + B) // 3

    Integer division truncates, so this is not a luminance-weighted
    conversion and not the exact inverse of ``convert_to_rgb``.

    Args:
        rgb: RGB array (H, W, 3) as uint8

    Returns:
        Grayscale array (H, W) as uint8

    Example:
        >>> rgb = np.array([[[10, 20, 31]]], dtype=np.uint8)
        >>> convert_to_grayscale(rgb)
        array([[20]], dtype=uint8)
    """
    total = rgb[..., :3].astype(np.uint16).sum(axis=2)
    return (total // 3).astype(np.uint8)


def convert_to_rgb(gray: np.ndarray) -> np.ndarray:
    """
    Expand a grayscale image into three identical channels.

    Args:
        gray: Grayscale array (H, W)

    Returns:
        RGB array (H, W, 3) as uint8
    """
    gray = np.asarray(gray, dtype=np.uint8)
    return np.dstack([gray, gray, gray])


def apply_convolution(image: np.ndarray, kernel: Kernel) -> np.ndarray:
    """
    Convolve a grayscale image with a square kernel (in-place).

    Only pixels whose whole kernel footprint lies inside the image are
    recomputed; the outer ``radius`` rows and columns keep their values.
    Each output is ``floor(sum / divisor)`` saturated to [0, 255], where
    the sum is taken over the unmodified input.

    An invalid (even or non-square) kernel is logged and the image is
    returned untouched.

    Args:
        image: Grayscale array (H, W) as uint8, modified in place
        kernel: Kernel to apply

    Returns:
        The same ``image`` array

    Example:
        >>> img = np.full((5, 5), 80, dtype=np.uint8)
        >>> apply_convolution(img, GAUSSIAN_3X3)[2, 2]
        80
    """
    if not kernel.is_valid():
        logger.error(
            "Kernel %s has invalid size %d (must be odd and square); skipping",
            kernel.name,
            kernel.size,
        )
        return image

    weights = kernel.as_array()
    size = kernel.size
    r = kernel.radius
    h, w = image.shape[:2]
    inner_h, inner_w = h - 2 * r, w - 2 * r
    if inner_h <= 0 or inner_w <= 0:
        return image

    src = image.astype(np.int64)
    acc = np.zeros((inner_h, inner_w), dtype=np.int64)
    for dr in range(size):
        for dc in range(size):
            wgt = weights[dr, dc]
            if wgt == 0:
                continue
            acc += wgt * src[dr : dr + inner_h, dc : dc + inner_w]

    out = np.floor_divide(acc, kernel.divisor)
    image[r : h - r, r : w - r] = np.clip(out, 0, 255).astype(np.uint8)
    return image


def gaussian_blur_3x3(image: np.ndarray) -> np.ndarray:
    """Blur with the 3x3 Gaussian kernel (divisor 16), in place."""
    return apply_convolution(image, GAUSSIAN_3X3)


def gaussian_blur_5x5(image: np.ndarray) -> np.ndarray:
    """Blur with the 5x5 Gaussian kernel (divisor 273), in place."""
    return apply_convolution(image, GAUSSIAN_5X5)


def sharpen_image(image: np.ndarray) -> np.ndarray:
    """Enhance edges with the 3x3 sharpen kernel, in place."""
    return apply_convolution(image, SHARPEN_3X3)


def otsu_threshold_value(gray: np.ndarray) -> int:
    """
    Select a binary split point with Otsu's method.

    For every split s in [0, 255] the histogram is partitioned into
    background (<= s) and foreground (> s). Splits with an empty
    partition are skipped. The score is

        W_b * W_f * (mu_b - mu_f) ** 2

    and the first split with the strictly greatest score wins. If no
    split scores above 0 the result is 0.

    Args:
        gray: Grayscale array (H, W) as uint8

    Returns:
        Threshold value in [0, 255]

    Example:
        >>> img = np.array([[10, 10, 200, 200]], dtype=np.uint8)
        >>> otsu_threshold_value(img)
        10
    """
    values = np.asarray(gray, dtype=np.uint8).ravel()
    total = int(values.size)
    if total == 0:
        return 0

    hist = np.bincount(values, minlength=256).astype(np.int64)
    cum_mass = np.cumsum(hist).tolist()
    cum_sum = np.cumsum(hist * np.arange(256, dtype=np.int64)).tolist()
    grand_sum = cum_sum[-1]

    best_score = 0.0
    best_split = 0
    for s in range(256):
        mass_b = cum_mass[s]
        mass_f = total - mass_b
        if mass_b == 0 or mass_f == 0:
            continue
        w_b = mass_b / total
        w_f = mass_f / total
        mu_b = cum_sum[s] / mass_b
        mu_f = (grand_sum - cum_sum[s]) / mass_f
        score = w_b * w_f * (mu_b - mu_f) ** 2
        if score > best_score:
            best_score = score
            best_split = s

    logger.debug("Otsu split %d (score %.3f)", best_split, best_score)
    return best_split


def binary_threshold(
    gray: np.ndarray, threshold: int, border_width: int = 0
) -> np.ndarray:
    """
    Convert a grayscale image to a binary image (in-place).

    Pixels strictly above ``threshold`` become 255, all others 0.
    When ``border_width`` > 0 the outermost ``border_width`` rows and
    columns on every side are forced to 0 afterwards (clamped to the
    image extent). This suppresses spurious detections at the frame edge.

    Args:
        gray: Grayscale array (H, W) as uint8, modified in place
        threshold: Split value; values equal to it map to black
        border_width: Width of the blanked frame, 0 disables it

    Returns:
        The same ``gray`` array, now holding only 0 and 255

    Raises:
        ValueError: If border_width is negative
    """
    if border_width < 0:
        raise ValueError(f"border_width must be non-negative, got {border_width}")

    gray[...] = np.where(gray > threshold, WHITE, BLACK).astype(np.uint8)

    if border_width > 0:
        h, w = gray.shape[:2]
        by = min(border_width, h)
        bx = min(border_width, w)
        gray[:by, :] = BLACK
        gray[h - by :, :] = BLACK
        gray[:, :bx] = BLACK
        gray[:, w - bx :] = BLACK
    return gray


# 4-neighbor structuring element (the center is white whenever it matters)
_CROSS_ELEMENT = cv2.getStructuringElement(cv2.MORPH_CROSS, (3, 3))


def erode_image(
    binary: np.ndarray, border_is_black: bool = False
) -> Tuple[np.ndarray, int]:
    """
    Apply one erosion pass with the 4-neighbor structuring element.

    A pixel at 255 turns black when any of its up/down/left/right
    neighbors is 0 in the input. Other intensities are neither eroded nor
    counted as black. The result is written to a new buffer, so pixels
    eroded earlier in the pass never influence later decisions.

    Neighbors outside the image are skipped by default. With
    ``border_is_black=True`` they count as black, which erodes any white
    pixel touching the frame.

    Args:
        binary: Binary array (H, W) as uint8 (0/255)
        border_is_black: Treat out-of-image neighbors as black

    Returns:
        (eroded: np.ndarray, changed: int) - the new buffer and the number
        of pixels that changed. ``changed == 0`` means the image is stable.

    Example:
        >>> img = np.full((3, 3), 255, dtype=np.uint8)
        >>> erode_image(img, border_is_black=True)[1]
        8
    """
    black = np.where(binary == BLACK, WHITE, BLACK).astype(np.uint8)
    if border_is_black:
        near_black = cv2.dilate(
            black,
            _CROSS_ELEMENT,
            borderType=cv2.BORDER_CONSTANT,
            borderValue=WHITE,
        )
    else:
        # default border value leaves dilation unaffected by the frame
        near_black = cv2.dilate(black, _CROSS_ELEMENT)

    hit = (binary == WHITE) & (near_black == WHITE)
    eroded = binary.copy()
    eroded[hit] = BLACK
    return eroded, int(np.count_nonzero(hit))
