"""
Cell Detection
==============

Blob detection on binary images and marker rendering on color images.

Two interchangeable detectors scan a binary image, record one coordinate
per blob in a DetectionLedger and blank the detected area so the same
blob is not found twice within a pass:

- ExactCellDetector: windowed scan. A candidate is accepted when the
  exclusion frame around its detection area is black and the area itself
  holds at least one white pixel.
- QuickCellDetector: isolated-pixel scan. A white pixel is accepted when
  the straight sides of the rings at distance 6 and 7 are black.

Both scan in the same fixed order: x ascending, then y ascending.

Example:
    >>> ledger = DetectionLedger()
    >>> binary = np.zeros((100, 100), dtype=np.uint8)
    >>> binary[50, 50] = 255
    >>> detect_cells_quick(binary, ledger)
    1
    >>> list(ledger)
    [DetectedCoordinate(x=50, y=50)]
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np

from .utils import WHITE, BLACK, RED

logger = logging.getLogger(__name__)


# Detector defaults
DEFAULT_DETECTION_AREA_SIZE = 12
DEFAULT_EXCLUSION_FRAME_THICKNESS = 1
QUICK_RING_DISTANCES = (6, 7)
QUICK_CLEAR_HALF_SIZE = 8

# Marker defaults
DEFAULT_MARKER_RADIUS = 10
DEFAULT_MARKER_HALF_WIDTH = 1

DETECTOR_KINDS = ("exact", "quick")


class DetectedCoordinate(NamedTuple):
    """Representative pixel of a detected blob."""

    x: int
    y: int


@dataclass
class DetectionLedger:
    """
    Ordered collection of detected coordinates owned by one run.

    The ledger does not deduplicate on append; detectors avoid duplicates
    within a pass by clearing the detected area. Use ``merge`` with a
    radius to drop detections that repeat an earlier pass.

    Attributes:
        cells: Detected coordinates in insertion order
    """

    cells: List[DetectedCoordinate] = field(default_factory=list)

    def append(self, x: int, y: int) -> DetectedCoordinate:
        cell = DetectedCoordinate(int(x), int(y))
        self.cells.append(cell)
        return cell

    def count(self) -> int:
        return len(self.cells)

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[DetectedCoordinate]:
        return iter(self.cells)

    def for_each(self, fn: Callable[[DetectedCoordinate], None]) -> None:
        for cell in self.cells:
            fn(cell)

    def clear(self) -> None:
        """Release every entry; the ledger can be reused afterwards."""
        self.cells.clear()

    # end-of-run release
    destroy = clear

    def has_neighbor(self, x: int, y: int, radius: int) -> bool:
        """True if an entry lies within Chebyshev distance ``radius``."""
        return any(
            abs(c.x - x) <= radius and abs(c.y - y) <= radius for c in self.cells
        )

    def merge(self, other: "DetectionLedger", radius: Optional[int] = None) -> int:
        """
        Append the entries of another ledger.

        Args:
            other: Ledger whose entries are appended in order
            radius: If given, skip entries within this Chebyshev distance
                of an entry already present before the merge

        Returns:
            Number of entries appended
        """
        if radius is None:
            self.cells.extend(other.cells)
            return len(other.cells)

        existing = DetectionLedger(list(self.cells))
        added = 0
        for cell in other:
            if existing.has_neighbor(cell.x, cell.y, radius):
                continue
            self.cells.append(cell)
            added += 1
        return added

    def to_list(self) -> List[Tuple[int, int]]:
        return [(c.x, c.y) for c in self.cells]


# ===================== SHARED HELPERS =====================


def _fill_block(
    image: np.ndarray, x0: int, x1: int, y0: int, y1: int, value=BLACK
) -> None:
    """
    Set the half-open block [x0, x1) x [y0, y1), clipped to the image.

    ``value`` is a gray level, or a color tuple for (H, W, 3) images.
    """
    h, w = image.shape[:2]
    x0, x1 = max(x0, 0), min(x1, w)
    y0, y1 = max(y0, 0), min(y1, h)
    if x0 < x1 and y0 < y1:
        image[y0:y1, x0:x1] = value


def _block_has_white(binary: np.ndarray, x0: int, x1: int, y0: int, y1: int) -> bool:
    h, w = binary.shape[:2]
    x0, x1 = max(x0, 0), min(x1, w)
    y0, y1 = max(y0, 0), min(y1, h)
    if x0 >= x1 or y0 >= y1:
        return False
    return bool((binary[y0:y1, x0:x1] == WHITE).any())


def _box_counts(integral: np.ndarray, lo: int, hi: int) -> np.ndarray:
    """
    Count white pixels in the window [lo, hi) x [lo, hi) around every pixel.

    Args:
        integral: Zero-padded integral image of shape (H + 1, W + 1)
        lo: First offset (inclusive)
        hi: Last offset (exclusive)

    Returns:
        (H, W) array of counts, windows clipped to the image
    """
    h, w = integral.shape[0] - 1, integral.shape[1] - 1
    ys = np.arange(h)
    xs = np.arange(w)
    r0 = np.clip(ys + lo, 0, h)
    r1 = np.clip(ys + hi, 0, h)
    c0 = np.clip(xs + lo, 0, w)
    c1 = np.clip(xs + hi, 0, w)
    return (
        integral[np.ix_(r1, c1)]
        - integral[np.ix_(r0, c1)]
        - integral[np.ix_(r1, c0)]
        + integral[np.ix_(r0, c0)]
    )


# ===================== EXACT (WINDOWED) DETECTOR =====================


def _ring_has_white(binary: np.ndarray, cx: int, cy: int, lo: int, hi: int) -> bool:
    """
    Check the border of the square spanning offsets [lo, hi] (inclusive).

    Ring cells outside the image are treated as black.
    """
    h, w = binary.shape[:2]
    y0, y1 = max(cy + lo, 0), min(cy + hi + 1, h)
    x0, x1 = max(cx + lo, 0), min(cx + hi + 1, w)
    if x0 >= x1 or y0 >= y1:
        return False
    for x in (cx + lo, cx + hi):
        if 0 <= x < w and (binary[y0:y1, x] == WHITE).any():
            return True
    for y in (cy + lo, cy + hi):
        if 0 <= y < h and (binary[y, x0:x1] == WHITE).any():
            return True
    return False


def is_exclusion_frame_clear(
    binary: np.ndarray,
    detection_area_size: int,
    exclusion_frame_thickness: int,
    center_x: int,
    center_y: int,
) -> bool:
    """
    Check that the exclusion frame around a detection area is all black.

    The detection area covers offsets [-half, half). Frame level ``t``
    (0 <= t <= exclusion_frame_thickness) is the ring spanning offsets
    [-(half + 1 + t), half + t], so level 0 touches the detection area.

    Args:
        binary: Binary image (H, W)
        detection_area_size: Side of the detection area (even)
        exclusion_frame_thickness: Highest frame level to check
        center_x: Candidate x
        center_y: Candidate y

    Returns:
        True if no in-bounds frame pixel is white
    """
    half = detection_area_size // 2
    for t in range(exclusion_frame_thickness + 1):
        if _ring_has_white(binary, center_x, center_y, -(half + 1 + t), half + t):
            return False
    return True


def is_detection_area_active(
    binary: np.ndarray, detection_area_size: int, center_x: int, center_y: int
) -> bool:
    """True if the detection area around the candidate holds a white pixel."""
    half = detection_area_size // 2
    return _block_has_white(
        binary, center_x - half, center_x + half, center_y - half, center_y + half
    )


def clear_detection_area(
    binary: np.ndarray, detection_area_size: int, center_x: int, center_y: int
) -> None:
    """Blank the detection area around the candidate (clipped)."""
    half = detection_area_size // 2
    _fill_block(binary, center_x - half, center_x + half, center_y - half, center_y + half)


def _validate_area_size(detection_area_size: int, exclusion_frame_thickness: int) -> None:
    if detection_area_size < 2 or detection_area_size % 2 != 0:
        raise ValueError(
            f"detection_area_size must be a positive even number, got {detection_area_size}"
        )
    if exclusion_frame_thickness < 0:
        raise ValueError(
            "exclusion_frame_thickness must be non-negative, "
            f"got {exclusion_frame_thickness}"
        )


def detect_cells(
    binary: np.ndarray,
    ledger: DetectionLedger,
    detection_area_size: int = DEFAULT_DETECTION_AREA_SIZE,
    exclusion_frame_thickness: int = DEFAULT_EXCLUSION_FRAME_THICKNESS,
) -> int:
    """
    Detect cells by sliding a detection window across the image (in-place).

    Every pixel is a candidate center, visited x-major. A candidate is
    accepted when its exclusion frame is black and its detection area is
    active; its coordinate is appended to the ledger and the detection
    area is cleared.

    Clearing only ever removes white pixels, so the scan restricts itself
    to centers whose area was active before the scan, and re-tests a
    candidate against the live image only where a clear happened within
    reach of its frame. The outcome is identical to testing every pixel
    against the live image.

    Args:
        binary: Binary image (H, W) as uint8, modified in place
        ledger: Ledger receiving the detections
        detection_area_size: Side of the detection area (even)
        exclusion_frame_thickness: Number of frame levels beyond level 0

    Returns:
        Number of cells detected in this scan

    Raises:
        ValueError: If the size parameters are invalid

    Example:
        >>> binary = np.zeros((950, 950), dtype=np.uint8)
        >>> binary[94:106, 94:106] = 255
        >>> detect_cells(binary, ledger, 12, 1)
        1
    """
    _validate_area_size(detection_area_size, exclusion_frame_thickness)
    half = detection_area_size // 2
    outer_lo = -(half + 1 + exclusion_frame_thickness)
    outer_hi = half + exclusion_frame_thickness
    h, w = binary.shape[:2]

    white = (binary == WHITE).astype(np.int64)
    integral = np.zeros((h + 1, w + 1), dtype=np.int64)
    integral[1:, 1:] = white.cumsum(axis=0).cumsum(axis=1)

    area_counts = _box_counts(integral, -half, half)
    frame_clear = np.ones((h, w), dtype=bool)
    for t in range(exclusion_frame_thickness + 1):
        lo, hi = -(half + 1 + t), half + t
        ring = _box_counts(integral, lo, hi + 1) - _box_counts(integral, lo + 1, hi)
        frame_clear &= ring == 0

    # candidates whose frame or area may differ from the precomputed state
    dirty = np.zeros((h, w), dtype=bool)

    # transpose so nonzero() walks x-major
    cand_x, cand_y = np.nonzero(area_counts.T > 0)
    found = 0
    for cx, cy in zip(cand_x.tolist(), cand_y.tolist()):
        if dirty[cy, cx]:
            if not is_exclusion_frame_clear(
                binary, detection_area_size, exclusion_frame_thickness, cx, cy
            ):
                continue
            if not is_detection_area_active(binary, detection_area_size, cx, cy):
                continue
        elif not frame_clear[cy, cx]:
            continue

        ledger.append(cx, cy)
        found += 1
        clear_detection_area(binary, detection_area_size, cx, cy)

        # centers whose footprint overlaps the cleared block
        _fill_block(
            dirty,
            cx - half - outer_hi,
            cx + half - outer_lo,
            cy - half - outer_hi,
            cy + half - outer_lo,
            value=True,
        )

    logger.debug("Exact scan found %d cells (%d candidates)", found, cand_x.size)
    return found


# ===================== QUICK (ISOLATED PIXEL) DETECTOR =====================


def check_for_cell(binary: np.ndarray, x: int, y: int) -> bool:
    """
    Check that the rung positions around a pixel are black.

    For each distance d in (6, 7) the four straight sides of the square
    ring at offset +-d are inspected, corners excluded. Out-of-bounds
    positions are treated as black.

    Args:
        binary: Binary image (H, W)
        x: Pixel x-coordinate
        y: Pixel y-coordinate

    Returns:
        True if no rung position is white
    """
    h, w = binary.shape[:2]
    for d in QUICK_RING_DISTANCES:
        y0, y1 = max(y - d + 1, 0), min(y + d, h)
        x0, x1 = max(x - d + 1, 0), min(x + d, w)
        if y0 < y1:
            for xx in (x - d, x + d):
                if 0 <= xx < w and (binary[y0:y1, xx] == WHITE).any():
                    return False
        if x0 < x1:
            for yy in (y - d, y + d):
                if 0 <= yy < h and (binary[yy, x0:x1] == WHITE).any():
                    return False
    return True


def detect_cells_quick(binary: np.ndarray, ledger: DetectionLedger) -> int:
    """
    Fast scan for cells by checking for isolated white pixels (in-place).

    Each white pixel, visited x-major, is tested with ``check_for_cell``.
    An isolated pixel is appended to the ledger and the 16x16 block
    around it (offsets [-8, 8)) is cleared.

    Blobs whose white mass only reaches the ring corners are missed; the
    test costs a constant number of slices per pixel.

    Args:
        binary: Binary image (H, W) as uint8, modified in place
        ledger: Ledger receiving the detections

    Returns:
        Number of cells detected in this scan
    """
    xs, ys = np.nonzero(binary.T == WHITE)
    found = 0
    for x, y in zip(xs.tolist(), ys.tolist()):
        if binary[y, x] != WHITE:
            continue  # cleared by an earlier detection
        if not check_for_cell(binary, x, y):
            continue
        ledger.append(x, y)
        found += 1
        _fill_block(
            binary,
            x - QUICK_CLEAR_HALF_SIZE,
            x + QUICK_CLEAR_HALF_SIZE,
            y - QUICK_CLEAR_HALF_SIZE,
            y + QUICK_CLEAR_HALF_SIZE,
        )

    logger.debug("Quick scan found %d cells (%d white pixels)", found, xs.size)
    return found


# ===================== DETECTOR STRATEGIES =====================


@dataclass(frozen=True)
class ExactCellDetector:
    """Windowed detector with a configurable area and exclusion frame."""

    detection_area_size: int = DEFAULT_DETECTION_AREA_SIZE
    exclusion_frame_thickness: int = DEFAULT_EXCLUSION_FRAME_THICKNESS

    kind = "exact"

    def __post_init__(self):
        _validate_area_size(self.detection_area_size, self.exclusion_frame_thickness)

    def detect(self, binary: np.ndarray, ledger: DetectionLedger) -> int:
        return detect_cells(
            binary, ledger, self.detection_area_size, self.exclusion_frame_thickness
        )


@dataclass(frozen=True)
class QuickCellDetector:
    """Isolated-pixel detector; no tunable parameters."""

    kind = "quick"

    def detect(self, binary: np.ndarray, ledger: DetectionLedger) -> int:
        return detect_cells_quick(binary, ledger)


def make_detector(
    kind: str,
    detection_area_size: int = DEFAULT_DETECTION_AREA_SIZE,
    exclusion_frame_thickness: int = DEFAULT_EXCLUSION_FRAME_THICKNESS,
):
    """
    Build a detector strategy by name.

    Args:
        kind: "exact" or "quick"
        detection_area_size: Used by the exact detector only
        exclusion_frame_thickness: Used by the exact detector only

    Returns:
        ExactCellDetector or QuickCellDetector

    Raises:
        ValueError: If kind is unknown
    """
    kind = kind.lower()
    if kind == "exact":
        return ExactCellDetector(detection_area_size, exclusion_frame_thickness)
    if kind == "quick":
        return QuickCellDetector()
    raise ValueError(f"Unknown detector {kind!r}; expected one of {DETECTOR_KINDS}")


# ===================== MARKER RENDERING =====================


def draw_points(
    rgb: np.ndarray,
    ledger: DetectionLedger,
    radius: int = DEFAULT_MARKER_RADIUS,
    half_width: int = DEFAULT_MARKER_HALF_WIDTH,
    color: Tuple[int, int, int] = RED,
) -> np.ndarray:
    """
    Draw a cross marker on the RGB image for each ledger entry (in-place).

    Each arm spans offsets [-radius, radius] along its axis and
    ``half_width`` pixels to either side of it. Pixels outside the image
    are clipped, so markers near or beyond the edge never fail.

    Args:
        rgb: RGB image (H, W, 3) as uint8, modified in place
        ledger: Coordinates to mark
        radius: Arm length from the center
        half_width: Arm half-thickness (1 gives 3-pixel thick arms)
        color: RGB color tuple

    Returns:
        The same ``rgb`` array
    """
    color = tuple(int(c) for c in color)
    for cell in ledger:
        x, y = int(cell.x), int(cell.y)
        _fill_block(rgb, x - radius, x + radius + 1, y - half_width, y + half_width + 1, color)
        _fill_block(rgb, x - half_width, x + half_width + 1, y - radius, y + radius + 1, color)
    return rgb
