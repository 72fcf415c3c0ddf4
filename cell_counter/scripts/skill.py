"""
Cell Counter - Main Module
==========================

High-level programmatic interface for counting bright cells in a
fixed-size raster image.

The pipeline reduces the image to grayscale, smooths it, picks a
threshold with Otsu's method, binarizes, and then alternates erosion and
blob detection until erosion no longer changes the image. Every
detection is marked with a red cross on a copy of the original picture.

Quick Start:
    >>> from cell_counter import CellCounter
    >>>
    >>> counter = CellCounter(detector="quick")
    >>> result = counter.process_image("sample.bmp", "sample_out.bmp")
    >>> print(f"Cells: {result.n_cells}")

Each stage is also available as a standalone function (see ``utils`` and
``detection``), so other orchestration policies can be built from the
same pieces.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Tuple, Dict, Any, Callable
import csv
import json
import logging
import time

import numpy as np

from .utils import (
    convert_to_grayscale,
    convert_to_rgb,
    gaussian_blur_3x3,
    gaussian_blur_5x5,
    sharpen_image,
    otsu_threshold_value,
    binary_threshold,
    erode_image,
)
from .detection import (
    DEFAULT_DETECTION_AREA_SIZE,
    DEFAULT_EXCLUSION_FRAME_THICKNESS,
    DEFAULT_MARKER_RADIUS,
    DEFAULT_MARKER_HALF_WIDTH,
    DetectionLedger,
    make_detector,
    draw_points,
)
from .codec import (
    check_extent,
    read_rgb_image,
    write_rgb_image,
    construct_output_path,
)

logger = logging.getLogger(__name__)


# ===================== DEFAULT SETTINGS =====================
DEFAULT_BLUR = "5x5"
DEFAULT_BLUR_PASSES = 3
DEFAULT_BORDER_WIDTH = 0
DEFAULT_DETECTOR = "quick"

BLUR_FILTERS = {
    "3x3": gaussian_blur_3x3,
    "5x5": gaussian_blur_5x5,
    "none": None,
}

StageCallback = Callable[[str, np.ndarray], None]


@dataclass
class CountResult:
    """
    Results of one counting run.

    Attributes:
        threshold: Binarization threshold used (Otsu or fixed)
        n_cells: Number of ledger entries (markers drawn)
        n_passes: Number of erosion passes that changed the image
        cells: Detected (x, y) coordinates in detection order
        pass_counts: Entries added to the ledger after each pass
        elapsed_s: Processing time in seconds (I/O excluded)
        annotated: Input image with markers (RGB, for saving)
        output_path: Path of the saved annotated image
    """

    threshold: int
    n_cells: int
    n_passes: int
    cells: List[Tuple[int, int]] = field(default_factory=list)
    pass_counts: List[int] = field(default_factory=list)
    elapsed_s: float = 0.0
    annotated: Optional[np.ndarray] = None
    output_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (excluding the image array)."""
        return {
            "threshold": self.threshold,
            "n_cells": self.n_cells,
            "n_passes": self.n_passes,
            "elapsed_s": round(self.elapsed_s, 4),
            "output_path": str(self.output_path) if self.output_path else None,
            "pass_counts": list(self.pass_counts),
            "cells": [{"x": x, "y": y} for x, y in self.cells],
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def write_csv(self, csv_path: Path | str) -> None:
        """Write one row per detected cell."""
        with open(csv_path, "w", newline="") as f:
            w = csv.writer(f)
            w.writerow(["cell_index", "x", "y"])
            for idx, (x, y) in enumerate(self.cells, start=1):
                w.writerow([idx, x, y])


class CellCounter:
    """
    Main class for programmatic cell counting.

    Attributes:
        blur: Smoothing kernel - "5x5", "3x3" or "none" (default: "5x5")
        blur_passes: How many times the blur is applied (default: 3)
        sharpen: Apply the sharpen kernel after blurring (default: False)
        threshold: Fixed threshold, or None for Otsu (default: None)
        border_width: Frame blanked after binarization (default: 0)
        detector: "quick" or "exact" (default: "quick")
        detection_area_size: Exact detector window side (default: 12)
        exclusion_frame_thickness: Exact detector frame levels (default: 1)
        detect_before_erosion: Detect on the pre-erosion image of each
            pass instead of the eroded one (default: False)
        erosion_border_black: Count out-of-image neighbors as black during
            erosion (default: False)
        merge_radius: Drop detections within this Chebyshev distance of an
            earlier pass's entry; None keeps every detection (default: None)
        marker_radius: Cross arm length (default: 10)
        marker_half_width: Cross arm half-thickness (default: 1)

    Example:
        >>> counter = CellCounter(
        ...     detector="exact",
        ...     detection_area_size=12,
        ...     exclusion_frame_thickness=1,
        ...     border_width=5,
        ... )
        >>> result = counter.count_cells(rgb)
    """

    def __init__(
        self,
        blur: str = DEFAULT_BLUR,
        blur_passes: int = DEFAULT_BLUR_PASSES,
        sharpen: bool = False,
        threshold: Optional[int] = None,
        border_width: int = DEFAULT_BORDER_WIDTH,
        detector: str = DEFAULT_DETECTOR,
        detection_area_size: int = DEFAULT_DETECTION_AREA_SIZE,
        exclusion_frame_thickness: int = DEFAULT_EXCLUSION_FRAME_THICKNESS,
        detect_before_erosion: bool = False,
        erosion_border_black: bool = False,
        merge_radius: Optional[int] = None,
        marker_radius: int = DEFAULT_MARKER_RADIUS,
        marker_half_width: int = DEFAULT_MARKER_HALF_WIDTH,
    ):
        """
        Initialize the CellCounter with pipeline parameters.

        Raises:
            ValueError: If a parameter is out of range or unknown
        """
        if blur not in BLUR_FILTERS:
            raise ValueError(f"Unknown blur {blur!r}; expected one of {list(BLUR_FILTERS)}")
        if blur_passes < 0:
            raise ValueError(f"blur_passes must be non-negative, got {blur_passes}")
        if threshold is not None and not 0 <= threshold <= 255:
            raise ValueError(f"threshold must be in [0, 255], got {threshold}")
        if border_width < 0:
            raise ValueError(f"border_width must be non-negative, got {border_width}")
        if merge_radius is not None and merge_radius < 0:
            raise ValueError(f"merge_radius must be non-negative, got {merge_radius}")

        self.blur = blur
        self.blur_passes = blur_passes
        self.sharpen = sharpen
        self.threshold = threshold
        self.border_width = border_width
        self.detector = detector
        self.detection_area_size = detection_area_size
        self.exclusion_frame_thickness = exclusion_frame_thickness
        self.detect_before_erosion = detect_before_erosion
        self.erosion_border_black = erosion_border_black
        self.merge_radius = merge_radius
        self.marker_radius = marker_radius
        self.marker_half_width = marker_half_width

        self._detector = make_detector(
            detector, detection_area_size, exclusion_frame_thickness
        )

    _PARAM_NAMES = (
        "blur",
        "blur_passes",
        "sharpen",
        "threshold",
        "border_width",
        "detector",
        "detection_area_size",
        "exclusion_frame_thickness",
        "detect_before_erosion",
        "erosion_border_black",
        "merge_radius",
        "marker_radius",
        "marker_half_width",
    )

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "CellCounter":
        """
        Build a counter from a parameter mapping.

        Keys ``name`` and ``description`` are accepted and ignored so
        parameter presets can carry a label.

        Raises:
            ValueError: If the mapping holds unknown keys
        """
        params = {k: v for k, v in params.items() if k not in ("name", "description")}
        unknown = sorted(set(params) - set(cls._PARAM_NAMES))
        if unknown:
            raise ValueError(f"Unknown parameters: {', '.join(unknown)}")
        return cls(**params)

    @classmethod
    def from_json(cls, json_path: Path | str) -> "CellCounter":
        """Build a counter from a JSON parameter file."""
        with open(json_path, "r") as f:
            params = json.load(f)
        if not isinstance(params, dict):
            raise ValueError(f"Expected a JSON object in {json_path}")
        return cls.from_dict(params)

    def to_dict(self) -> Dict[str, Any]:
        """Current parameters as a dictionary (round-trips via from_dict)."""
        return {name: getattr(self, name) for name in self._PARAM_NAMES}

    def _smooth(self, gray: np.ndarray) -> None:
        blur_fn = BLUR_FILTERS[self.blur]
        if blur_fn is not None:
            for _ in range(self.blur_passes):
                blur_fn(gray)
        if self.sharpen:
            sharpen_image(gray)

    def _run_detector(self, binary: np.ndarray, ledger: DetectionLedger) -> int:
        """Detect into a pass-local ledger and merge it into the run ledger."""
        pass_ledger = DetectionLedger()
        self._detector.detect(binary, pass_ledger)
        return ledger.merge(pass_ledger, self.merge_radius)

    def count_cells(
        self, rgb: np.ndarray, on_stage: Optional[StageCallback] = None
    ) -> CountResult:
        """
        Run the full pipeline on an in-memory RGB image.

        The input array is left untouched; markers are drawn on a copy.

        Args:
            rgb: RGB array (IMAGE_HEIGHT, IMAGE_WIDTH, 3) as uint8
            on_stage: Optional callback receiving ("gaussian", gray),
                ("binary", binary) and ("erode{i}", binary) snapshots

        Returns:
            CountResult with coordinates, counts and the annotated image

        Raises:
            ValueError: If the image does not have the fixed extent
        """
        check_extent(rgb)
        start = time.perf_counter()

        gray = convert_to_grayscale(rgb)
        self._smooth(gray)
        if on_stage is not None:
            on_stage("gaussian", gray)

        if self.threshold is None:
            threshold = otsu_threshold_value(gray)
        else:
            threshold = int(self.threshold)
        logger.info("Threshold is %d", threshold)

        binary = binary_threshold(gray, threshold, self.border_width)
        if on_stage is not None:
            on_stage("binary", binary)

        ledger = DetectionLedger()
        pass_counts: List[int] = []
        n_passes = 0
        while True:
            pre_added = 0
            if self.detect_before_erosion:
                pre_added = self._run_detector(binary, ledger)

            binary, changed = erode_image(binary, self.erosion_border_black)
            if changed == 0:
                if self.detect_before_erosion:
                    pass_counts.append(pre_added)
                break

            added = pre_added
            if not self.detect_before_erosion:
                added = self._run_detector(binary, ledger)
            pass_counts.append(added)
            logger.debug(
                "Pass %d: eroded %d pixels, %d new cells", n_passes, changed, added
            )
            if on_stage is not None:
                on_stage(f"erode{n_passes}", binary)
            n_passes += 1

        annotated = rgb.copy()
        draw_points(annotated, ledger, self.marker_radius, self.marker_half_width)
        elapsed = time.perf_counter() - start

        logger.info(
            "Detected %d cells in %d erosion passes (%.3f s)",
            len(ledger),
            n_passes,
            elapsed,
        )
        return CountResult(
            threshold=threshold,
            n_cells=len(ledger),
            n_passes=n_passes,
            cells=ledger.to_list(),
            pass_counts=pass_counts,
            elapsed_s=elapsed,
            annotated=annotated,
        )

    def process_image(
        self,
        input_path: Path | str,
        output_path: Path | str,
        save_intermediates: bool = False,
    ) -> CountResult:
        """
        Count cells in an image file and save the annotated image.

        Args:
            input_path: Raster to read
            output_path: Destination of the annotated image
            save_intermediates: Also write ``<stem>_gaussian``,
                ``<stem>_binary`` and ``<stem>_erode{i}`` images next to
                ``output_path``

        Returns:
            CountResult with ``output_path`` set

        Raises:
            FileNotFoundError: If input_path doesn't exist
            ValueError: If the raster does not have the fixed extent
            OSError: If an output image cannot be written

        Example:
            >>> result = CellCounter().process_image(
            ...     "samples/easy_1.bmp", "output/easy_1.bmp", save_intermediates=True
            ... )
            >>> result.output_path
            PosixPath('output/easy_1.bmp')
        """
        output_path = Path(output_path)
        rgb = read_rgb_image(input_path)

        on_stage = None
        if save_intermediates:

            def on_stage(name: str, image: np.ndarray) -> None:
                write_rgb_image(
                    convert_to_rgb(image), construct_output_path(output_path, f"_{name}")
                )

        result = self.count_cells(rgb, on_stage=on_stage)
        result.output_path = write_rgb_image(result.annotated, output_path)
        return result

    def batch_process(
        self,
        items: List[Tuple[Path | str, Path | str]],
        save_intermediates: bool = False,
    ) -> List[CountResult]:
        """
        Process several (input_path, output_path) pairs in order.

        Example:
            >>> results = counter.batch_process([
            ...     ("in/a.bmp", "out/a.bmp"),
            ...     ("in/b.bmp", "out/b.bmp"),
            ... ])
        """
        results = []
        for input_path, output_path in items:
            results.append(
                self.process_image(input_path, output_path, save_intermediates)
            )
        return results
