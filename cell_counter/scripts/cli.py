"""Command-line driver: count cells in one image and save the annotated copy."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from .skill import BLUR_FILTERS, CellCounter
from .detection import DETECTOR_KINDS

# CLI flag -> CellCounter parameter
_OVERRIDES = {
    "detector": "detector",
    "area_size": "detection_area_size",
    "frame_thickness": "exclusion_frame_thickness",
    "border": "border_width",
    "blur": "blur",
    "blur_passes": "blur_passes",
    "threshold": "threshold",
    "merge_radius": "merge_radius",
    "sharpen": "sharpen",
    "detect_before_erosion": "detect_before_erosion",
    "erode_border_black": "erosion_border_black",
}


def configure_logging(level: str) -> None:
    """Configure the root logger with a sensible default format."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse command-line arguments."""

    parser = argparse.ArgumentParser(
        description="Detect bright cells in an image and mark each with a red cross."
    )
    parser.add_argument("input", type=Path, help="Input image path")
    parser.add_argument("output", type=Path, help="Annotated output image path")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with CellCounter parameters (flags below override it)",
    )
    parser.add_argument(
        "--detector",
        choices=DETECTOR_KINDS,
        default=None,
        help="Blob detection strategy (default: quick)",
    )
    parser.add_argument(
        "--area-size",
        type=int,
        default=None,
        help="Detection area side for the exact detector (default: 12)",
    )
    parser.add_argument(
        "--frame-thickness",
        type=int,
        default=None,
        help="Exclusion frame thickness for the exact detector (default: 1)",
    )
    parser.add_argument(
        "--border",
        type=int,
        default=None,
        help="Blank this many pixels at each edge after thresholding (default: 0)",
    )
    parser.add_argument(
        "--blur",
        choices=sorted(BLUR_FILTERS),
        default=None,
        help="Gaussian blur kernel (default: 5x5)",
    )
    parser.add_argument(
        "--blur-passes",
        type=int,
        default=None,
        help="Number of blur applications (default: 3)",
    )
    parser.add_argument(
        "--sharpen",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Sharpen after blurring (default: off)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="Fixed binarization threshold (default: Otsu)",
    )
    parser.add_argument(
        "--detect-before-erosion",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run detection on each pass before eroding instead of after (default: off)",
    )
    parser.add_argument(
        "--erode-border-black",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Treat pixels outside the image as black during erosion (default: off)",
    )
    parser.add_argument(
        "--merge-radius",
        type=int,
        default=None,
        help="Drop detections within this distance of an earlier pass's cell",
    )
    parser.add_argument(
        "--save-intermediates",
        action="store_true",
        help="Also write _gaussian, _binary and _erodeN images next to the output",
    )
    parser.add_argument(
        "--csv",
        type=Path,
        default=None,
        help="Write detected coordinates to this CSV file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    return parser.parse_args(argv)


def build_counter(args: argparse.Namespace) -> CellCounter:
    """Combine the optional JSON config with command-line overrides."""

    params = {}
    if args.config is not None:
        params.update(CellCounter.from_json(args.config).to_dict())
    for flag, name in _OVERRIDES.items():
        value = getattr(args, flag)
        if value is not None:
            params[name] = value
    return CellCounter.from_dict(params)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""

    argv = argv if argv is not None else sys.argv[1:]
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        counter = build_counter(args)
        result = counter.process_image(
            args.input, args.output, save_intermediates=args.save_intermediates
        )
        if args.csv is not None:
            result.write_csv(args.csv)
    except Exception as exc:
        logging.getLogger(__name__).exception("Cell counting failed: %s", exc)
        return 1

    if args.json:
        print(result.to_json())
    else:
        print(f"The threshold is {result.threshold}")
        print(f"Drew {result.n_cells} points")
        print(f"Time used: {result.elapsed_s:.3f} s")
        print(f"Annotated image saved to {result.output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
