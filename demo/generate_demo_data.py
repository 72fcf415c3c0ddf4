#!/usr/bin/env python3
"""
Demo Data Generator
===================

Generate synthetic microscopy-like images with bright cells for testing
and demos.

This script creates:
1. A 950x950 bitmap with a dark, noisy background
2. Bright round cells of varying size, some of them touching
3. A CSV with the ground-truth cell centers

Run this to generate demo data before running the examples.
"""

import csv
from pathlib import Path

import numpy as np
import cv2

from cell_counter import IMAGE_WIDTH, IMAGE_HEIGHT


def generate_synthetic_cells(
    output_path: Path,
    n_cells: int = 120,
    min_radius: int = 3,
    max_radius: int = 6,
    min_spacing: int = 24,
    touching_fraction: float = 0.1,
    seed: int = 42,
):
    """
    Generate a synthetic cell image.

    Cells are placed at random with at least ``min_spacing`` pixels between
    centers. A fraction of them get a touching neighbor so the erosion
    loop has something to separate.

    Args:
        output_path: Where to save the bitmap
        n_cells: Number of cells to place (fewer if space runs out)
        min_radius: Smallest cell radius in pixels
        max_radius: Largest cell radius in pixels
        min_spacing: Minimum distance between cell centers
        touching_fraction: Fraction of cells drawn as touching pairs
        seed: Random seed for reproducibility

    Returns:
        List of (x, y) ground-truth centers
    """
    rng = np.random.default_rng(seed)

    print(f"Generating synthetic cells: {IMAGE_WIDTH}x{IMAGE_HEIGHT} pixels")
    print(f"  Cells: {n_cells}, radius {min_radius}-{max_radius}px")

    # Dark background with noise (BGR for OpenCV)
    image = np.full((IMAGE_HEIGHT, IMAGE_WIDTH, 3), 25, dtype=np.uint8)
    noise = rng.normal(0, 8, image.shape).astype(np.int16)
    image = np.clip(image.astype(np.int16) + noise, 0, 255).astype(np.uint8)

    cell_color = (200, 230, 240)
    margin = max_radius + 20

    centers = []
    attempts = 0
    while len(centers) < n_cells and attempts < n_cells * 50:
        attempts += 1
        x = int(rng.integers(margin, IMAGE_WIDTH - margin))
        y = int(rng.integers(margin, IMAGE_HEIGHT - margin))
        if any((x - cx) ** 2 + (y - cy) ** 2 < min_spacing**2 for cx, cy in centers):
            continue

        radius = int(rng.integers(min_radius, max_radius + 1))
        cv2.circle(image, (x, y), radius, cell_color, -1)
        centers.append((x, y))

        if rng.random() < touching_fraction:
            # second cell sharing an edge with the first
            nx = x + 2 * radius - 1
            cv2.circle(image, (nx, y), radius, cell_color, -1)
            centers.append((nx, y))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(output_path), image)
    print(f"  Saved: {output_path}")
    print(f"  Total cells: {len(centers)}")

    return centers


def write_ground_truth(centers, csv_path: Path) -> None:
    """Write ground-truth centers as CSV."""
    with open(csv_path, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["x", "y"])
        w.writerows(centers)
    print(f"  Ground truth: {csv_path}")


def main():
    """Generate demo data."""
    print("=" * 60)
    print("Cell Counter - Demo Data Generator")
    print("=" * 60)
    print()

    demo_dir = Path(__file__).parent
    image_path = demo_dir / "demo_cells.bmp"
    centers = generate_synthetic_cells(image_path)
    write_ground_truth(centers, demo_dir / "demo_cells_truth.csv")

    print()
    print("Now run:")
    print(f"  cell-counter {image_path} {demo_dir / 'demo_cells_out.bmp'}")


if __name__ == "__main__":
    main()
