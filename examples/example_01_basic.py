"""
Example 1: Basic Usage
======================

This example demonstrates the simplest way to use Cell Counter.
We process a single image with default parameters.

What happens:
1. The image is reduced to grayscale and blurred three times
2. Otsu's method picks the threshold between background and cells
3. The binary image is eroded pass by pass; after each pass isolated
   blobs are recorded and cleared
4. A red cross is drawn on the original image for every detection

Generate the input first with ``python demo/generate_demo_data.py``.
"""

from pathlib import Path
from cell_counter import CellCounter


def main():
    # Configuration
    # ---------------
    input_path = Path(__file__).parent.parent / "demo" / "demo_cells.bmp"

    output_dir = Path("./output_example_01")
    output_dir.mkdir(exist_ok=True, parents=True)
    output_path = output_dir / "demo_cells_annot.bmp"

    print("=" * 60)
    print("Example 1: Basic Cell Counting")
    print("=" * 60)
    print()
    print(f"Input:  {input_path}")
    print(f"Output: {output_path}")
    print()

    # Create counter with default settings
    # ------------------------------------
    counter = CellCounter()

    print("Processing image...")
    result = counter.process_image(
        input_path,
        output_path,
        save_intermediates=True,  # Also writes _gaussian, _binary, _erodeN
    )

    # Display results
    # ---------------
    print()
    print("Results:")
    print("-" * 60)
    print(f"Threshold:       {result.threshold}")
    print(f"Cells detected:  {result.n_cells}")
    print(f"Erosion passes:  {result.n_passes}")
    print(f"Time used:       {result.elapsed_s:.3f} s")
    print()

    print("Cells per pass:")
    print("-" * 60)
    for idx, n in enumerate(result.pass_counts):
        print(f"Pass {idx:2d}: {n:4d} cells")

    csv_path = output_dir / "cells.csv"
    result.write_csv(csv_path)

    print()
    print("Output files:")
    print("-" * 60)
    print(f"Annotated image: {result.output_path}")
    print(f"Cells CSV:       {csv_path}")
    print()
    print("Example completed successfully!")


if __name__ == "__main__":
    main()
