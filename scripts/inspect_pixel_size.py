from __future__ import annotations

import argparse
import os
from pathlib import Path

# Allow running without packaging
REPO_ROOT = Path(__file__).resolve().parents[1]
import sys

sys.path.insert(0, str(REPO_ROOT / "src"))

from pixel_size_utils import infer_pixel_size_um  # noqa: E402


def main() -> int:
    ap = argparse.ArgumentParser(
        description="Inspect XY pixel size (µm/px) from TIFF metadata.",
    )
    ap.add_argument(
        "--input",
        required=True,
        help="Input tile path (absolute or relative to $NTA_DATA_ROOT).",
    )
    args = ap.parse_args()

    p = Path(args.input)
    if not p.is_absolute():
        root = os.environ.get("NTA_DATA_ROOT")
        if not root:
            raise RuntimeError("NTA_DATA_ROOT is not set; provide an absolute --input path.")
        p = (Path(root) / p).resolve()

    if not p.exists():
        raise FileNotFoundError(f"Input not found: {p}")

    py_um, px_um, note = infer_pixel_size_um(p)

    print("=== inspect_pixel_size ===")
    print("input:", p)
    print("note:", note)
    print()

    if py_um is None or px_um is None:
        print("ERROR: could not determine pixel size from metadata.")
        print("Tiles without calibration are analysed at 1 µm/px unless pixel_size_um is set in the config.")
        return 2

    print(f"pixel_size_y: {py_um:.4f} µm/px")
    print(f"pixel_size_x: {px_um:.4f} µm/px")
    print(f"pixel_size_xy_mean: {(0.5 * (py_um + px_um)):.4f} µm/px")
    print()
    print("Suggested config entry (µm/px):")
    print(f"  pixel_size_um: {0.5 * (py_um + px_um):.4f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
