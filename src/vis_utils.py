"""Visualization utilities for QC artifacts.

QC overlays are not part of the results contract (results table + manifest),
but they are how a human checks which nuclei were admitted and where the
spots fell.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import numpy as np
from skimage.morphology import dilation, disk
from skimage.segmentation import find_boundaries

from tile_geometry import LabelRegion, shrink_region


def paint_regions(regions: Iterable[LabelRegion], shape: tuple) -> np.ndarray:
    """Rasterize regions into a label image (region.label as value)."""
    labels = np.zeros(shape, dtype=np.int32)
    for region in regions:
        if region.is_empty:
            continue
        ys, xs = region.global_coords()
        labels[ys, xs] = int(region.label)
    return labels


def _outline(labels: np.ndarray) -> np.ndarray:
    b = find_boundaries(labels, mode="inner")
    return dilation(b, disk(1)) & (labels > 0)


def write_qc_overlay(tile, result, nucleus_edge_um: float, out_path: Path) -> None:
    """Write a PNG overlay for one tile.

    - admitted regions: green outline, shrunk centers: yellow outline
    - rejected regions: red outline
    - spots: cyan circles
    - analysis bounds: dashed white lines
    """
    import matplotlib.pyplot as plt

    img = tile.planes[0].astype(float)
    if img.size:
        vmin, vmax = np.percentile(img, [1, 99])
    else:
        vmin, vmax = 0.0, 1.0

    shape = (tile.height, tile.width)
    admitted = [r for r, ok in zip(result.regions, result.admitted) if ok]
    rejected = [r for r, ok in zip(result.regions, result.admitted) if not ok]
    centers = [shrink_region(r, nucleus_edge_um, tile.pixel_size_um) for r in admitted]

    fig = plt.figure(figsize=(10, 10), dpi=150)
    ax = fig.add_subplot(111)
    ax.imshow(img, cmap="gray", vmin=vmin, vmax=vmax, interpolation="nearest")

    rgba = np.zeros(shape + (4,), dtype=float)
    for regions, color in ((rejected, (1.0, 0.0, 0.0)), (admitted, (0.0, 1.0, 0.0)), (centers, (1.0, 1.0, 0.0))):
        edge = _outline(paint_regions(regions, shape))
        rgba[edge, :3] = color
        rgba[edge, 3] = 0.7
    ax.imshow(rgba, interpolation="nearest")

    if not result.spots.empty:
        ax.scatter(
            result.spots["x_px"],
            result.spots["y_px"],
            s=30,
            facecolors="none",
            edgecolors="cyan",
            linewidths=1.0,
            alpha=0.8,
        )

    if result.bounds is not None:
        ax.axvline(result.bounds.bound_x, color="white", linestyle="--", linewidth=0.8)
        ax.axhline(result.bounds.bound_y, color="white", linestyle="--", linewidth=0.8)

    ax.set_title(
        f"{tile.name}: {len(admitted)}/{len(result.regions)} regions admitted, "
        f"{len(result.spots)} spots"
    )
    ax.set_axis_off()
    fig.tight_layout(pad=0)
    fig.savefig(out_path, bbox_inches="tight")
    plt.close(fig)
