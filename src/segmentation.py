"""Region extraction from an object-class label map.

The label map comes from an Ilastik object classification project: every
pixel carries the class id of the object it belongs to (0 = background).
Pixels of the class of interest are thresholded into a binary mask, and each
connected component of that mask becomes one :class:`LabelRegion`.

The default engine mirrors ImageJ "Analyze Particles" with outline overlays:

- 8-connected components,
- components discovered in raster order (top row first, then left to right),
- the traced outer outline defines the region, so interior holes belong to it.

Anything implementing :class:`SegmentationEngine` can be plugged into the
pipeline instead (tests use fixed fakes).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Tuple

import numpy as np
from skimage.measure import label as label_components
from skimage.measure import regionprops

from tile_geometry import BoundingBox, LabelRegion


@dataclass(frozen=True)
class Segmentation:
    """Regions found in one tile plus any diagnostics from the engine."""

    regions: Tuple[LabelRegion, ...]
    warnings: Tuple[str, ...] = ()


class SegmentationEngine(Protocol):
    def segment(self, mask: np.ndarray) -> Segmentation:
        ...


def threshold_label_map(label_map: np.ndarray, cell_label: int) -> np.ndarray:
    """Binary mask of pixels equal to ``cell_label``."""
    cell_label = int(cell_label)
    if cell_label < 1:
        raise ValueError(f"cell_label must be >= 1; got {cell_label}")
    arr = np.asarray(label_map)
    if arr.ndim != 2:
        raise ValueError(f"label map must be 2D; got shape={arr.shape}")
    return arr == cell_label


@dataclass(frozen=True)
class ConnectedComponentSegmenter:
    """Connected-component particle extraction.

    Parameters
    ----------
    connectivity:
        1 for 4-connectivity, 2 for 8-connectivity (ImageJ default).
    include_holes:
        If True the region is the filled outer outline.
    min_area_px:
        Components smaller than this are dropped (0 keeps everything).
    """

    connectivity: int = 2
    include_holes: bool = True
    min_area_px: int = 0

    def segment(self, mask: np.ndarray) -> Segmentation:
        m = np.asarray(mask).astype(bool, copy=False)
        if m.ndim != 2:
            raise ValueError(f"mask must be 2D; got shape={m.shape}")

        labels = label_components(m, connectivity=int(self.connectivity))
        regions: List[LabelRegion] = []
        dropped = 0
        for props in regionprops(labels):
            min_row, min_col, max_row, max_col = props.bbox
            region_mask = props.image_filled if self.include_holes else props.image
            if int(region_mask.sum()) < int(self.min_area_px):
                dropped += 1
                continue
            regions.append(
                LabelRegion(
                    label=len(regions) + 1,
                    bbox=BoundingBox(
                        min_x=int(min_col),
                        min_y=int(min_row),
                        width=int(max_col - min_col),
                        height=int(max_row - min_row),
                    ),
                    mask=np.asarray(region_mask, dtype=bool),
                )
            )

        warnings: Tuple[str, ...] = ()
        if dropped:
            warnings = (f"{dropped} component(s) smaller than min_area_px={self.min_area_px} were dropped",)
        return Segmentation(regions=tuple(regions), warnings=warnings)
