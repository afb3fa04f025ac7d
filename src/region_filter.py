"""Tile-seam deduplication: which regions belong to this tile's analysis area.

Adjacent tiles overlap by a fixed percentage. A region is analysed in this
tile only if its bounding box does not touch the top/left tile edge (it would
be truncated) and its origin does not lie in the trailing overlap band on the
right/bottom (the neighbouring tile analyses it instead).

Only the min side of the bounding box is checked. Regions touching the
right/bottom tile edge with an origin inside the bounds are admitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from tile_geometry import BoundingBox, LabelRegion


MIN_OVERLAP_PERCENT = 0.0
MAX_OVERLAP_PERCENT = 50.0


@dataclass(frozen=True)
class AnalysisBounds:
    """Upper limits for a region's bounding-box origin."""

    bound_x: float
    bound_y: float


def analysis_bounds(width: int, height: int, overlap_percent: float) -> AnalysisBounds:
    p = float(overlap_percent)
    if not (MIN_OVERLAP_PERCENT <= p <= MAX_OVERLAP_PERCENT):
        raise ValueError(
            f"tile_overlap_percent must be in [{MIN_OVERLAP_PERCENT:g}, {MAX_OVERLAP_PERCENT:g}]; got {p}"
        )
    w = float(width)
    h = float(height)
    return AnalysisBounds(bound_x=w - w * p / 100.0, bound_y=h - h * p / 100.0)


def is_admissible(bbox: BoundingBox, bounds: AnalysisBounds) -> bool:
    return (
        bbox.min_x != 0
        and bbox.min_y != 0
        and bbox.min_x <= bounds.bound_x
        and bbox.min_y <= bounds.bound_y
    )


def admitted_mask(regions: Iterable[LabelRegion], bounds: AnalysisBounds) -> List[bool]:
    """Admission flag per region, in input order."""
    return [is_admissible(r.bbox, bounds) for r in regions]
