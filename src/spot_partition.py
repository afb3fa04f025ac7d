"""Assign detected spots to regions and their eroded centers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd

from tile_geometry import LabelRegion, pixel_coordinate


class RegionGeometryError(RuntimeError):
    """A shrunk region counted more spots than the region it was eroded from."""


@dataclass(frozen=True)
class SpotCounts:
    total: int
    center: int

    @property
    def edge(self) -> int:
        return self.total - self.center

    def check(self, *, label: int = 0) -> "SpotCounts":
        if self.center > self.total or self.total < 0 or self.center < 0:
            raise RegionGeometryError(
                f"region {label}: center spot count {self.center} exceeds total {self.total}; "
                "the shrunk region is not contained in its source region"
            )
        return self


def spot_pixel_coords(spots: pd.DataFrame, pixel_size_um: float) -> Tuple[np.ndarray, np.ndarray]:
    """Floor spot positions (µm) onto the pixel grid. Returns (xs, ys)."""
    if spots.empty:
        empty = np.zeros(0, dtype=np.int64)
        return empty, empty
    xs = pixel_coordinate(spots["x_um"].to_numpy(dtype=float), pixel_size_um)
    ys = pixel_coordinate(spots["y_um"].to_numpy(dtype=float), pixel_size_um)
    return np.atleast_1d(xs), np.atleast_1d(ys)


def count_spots_in_region(
    spots: pd.DataFrame,
    region: LabelRegion,
    shrunk: LabelRegion,
    pixel_size_um: float,
    *,
    pixel_coords: Tuple[np.ndarray, np.ndarray] | None = None,
) -> SpotCounts:
    """Count spots inside ``region`` and inside its eroded ``shrunk`` center.

    ``pixel_coords`` may pass precomputed ``spot_pixel_coords`` output when
    the same spot table is tested against many regions.
    """
    xs, ys = pixel_coords if pixel_coords is not None else spot_pixel_coords(spots, pixel_size_um)
    if xs.size == 0:
        return SpotCounts(total=0, center=0)

    total = int(region.contains_points(xs, ys).sum())
    center = int(shrunk.contains_points(xs, ys).sum()) if not shrunk.is_empty else 0
    return SpotCounts(total=total, center=center)
