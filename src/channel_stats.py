"""Per-channel intensity statistics restricted to a region mask."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from tile_geometry import LabelRegion


@dataclass(frozen=True)
class ChannelStats:
    area: int
    mean: float
    std: float


def region_statistics(plane: np.ndarray, region: LabelRegion) -> ChannelStats:
    """Area, mean and sample standard deviation (N-1) of ``plane`` inside ``region``.

    Matches ImageJ ``ImageStatistics``: a single pixel has std 0.
    """
    if plane.ndim != 2:
        raise ValueError(f"plane must be 2D; got shape={plane.shape}")
    if region.is_empty:
        raise ValueError(f"region {region.label} is empty")

    rows, cols = region.slices
    window = np.asarray(plane[rows, cols])
    if window.shape != region.mask.shape:
        raise ValueError(
            f"region {region.label} bbox {region.bbox} extends outside plane of shape {plane.shape}"
        )

    values = window[region.mask].astype(np.float64, copy=False)
    n = int(values.size)
    mean = float(values.mean())
    std = float(values.std(ddof=1)) if n > 1 else 0.0
    return ChannelStats(area=n, mean=mean, std=std)


def measure_channels(
    planes: np.ndarray,
    region: LabelRegion,
    pixel_size_um: float,
) -> Tuple[int, float, List[ChannelStats]]:
    """Measure every channel of a (C, Y, X) stack.

    Returns
    -------
    (area_px, area_um2, stats)
        ``stats`` has one entry per channel, in channel order.
    """
    if planes.ndim != 3:
        raise ValueError(f"planes must be (C, Y, X); got shape={planes.shape}")

    stats = [region_statistics(planes[c], region) for c in range(planes.shape[0])]
    areas = {s.area for s in stats}
    if len(areas) != 1:
        raise ValueError(f"region {region.label}: inconsistent area across channels {sorted(areas)}")

    area_px = stats[0].area
    area_um2 = float(area_px) * float(pixel_size_um) ** 2
    return area_px, area_um2, stats
