from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from spot_partition import RegionGeometryError, SpotCounts, count_spots_in_region, spot_pixel_coords
from tile_geometry import region_from_mask, shrink_region


PIXEL_SIZE = 0.5


def _square(x0: int, y0: int, size: int, *, shape=(100, 100)):
    m = np.zeros(shape, dtype=bool)
    m[y0 : y0 + size, x0 : x0 + size] = True
    return region_from_mask(1, m)


def _spots(points_px) -> pd.DataFrame:
    """Spots at pixel positions, expressed in microns."""
    arr = np.asarray(points_px, dtype=float).reshape(-1, 2)
    return pd.DataFrame(
        {"x_um": arr[:, 0] * PIXEL_SIZE, "y_um": arr[:, 1] * PIXEL_SIZE, "quality": 50.0}
    )


def test_counts_total_and_center() -> None:
    region = _square(10, 10, 20)
    shrunk = shrink_region(region, 2.0, PIXEL_SIZE)  # 4 px
    spots = _spots([(20, 20), (11, 11), (29, 15), (50, 50)])

    counts = count_spots_in_region(spots, region, shrunk, PIXEL_SIZE)
    assert counts.total == 3
    assert counts.center == 1
    assert counts.edge == 2
    assert counts.edge + counts.center == counts.total


def test_subpixel_positions_floor_to_pixel() -> None:
    region = _square(10, 10, 5)
    # 14.9 px floors to 14 (inside), 15.0 px is outside, 9.99 floors to 9 (outside).
    spots = _spots([(14.9, 12), (15.0, 12), (9.99, 12)])
    counts = count_spots_in_region(spots, region, region, PIXEL_SIZE)
    assert counts.total == 1


def test_empty_shrunk_region_counts_no_center_spots() -> None:
    region = _square(10, 10, 6)
    shrunk = shrink_region(region, 10.0, PIXEL_SIZE)
    assert shrunk.is_empty

    spots = _spots([(12, 12), (13, 13), (11, 14)])
    counts = count_spots_in_region(spots, region, shrunk, PIXEL_SIZE)
    assert counts == SpotCounts(total=3, center=0)


def test_no_spots() -> None:
    region = _square(10, 10, 6)
    empty = pd.DataFrame({"x_um": [], "y_um": [], "quality": []})
    assert count_spots_in_region(empty, region, region, PIXEL_SIZE) == SpotCounts(0, 0)
    xs, ys = spot_pixel_coords(empty, PIXEL_SIZE)
    assert xs.size == 0 and ys.size == 0


def test_center_not_contained_is_a_geometry_error() -> None:
    region = _square(10, 10, 6)
    elsewhere = _square(60, 60, 6)
    spots = _spots([(62, 62)])

    counts = count_spots_in_region(spots, region, elsewhere, PIXEL_SIZE)
    with pytest.raises(RegionGeometryError):
        counts.check(label=1)


def test_check_passes_for_consistent_counts() -> None:
    assert SpotCounts(total=4, center=1).check().edge == 3
