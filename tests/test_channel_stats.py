from __future__ import annotations

import numpy as np
import pytest

from channel_stats import measure_channels, region_statistics
from tile_geometry import region_from_mask


def _region(mask: np.ndarray):
    return region_from_mask(1, mask)


def test_uniform_region_has_zero_std() -> None:
    plane = np.full((20, 20), 7, dtype=np.uint16)
    m = np.zeros((20, 20), dtype=bool)
    m[5:10, 5:10] = True
    s = region_statistics(plane, _region(m))
    assert s.area == 25
    assert s.mean == pytest.approx(7.0)
    assert s.std == 0.0


def test_single_pixel_region() -> None:
    plane = np.zeros((10, 10), dtype=np.uint8)
    plane[3, 4] = 200
    m = np.zeros((10, 10), dtype=bool)
    m[3, 4] = True
    s = region_statistics(plane, _region(m))
    assert (s.area, s.mean, s.std) == (1, 200.0, 0.0)


def test_sample_standard_deviation() -> None:
    plane = np.zeros((4, 4), dtype=np.uint16)
    plane[1, 1:3] = [2, 4]
    plane[2, 1:3] = [4, 6]
    m = np.zeros((4, 4), dtype=bool)
    m[1:3, 1:3] = True

    s = region_statistics(plane, _region(m))
    assert s.mean == pytest.approx(4.0)
    # Sample (N-1) std of [2, 4, 4, 6]
    assert s.std == pytest.approx(np.std([2, 4, 4, 6], ddof=1))


def test_pixels_outside_mask_are_ignored() -> None:
    plane = np.full((10, 10), 1000, dtype=np.uint16)
    m = np.zeros((10, 10), dtype=bool)
    m[2:5, 2:5] = True
    m[3, 3] = False  # hole
    plane[2:5, 2:5] = 10
    s = region_statistics(plane, _region(m))
    assert s.area == 8
    assert s.mean == pytest.approx(10.0)


def test_measure_channels_area_consistent() -> None:
    planes = np.stack([np.full((8, 8), 5.0), np.arange(64, dtype=float).reshape(8, 8)])
    m = np.zeros((8, 8), dtype=bool)
    m[1:3, 1:4] = True

    area_px, area_um2, stats = measure_channels(planes, _region(m), pixel_size_um=0.5)
    assert area_px == 6
    assert area_um2 == pytest.approx(6 * 0.25)
    assert [s.area for s in stats] == [6, 6]
    assert stats[0].mean == pytest.approx(5.0)
    assert stats[1].mean == pytest.approx(np.mean([9, 10, 11, 17, 18, 19]))


def test_empty_region_raises() -> None:
    with pytest.raises(ValueError):
        region_statistics(np.zeros((4, 4)), _region(np.zeros((4, 4), dtype=bool)))
