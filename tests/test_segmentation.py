from __future__ import annotations

import numpy as np
import pytest

from segmentation import ConnectedComponentSegmenter, threshold_label_map
from tile_geometry import BoundingBox


def test_threshold_keeps_only_target_class() -> None:
    label_map = np.asarray([[0, 1, 2], [1, 1, 3], [0, 2, 1]], dtype=np.uint8)
    mask = threshold_label_map(label_map, 1)
    assert mask.tolist() == [[False, True, False], [True, True, False], [False, False, True]]
    with pytest.raises(ValueError):
        threshold_label_map(label_map, 0)


def test_components_in_raster_order() -> None:
    mask = np.zeros((30, 30), dtype=bool)
    mask[20:25, 2:6] = True   # found last (lowest top row)
    mask[3:8, 15:20] = True   # found first
    mask[10:12, 1:3] = True

    seg = ConnectedComponentSegmenter().segment(mask)
    assert [r.label for r in seg.regions] == [1, 2, 3]
    assert [r.bbox for r in seg.regions] == [
        BoundingBox(15, 3, 5, 5),
        BoundingBox(1, 10, 2, 2),
        BoundingBox(2, 20, 4, 5),
    ]
    assert seg.warnings == ()


def test_diagonal_pixels_are_one_component() -> None:
    mask = np.zeros((10, 10), dtype=bool)
    mask[2, 2] = mask[3, 3] = mask[4, 4] = True
    assert len(ConnectedComponentSegmenter().segment(mask).regions) == 1
    assert len(ConnectedComponentSegmenter(connectivity=1).segment(mask).regions) == 3


def test_interior_holes_belong_to_region() -> None:
    mask = np.zeros((12, 12), dtype=bool)
    mask[2:9, 2:9] = True
    mask[4:7, 4:7] = False  # 9-pixel hole

    filled = ConnectedComponentSegmenter().segment(mask).regions[0]
    assert filled.area == 49
    assert filled.contains(5, 5)

    holed = ConnectedComponentSegmenter(include_holes=False).segment(mask).regions[0]
    assert holed.area == 40
    assert not holed.contains(5, 5)


def test_min_area_drops_small_components_with_warning() -> None:
    mask = np.zeros((20, 20), dtype=bool)
    mask[1, 1] = True
    mask[10:15, 10:15] = True
    seg = ConnectedComponentSegmenter(min_area_px=4).segment(mask)
    assert len(seg.regions) == 1
    assert seg.regions[0].label == 1
    assert len(seg.warnings) == 1


def test_empty_mask_gives_no_regions() -> None:
    seg = ConnectedComponentSegmenter().segment(np.zeros((5, 5), dtype=bool))
    assert seg.regions == ()
