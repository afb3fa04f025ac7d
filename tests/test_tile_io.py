from __future__ import annotations

import numpy as np
import pytest
import tifffile

from pixel_size_utils import infer_pixel_size_um
from simulate_phantom import PhantomNucleus, TilePhantomParams, write_tile_pair
from tile_io import UNCALIBRATED_PIXEL_SIZE_UM, _to_cyx, read_label_map, read_tile


def _phantom(**kw) -> TilePhantomParams:
    defaults = dict(
        height=64,
        width=80,
        n_channels=3,
        pixel_size_um=0.5,
        nuclei=(PhantomNucleus(center_y=30, center_x=40, radius=10, foci=((0.0, 0.0),)),),
    )
    defaults.update(kw)
    return TilePhantomParams(**defaults)


def test_imagej_hyperstack_round_trip(tmp_path) -> None:
    raw_path, label_path = write_tile_pair(tmp_path / "raw", tmp_path / "labels", "t0", _phantom())

    tile = read_tile(raw_path)
    assert tile.name == "t0.tif"
    assert tile.planes.shape == (3, 64, 80)
    assert tile.pixel_size_um == pytest.approx(0.5, rel=1e-6)
    assert tile.pixel_size_source.startswith("metadata")

    labels = read_label_map(label_path)
    assert labels.shape == (64, 80)
    assert labels[30, 40] == 1
    assert labels[0, 0] == 0
    # Channel c of the phantom is brighter inside nuclei by (c + 1) * nucleus_level.
    inside = tile.planes[:, 30, 35].astype(float)
    assert inside[0] < inside[1] < inside[2]


def test_pixel_size_override_wins(tmp_path) -> None:
    raw_path, _ = write_tile_pair(tmp_path / "raw", tmp_path / "labels", "t0", _phantom())
    tile = read_tile(raw_path, pixel_size_um=0.25)
    assert tile.pixel_size_um == 0.25
    assert tile.pixel_size_source == "config"


def test_plain_2d_tiff_is_single_channel_and_uncalibrated(tmp_path) -> None:
    path = tmp_path / "plain.tif"
    tifffile.imwrite(str(path), np.arange(20 * 30, dtype=np.uint16).reshape(20, 30))

    assert infer_pixel_size_um(path)[:2] == (None, None)
    tile = read_tile(path)
    assert tile.planes.shape == (1, 20, 30)
    assert tile.pixel_size_um == UNCALIBRATED_PIXEL_SIZE_UM
    assert tile.pixel_size_source.startswith("uncalibrated")


def test_to_cyx_axis_handling() -> None:
    arr = np.zeros((4, 2, 5, 6))  # Z, C, Y, X
    arr[0, 1] = 7
    cyx = _to_cyx(arr, "ZCYX")
    assert cyx.shape == (2, 5, 6)
    assert (cyx[1] == 7).all()

    rgb = np.zeros((5, 6, 3))
    assert _to_cyx(rgb, "YXS").shape == (3, 5, 6)

    with pytest.raises(ValueError):
        _to_cyx(np.zeros((5, 6)), "YXC")


def test_label_map_must_be_2d(tmp_path) -> None:
    path = tmp_path / "bad.tif"
    tifffile.imwrite(str(path), np.zeros((2, 5, 6), dtype=np.uint8))
    with pytest.raises(ValueError):
        read_label_map(path)
