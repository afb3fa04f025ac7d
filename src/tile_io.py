"""Tile I/O helpers.

Goal: keep TIFF format quirks out of kernels.

- Drivers handle filesystem paths and pixel-size policy.
- Kernels operate on in-memory arrays: raw tiles as (C, Y, X), label maps as (Y, X).

Raw tiles may carry extra Z/T axes; only the first plane of each is used,
which is what ImageJ measures on a freshly opened hyperstack.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import tifffile

from pixel_size_utils import infer_pixel_size_um_mean


# ImageJ treats an uncalibrated image as 1 unit per pixel.
UNCALIBRATED_PIXEL_SIZE_UM = 1.0


@dataclass(frozen=True, eq=False)
class TileImage:
    """One raw multichannel tile."""

    name: str
    planes: np.ndarray = field(repr=False)
    pixel_size_um: float
    pixel_size_source: str = ""

    def __post_init__(self) -> None:
        if self.planes.ndim != 3:
            raise ValueError(f"{self.name}: planes must be (C, Y, X); got shape={self.planes.shape}")
        if float(self.pixel_size_um) <= 0:
            raise ValueError(f"{self.name}: pixel_size_um must be > 0; got {self.pixel_size_um}")

    @property
    def n_channels(self) -> int:
        return int(self.planes.shape[0])

    @property
    def height(self) -> int:
        return int(self.planes.shape[1])

    @property
    def width(self) -> int:
        return int(self.planes.shape[2])


def _to_cyx(arr: np.ndarray, axes: str) -> np.ndarray:
    """Reduce a tifffile series to (C, Y, X).

    Axes other than C/Y/X take index 0. Without a C axis, a leading
    unnamed axis (``Q``/``I``) or RGB samples (``S``) is treated as the
    channel axis; otherwise a singleton channel axis is added.
    """
    axes = axes.upper()
    if len(axes) != arr.ndim:
        raise ValueError(f"axes {axes!r} do not match array with {arr.ndim} dimension(s)")

    if "Y" not in axes or "X" not in axes:
        raise ValueError(f"TIFF series has no Y/X axes (axes={axes!r})")

    channel_axis: Optional[str] = None
    if "C" in axes:
        channel_axis = "C"
    else:
        for candidate in ("S", "Q", "I"):
            if candidate in axes:
                channel_axis = candidate
                break

    index = []
    kept = []
    for ax in axes:
        if ax in ("Y", "X") or ax == channel_axis:
            index.append(slice(None))
            kept.append(ax)
        else:
            index.append(0)
    sub = arr[tuple(index)]

    if channel_axis is None:
        order = [kept.index("Y"), kept.index("X")]
        return np.transpose(sub, order)[np.newaxis, ...]

    order = [kept.index(channel_axis), kept.index("Y"), kept.index("X")]
    return np.transpose(sub, order)


def read_tile_planes(path: Path) -> Tuple[np.ndarray, str]:
    """Read a raw tile as (C, Y, X). Returns (planes, original_axes)."""
    with tifffile.TiffFile(str(path)) as tif:
        series = tif.series[0]
        axes = series.axes
        arr = np.asarray(series.asarray())
    return _to_cyx(arr, axes), axes


def read_label_map(path: Path) -> np.ndarray:
    """Read an object-class label map as a 2D integer array."""
    arr = np.squeeze(np.asarray(tifffile.imread(str(path))))
    if arr.ndim != 2:
        raise ValueError(f"label map must be 2D; got shape={arr.shape}: {path}")
    if not np.issubdtype(arr.dtype, np.integer):
        if not np.all(np.equal(np.mod(arr, 1), 0)):
            raise ValueError(f"label map has non-integer values ({arr.dtype}): {path}")
        arr = arr.astype(np.int64)
    return arr


def read_tile(path: Path, *, pixel_size_um: Optional[float] = None) -> TileImage:
    """Read a raw tile with its pixel size.

    ``pixel_size_um`` overrides the file metadata. Without an override and
    without usable metadata the tile is treated as uncalibrated (1 µm/px).
    """
    planes, _axes = read_tile_planes(path)

    if pixel_size_um is not None:
        ps = float(pixel_size_um)
        source = "config"
    else:
        meta_ps, note = infer_pixel_size_um_mean(path)
        if meta_ps is not None and meta_ps > 0:
            ps = float(meta_ps)
            source = f"metadata: {note}"
        else:
            ps = UNCALIBRATED_PIXEL_SIZE_UM
            source = f"uncalibrated ({note})"

    return TileImage(name=path.name, planes=planes, pixel_size_um=ps, pixel_size_source=source)
