"""Region geometry helpers: pixel/micron conversion, bounding boxes, erosion.

Regions are stored as a boolean mask cropped to their bounding box, so
containment tests and statistics are plain numpy indexing.

Coordinate conventions
----------------------
- ``x`` is the column index, ``y`` is the row index (ImageJ convention).
- Bounding boxes follow ImageJ's ``Rectangle``: ``(min_x, min_y, width, height)``
  with exclusive ``max_x = min_x + width``.
- Physical positions are in microns; pixel ``i`` sits at ``i * pixel_size_um``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from scipy.ndimage import distance_transform_edt


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounding box in pixel coordinates."""

    min_x: int
    min_y: int
    width: int
    height: int

    @property
    def max_x(self) -> int:
        return self.min_x + self.width

    @property
    def max_y(self) -> int:
        return self.min_y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True, eq=False)
class LabelRegion:
    """One connected region (candidate nucleus) of a tile.

    Parameters
    ----------
    label:
        1-based discovery index within the tile.
    bbox:
        Bounding box of the region in tile pixel coordinates.
    mask:
        Boolean array of shape ``(bbox.height, bbox.width)``.
    """

    label: int
    bbox: BoundingBox
    mask: np.ndarray = field(repr=False)

    def __post_init__(self) -> None:
        m = np.array(self.mask, dtype=bool, copy=True)
        if m.shape != (self.bbox.height, self.bbox.width):
            raise ValueError(
                f"mask shape {m.shape} does not match bbox "
                f"(height={self.bbox.height}, width={self.bbox.width})"
            )
        m.setflags(write=False)
        object.__setattr__(self, "mask", m)

    @property
    def area(self) -> int:
        """Pixel count."""
        return int(self.mask.sum())

    @property
    def is_empty(self) -> bool:
        return self.area == 0

    @property
    def slices(self) -> Tuple[slice, slice]:
        """(row, col) slices of the bounding box inside the tile."""
        b = self.bbox
        return slice(b.min_y, b.max_y), slice(b.min_x, b.max_x)

    def global_coords(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (ys, xs) tile coordinates of every region pixel."""
        ys, xs = np.nonzero(self.mask)
        return ys + self.bbox.min_y, xs + self.bbox.min_x

    def contains(self, x: int, y: int) -> bool:
        return bool(self.contains_points(np.asarray([x]), np.asarray([y]))[0])

    def contains_points(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Vectorized pixel membership test (boundary pixels included)."""
        xs = np.asarray(xs, dtype=np.int64)
        ys = np.asarray(ys, dtype=np.int64)
        out = np.zeros(xs.shape, dtype=bool)
        if self.bbox.is_empty or xs.size == 0:
            return out

        lx = xs - self.bbox.min_x
        ly = ys - self.bbox.min_y
        inside = (lx >= 0) & (lx < self.bbox.width) & (ly >= 0) & (ly < self.bbox.height)
        out[inside] = self.mask[ly[inside], lx[inside]]
        return out


def to_pixels(length_um: float, pixel_size_um: float) -> float:
    """Convert a physical length (µm) to pixels."""
    pixel_size_um = float(pixel_size_um)
    if pixel_size_um <= 0:
        raise ValueError(f"pixel_size_um must be > 0; got {pixel_size_um}")
    return float(length_um) / pixel_size_um


def pixel_coordinate(position_um, pixel_size_um: float):
    """Floor a physical position (scalar or array) onto the pixel grid."""
    if float(pixel_size_um) <= 0:
        raise ValueError(f"pixel_size_um must be > 0; got {pixel_size_um}")
    px = np.floor(np.asarray(position_um, dtype=float) / float(pixel_size_um))
    if px.ndim == 0:
        return int(px)
    return px.astype(np.int64)


def bounding_box(region: LabelRegion) -> BoundingBox:
    return region.bbox


def region_from_mask(label: int, mask: np.ndarray, *, offset_x: int = 0, offset_y: int = 0) -> LabelRegion:
    """Build a region from a boolean mask, cropping to its bounding box.

    ``offset_x``/``offset_y`` locate ``mask[0, 0]`` in tile coordinates. An
    all-False mask gives an empty region anchored at the offset.
    """
    m = np.asarray(mask, dtype=bool)
    if m.ndim != 2:
        raise ValueError(f"mask must be 2D; got shape={m.shape}")

    rows = np.flatnonzero(m.any(axis=1))
    cols = np.flatnonzero(m.any(axis=0))
    if rows.size == 0:
        return LabelRegion(
            label=int(label),
            bbox=BoundingBox(int(offset_x), int(offset_y), 0, 0),
            mask=np.zeros((0, 0), dtype=bool),
        )

    r0, r1 = int(rows[0]), int(rows[-1]) + 1
    c0, c1 = int(cols[0]), int(cols[-1]) + 1
    return LabelRegion(
        label=int(label),
        bbox=BoundingBox(int(offset_x) + c0, int(offset_y) + r0, c1 - c0, r1 - r0),
        mask=m[r0:r1, c0:c1].copy(),
    )


def _round_half_up(x: float) -> int:
    return int(np.floor(float(x) + 0.5))


def shrink_region(region: LabelRegion, margin_um: float, pixel_size_um: float) -> LabelRegion:
    """Erode ``region`` inward by ``margin_um``.

    Uses the same construction as ImageJ's ``RoiEnlarger`` shrink: pad the
    mask by one pixel, compute the Euclidean distance map, and keep pixels
    whose rounded distance to the outside is at least ``n + 1`` where ``n`` is
    the margin in pixels rounded to the nearest integer.

    The result is always a subset of ``region``. It is empty when the margin
    exceeds the region's half-width.
    """
    margin_px = to_pixels(margin_um, pixel_size_um)
    if margin_px < 0:
        raise ValueError(f"margin_um must be >= 0; got {margin_um}")

    n = _round_half_up(margin_px)
    if n == 0 or region.is_empty:
        return region

    padded = np.pad(region.mask, 1, mode="constant", constant_values=False)
    edm = distance_transform_edt(padded)[1:-1, 1:-1]
    keep = (np.floor(edm + 0.5) >= n + 1) & region.mask

    return region_from_mask(
        region.label,
        keep,
        offset_x=region.bbox.min_x,
        offset_y=region.bbox.min_y,
    )
