"""Results table: one row per admitted region.

Column contract
---------------
``name, label, bbox_x, bbox_y, bbox_width, bbox_height, area_px, area_um2,
ch{i}_mean, ch{i}_std (i = 1..C), edge_spots, center_spots, total_spots``

Rows keep the order in which they were produced (tile enumeration order,
then region discovery order within a tile). Nothing here re-sorts.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from tile_geometry import BoundingBox


LEADING_COLUMNS = [
    "name",
    "label",
    "bbox_x",
    "bbox_y",
    "bbox_width",
    "bbox_height",
    "area_px",
    "area_um2",
]
TRAILING_COLUMNS = ["edge_spots", "center_spots", "total_spots"]


def channel_columns(n_channels: int) -> List[str]:
    cols: List[str] = []
    for c in range(1, int(n_channels) + 1):
        cols.extend([f"ch{c}_mean", f"ch{c}_std"])
    return cols


@dataclass(frozen=True)
class RoiRecord:
    """Measurements of one admitted region."""

    name: str
    label: int
    bbox: BoundingBox
    area_px: int
    area_um2: float
    channel_means: Tuple[float, ...]
    channel_stds: Tuple[float, ...]
    total_spots: int
    center_spots: int

    def __post_init__(self) -> None:
        if len(self.channel_means) != len(self.channel_stds):
            raise ValueError(
                f"{self.name} region {self.label}: {len(self.channel_means)} means "
                f"but {len(self.channel_stds)} stds"
            )

    @property
    def edge_spots(self) -> int:
        return self.total_spots - self.center_spots

    @property
    def n_channels(self) -> int:
        return len(self.channel_means)

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "name": self.name,
            "label": int(self.label),
            "bbox_x": int(self.bbox.min_x),
            "bbox_y": int(self.bbox.min_y),
            "bbox_width": int(self.bbox.width),
            "bbox_height": int(self.bbox.height),
            "area_px": int(self.area_px),
            "area_um2": float(self.area_um2),
        }
        for c, (mean, std) in enumerate(zip(self.channel_means, self.channel_stds), start=1):
            row[f"ch{c}_mean"] = float(mean)
            row[f"ch{c}_std"] = float(std)
        row["edge_spots"] = int(self.edge_spots)
        row["center_spots"] = int(self.center_spots)
        row["total_spots"] = int(self.total_spots)
        return row


def records_to_frame(records: Iterable[RoiRecord]) -> pd.DataFrame:
    """Build the results table.

    Tiles with different channel counts are allowed; missing channel columns
    are NaN for tiles with fewer channels.
    """
    records = list(records)
    n_channels = max((r.n_channels for r in records), default=0)
    columns = LEADING_COLUMNS + channel_columns(n_channels) + TRAILING_COLUMNS
    if not records:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame([r.to_row() for r in records])
    return df.reindex(columns=columns)


def write_results(df: pd.DataFrame, out_dir: Path, formats: Sequence[str] = ("csv", "parquet")) -> Dict[str, Path]:
    """Write the results table. Returns {format: path}."""
    out: Dict[str, Path] = {}
    for fmt in formats:
        fmt = str(fmt).lower()
        if fmt == "csv":
            path = out_dir / "results.csv"
            df.to_csv(path, index=False)
        elif fmt == "parquet":
            path = out_dir / "results.parquet"
            df.to_parquet(path, index=False)
        else:
            raise ValueError(f"Unsupported results format: {fmt!r} (expected 'csv' or 'parquet')")
        out[fmt] = path
    return out
