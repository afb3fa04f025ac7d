"""Batch analysis over a directory of paired tiles.

Tiles are processed one at a time in pairing order; each tile's arrays are
dropped once its records are appended. The result table keeps tile order,
then region discovery order.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pandas as pd

from results_table import RoiRecord, records_to_frame
from segmentation import SegmentationEngine
from spot_detection import SpotDetector
from tile_io import TileImage, read_label_map, read_tile
from tile_pairing import DEFAULT_EXTENSION, DEFAULT_LABEL_TOKEN, TilePair, pair_tiles
from tile_pipeline import TileAnalysisParams, TileResult, analyze_tile, default_detector, default_segmenter
from pixel_size_utils import infer_pixel_size_um_mean


# Relative mismatch between configured and metadata pixel size that triggers a warning.
PIXEL_SIZE_MISMATCH_REL = 0.02


@dataclass(frozen=True)
class TileSummary:
    name: str
    pixel_size_um: float
    pixel_size_source: str
    n_channels: int
    n_regions: int
    n_admitted: int
    n_spots: int
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True, eq=False)
class BatchResult:
    table: pd.DataFrame
    tiles: Tuple[TileSummary, ...]
    # (raw tile name, expected label path)
    unpaired: Tuple[Tuple[str, Path], ...] = ()


def _check_pixel_size_override(path: Path, pixel_size_um: float) -> Optional[str]:
    meta_ps, note = infer_pixel_size_um_mean(path)
    if meta_ps is None or meta_ps <= 0:
        return None
    rel = abs(float(pixel_size_um) - float(meta_ps)) / float(meta_ps)
    if rel <= PIXEL_SIZE_MISMATCH_REL:
        return None
    return (
        f"[pixel_size] pixel_size_um={float(pixel_size_um):.4f} µm/px from config, but metadata "
        f"suggests {float(meta_ps):.4f} µm/px ({100.0 * rel:.1f}% difference; {note})"
    )


def run_batch(
    raw_dir: Path,
    label_dir: Path,
    params: TileAnalysisParams,
    *,
    segmenter: Optional[SegmentationEngine] = None,
    detector: Optional[SpotDetector] = None,
    pixel_size_um: Optional[float] = None,
    extension: str = DEFAULT_EXTENSION,
    label_token: str = DEFAULT_LABEL_TOKEN,
    on_tile: Optional[Callable[[TilePair, TileImage, TileResult], None]] = None,
) -> BatchResult:
    """Analyse every paired tile and assemble one results table.

    Parameters
    ----------
    raw_dir, label_dir:
        Directories holding raw tiles and Ilastik object maps. Missing
        directories raise before any tile is processed.
    params:
        Analysis parameters (validated here).
    segmenter, detector:
        Collaborators; defaults are connected components and the LoG detector.
    pixel_size_um:
        Optional override of the per-file pixel size metadata.
    on_tile:
        Called after each tile with the pair, the tile and its result
        (QC overlays hook in here).
    """
    params.validate()
    segmenter = segmenter if segmenter is not None else default_segmenter()
    detector = detector if detector is not None else default_detector(params)

    pairing = pair_tiles(raw_dir, label_dir, extension=extension, label_token=label_token)
    n_pairs = len(pairing.pairs)
    print(f"[pairing] {n_pairs} paired tile(s), {len(pairing.unpaired)} without a label map")
    for name, expected in pairing.unpaired:
        print(f"[pairing] WARNING: skipping {name}: label map not found ({expected})")

    records: List[RoiRecord] = []
    summaries: List[TileSummary] = []
    for idx, pair in enumerate(pairing.pairs, start=1):
        print(f"[tile {idx}/{n_pairs}] {pair.name}")
        tile = read_tile(pair.raw_path, pixel_size_um=pixel_size_um)
        label_map = read_label_map(pair.label_path)

        extra: List[str] = []
        if pixel_size_um is not None:
            mismatch = _check_pixel_size_override(pair.raw_path, pixel_size_um)
            if mismatch:
                extra.append(mismatch)

        result = analyze_tile(tile, label_map, params, segmenter=segmenter, detector=detector)
        tile_warnings = tuple(extra) + result.warnings
        for w in tile_warnings:
            print(f"[tile {idx}/{n_pairs}] WARNING: {w}")

        if not result.regions:
            print(f"[tile {idx}/{n_pairs}] no objects with label {params.cell_label}; skipped")
        else:
            print(
                f"[tile {idx}/{n_pairs}] {len(result.regions)} region(s), "
                f"{result.n_admitted} admitted, {len(result.spots)} spot(s)"
            )

        records.extend(result.records)
        summaries.append(
            TileSummary(
                name=tile.name,
                pixel_size_um=float(tile.pixel_size_um),
                pixel_size_source=tile.pixel_size_source,
                n_channels=tile.n_channels,
                n_regions=len(result.regions),
                n_admitted=result.n_admitted,
                n_spots=int(len(result.spots)),
                warnings=tile_warnings,
            )
        )
        if on_tile is not None:
            on_tile(pair, tile, result)

    return BatchResult(
        table=records_to_frame(records),
        tiles=tuple(summaries),
        unpaired=pairing.unpaired,
    )
