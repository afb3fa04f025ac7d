"""Per-tile analysis: regions -> admitted regions -> spot counts + channel stats.

This module is pure computation over one tile held in memory. Segmentation
and spot detection are injected (:class:`SegmentationEngine`,
:class:`SpotDetector`) so the bookkeeping can run against fixed fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from channel_stats import measure_channels
from region_filter import AnalysisBounds, admitted_mask, analysis_bounds
from results_table import RoiRecord
from segmentation import ConnectedComponentSegmenter, SegmentationEngine, threshold_label_map
from spot_detection import LogSpotDetector, SpotDetectionParams, SpotDetector, empty_spots
from spot_partition import count_spots_in_region, spot_pixel_coords
from tile_geometry import LabelRegion, shrink_region
from tile_io import TileImage


@dataclass(frozen=True)
class TileAnalysisParams:
    """User-facing parameters of the tissue analysis.

    Ranges follow the ImageJ command dialog. ``min_spot_quality`` keeps
    only its lower limit: the declared upper limit (20) is below the
    customary default (40).
    """

    spot_radius_um: float = 1.125
    min_spot_quality: float = 40.0
    nucleus_edge_um: float = 1.5
    cell_label: int = 1
    tile_overlap_percent: float = 10.0

    # 1-based channel used for spot detection (DAPI in the usual staining setup).
    spot_channel: int = 1
    do_median_filter: bool = False
    do_subpixel_localization: bool = True

    def validate(self) -> "TileAnalysisParams":
        def _check_range(key: str, value: float, lo: float, hi: Optional[float]) -> None:
            if value < lo or (hi is not None and value > hi):
                upper = f"{hi:g}" if hi is not None else "inf"
                raise ValueError(f"{key} must be in [{lo:g}, {upper}]; got {value:g}")

        _check_range("spot_radius_um", float(self.spot_radius_um), 0.01, 20.0)
        _check_range("min_spot_quality", float(self.min_spot_quality), 0.01, None)
        _check_range("nucleus_edge_um", float(self.nucleus_edge_um), 0.01, 20.0)
        _check_range("tile_overlap_percent", float(self.tile_overlap_percent), 0.0, 50.0)
        if int(self.cell_label) < 1:
            raise ValueError(f"cell_label must be >= 1; got {self.cell_label}")
        if int(self.spot_channel) < 1:
            raise ValueError(f"spot_channel must be >= 1; got {self.spot_channel}")
        return self

    def spot_detection_params(self) -> SpotDetectionParams:
        return SpotDetectionParams(
            radius_um=float(self.spot_radius_um),
            min_quality=float(self.min_spot_quality),
            target_channel=int(self.spot_channel),
            threshold=0.0,
            do_median_filter=bool(self.do_median_filter),
            do_subpixel_localization=bool(self.do_subpixel_localization),
        )


@dataclass(frozen=True, eq=False)
class TileResult:
    """Everything produced for one tile (records plus QC material)."""

    name: str
    regions: Tuple[LabelRegion, ...] = ()
    admitted: Tuple[bool, ...] = ()
    bounds: Optional[AnalysisBounds] = None
    spots: pd.DataFrame = field(default_factory=empty_spots, repr=False)
    records: Tuple[RoiRecord, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def n_admitted(self) -> int:
        return int(sum(self.admitted))


def default_segmenter() -> SegmentationEngine:
    return ConnectedComponentSegmenter()


def default_detector(params: TileAnalysisParams) -> SpotDetector:
    return LogSpotDetector(params.spot_detection_params())


def measure_region(
    tile: TileImage,
    region: LabelRegion,
    spots: pd.DataFrame,
    params: TileAnalysisParams,
    *,
    pixel_coords: Optional[Tuple[np.ndarray, np.ndarray]] = None,
) -> RoiRecord:
    """Build the record of one admitted region."""
    shrunk = shrink_region(region, params.nucleus_edge_um, tile.pixel_size_um)
    counts = count_spots_in_region(
        spots,
        region,
        shrunk,
        tile.pixel_size_um,
        pixel_coords=pixel_coords,
    ).check(label=region.label)

    area_px, area_um2, stats = measure_channels(tile.planes, region, tile.pixel_size_um)

    return RoiRecord(
        name=tile.name,
        label=region.label,
        bbox=region.bbox,
        area_px=area_px,
        area_um2=area_um2,
        channel_means=tuple(s.mean for s in stats),
        channel_stds=tuple(s.std for s in stats),
        total_spots=counts.total,
        center_spots=counts.center,
    )


def analyze_tile(
    tile: TileImage,
    label_map: np.ndarray,
    params: TileAnalysisParams,
    *,
    segmenter: Optional[SegmentationEngine] = None,
    detector: Optional[SpotDetector] = None,
) -> TileResult:
    """Run the full per-tile analysis.

    Collaborator diagnostics are collected in ``TileResult.warnings`` with a
    ``[segmentation]``/``[spots]`` prefix; processing continues with whatever
    the collaborator returned.
    """
    segmenter = segmenter if segmenter is not None else default_segmenter()
    detector = detector if detector is not None else default_detector(params)

    if np.asarray(label_map).shape != (tile.height, tile.width):
        raise ValueError(
            f"{tile.name}: label map shape {np.asarray(label_map).shape} does not match "
            f"tile shape {(tile.height, tile.width)}"
        )

    mask = threshold_label_map(label_map, params.cell_label)
    segmentation = segmenter.segment(mask)
    warnings: List[str] = [f"[segmentation] {w}" for w in segmentation.warnings]

    regions = tuple(segmentation.regions)
    if not regions:
        return TileResult(name=tile.name, warnings=tuple(warnings))

    detection = detector.detect(tile.planes, tile.pixel_size_um)
    warnings.extend(f"[spots] {w}" for w in detection.warnings)
    spots = detection.spots

    bounds = analysis_bounds(tile.width, tile.height, params.tile_overlap_percent)
    admitted = admitted_mask(regions, bounds)

    coords = spot_pixel_coords(spots, tile.pixel_size_um)
    records = [
        measure_region(tile, region, spots, params, pixel_coords=coords)
        for region, ok in zip(regions, admitted)
        if ok
    ]

    return TileResult(
        name=tile.name,
        regions=regions,
        admitted=tuple(admitted),
        bounds=bounds,
        spots=spots,
        records=tuple(records),
        warnings=tuple(warnings),
    )
