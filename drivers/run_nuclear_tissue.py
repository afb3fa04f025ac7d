"""Nuclear tissue analysis driver.

- load a YAML config
- pair raw tiles with their Ilastik object prediction maps
- run the per-tile analysis on every pair
- write a run folder with the results table, QC overlays and a manifest

Outputs (run folder)
--------------------
- results.csv / results.parquet
- qc/<tile>.png (optional)
- run_manifest.yaml
- DONE
"""

from __future__ import annotations

import argparse
import os
import re
import subprocess
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Matplotlib: write PNGs without needing a display
import matplotlib
matplotlib.use("Agg")

# Allow running without packaging
REPO_ROOT = Path(__file__).resolve().parents[1]
import sys
sys.path.insert(0, str(REPO_ROOT / "src"))

from batch import run_batch  # noqa: E402
from results_table import write_results  # noqa: E402
from segmentation import ConnectedComponentSegmenter  # noqa: E402
from tile_pairing import DEFAULT_EXTENSION, DEFAULT_LABEL_TOKEN  # noqa: E402
from tile_pipeline import TileAnalysisParams  # noqa: E402
from vis_utils import write_qc_overlay  # noqa: E402


DATA_ROOT_ENV = "NTA_DATA_ROOT"

_PARAM_KEYS = set(TileAnalysisParams.__dataclass_fields__.keys())
_DRIVER_KEYS = {
    "raw_data_dir",
    "object_maps_dir",
    "output_runs_dir",
    "run_name",
    "pixel_size_um",
    "tile_extension",
    "label_token",
    "results_formats",
    "write_qc_overlays",
    "connectivity",
    "include_holes",
    "min_area_px",
}


def _load_config(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config must be a mapping; got {type(cfg).__name__}: {path}")
    unknown = sorted(set(cfg) - _PARAM_KEYS - _DRIVER_KEYS)
    if unknown:
        raise ValueError(f"Unknown config key(s) {unknown} in {path}")
    return cfg


def _base_dir(config_path: Path) -> Path:
    root = os.environ.get(DATA_ROOT_ENV)
    if root:
        return Path(root).expanduser().resolve()
    return config_path.resolve().parent


def _resolve_path(value: Any, base: Path) -> Path:
    path = Path(str(value)).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def _try_git_commit(repo_root: Path) -> Optional[str]:
    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(repo_root),
            stderr=subprocess.STDOUT,
            text=True,
        ).strip()
        return out or None
    except (OSError, subprocess.CalledProcessError):
        return None


def _safe_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_")
    return cleaned or "tile"


def _build_params(cfg: Dict[str, Any]) -> TileAnalysisParams:
    defaults = TileAnalysisParams()
    return TileAnalysisParams(
        spot_radius_um=float(cfg.get("spot_radius_um", defaults.spot_radius_um)),
        min_spot_quality=float(cfg.get("min_spot_quality", defaults.min_spot_quality)),
        nucleus_edge_um=float(cfg.get("nucleus_edge_um", defaults.nucleus_edge_um)),
        cell_label=int(cfg.get("cell_label", defaults.cell_label)),
        tile_overlap_percent=float(cfg.get("tile_overlap_percent", defaults.tile_overlap_percent)),
        spot_channel=int(cfg.get("spot_channel", defaults.spot_channel)),
        do_median_filter=bool(cfg.get("do_median_filter", defaults.do_median_filter)),
        do_subpixel_localization=bool(
            cfg.get("do_subpixel_localization", defaults.do_subpixel_localization)
        ),
    ).validate()


def _pixel_size_override(cfg: Dict[str, Any]) -> Optional[float]:
    raw = cfg.get("pixel_size_um", None)
    if raw is None:
        return None
    if isinstance(raw, str) and raw.strip().lower() == "auto":
        return None
    value = float(raw)
    if value <= 0:
        raise ValueError(f"pixel_size_um must be > 0 or 'auto'; got {raw!r}")
    return value


def run_nuclear_tissue(config_path: Path) -> Path:
    cfg = _load_config(config_path)
    base = _base_dir(config_path)

    for key in ("raw_data_dir", "object_maps_dir"):
        if not cfg.get(key):
            raise ValueError(f"Config must set {key}")
    raw_dir = _resolve_path(cfg["raw_data_dir"], base)
    label_dir = _resolve_path(cfg["object_maps_dir"], base)

    params = _build_params(cfg)
    pixel_size_um = _pixel_size_override(cfg)
    segmenter = ConnectedComponentSegmenter(
        connectivity=int(cfg.get("connectivity", 2)),
        include_holes=bool(cfg.get("include_holes", True)),
        min_area_px=int(cfg.get("min_area_px", 0)),
    )

    formats = cfg.get("results_formats", ["csv", "parquet"])
    if isinstance(formats, str):
        formats = [formats]
    write_qc = bool(cfg.get("write_qc_overlays", False))

    # Validate directories before creating anything on disk.
    for label, path in (("raw data directory", raw_dir), ("object maps directory", label_dir)):
        if not path.is_dir():
            raise FileNotFoundError(f"{label} not found: {path}")

    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    runs_dir = _resolve_path(cfg.get("output_runs_dir", "runs"), base)
    out_dir = runs_dir / f"{stamp}__{_safe_name(str(cfg.get('run_name', 'nuclear_tissue')))}"
    out_dir.mkdir(parents=True, exist_ok=False)

    qc_dir = out_dir / "qc"
    qc_paths: list[str] = []

    def _on_tile(pair, tile, result) -> None:
        if not write_qc or not result.regions:
            return
        qc_dir.mkdir(exist_ok=True)
        qc_path = qc_dir / f"{_safe_name(Path(pair.name).stem)}.png"
        write_qc_overlay(tile, result, params.nucleus_edge_um, qc_path)
        qc_paths.append(str(qc_path.relative_to(out_dir)))

    batch = run_batch(
        raw_dir,
        label_dir,
        params,
        segmenter=segmenter,
        pixel_size_um=pixel_size_um,
        extension=str(cfg.get("tile_extension", DEFAULT_EXTENSION)),
        label_token=str(cfg.get("label_token", DEFAULT_LABEL_TOKEN)),
        on_tile=_on_tile,
    )

    written = write_results(batch.table, out_dir, formats)

    manifest: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z"),
        "raw_data_dir": str(raw_dir),
        "object_maps_dir": str(label_dir),
        "output_dir": str(out_dir),
        "git_commit": _try_git_commit(REPO_ROOT),
        "env_name": os.environ.get("CONDA_DEFAULT_ENV"),
        "config_snapshot": cfg,
        "analysis_params": asdict(params),
        "segmenter": asdict(segmenter),
        "pixel_size_override_um": pixel_size_um,
        "num_tiles": len(batch.tiles),
        "num_rows": int(len(batch.table)),
        "tiles": [
            {
                "name": t.name,
                "pixel_size_um": float(t.pixel_size_um),
                "pixel_size_source": t.pixel_size_source,
                "n_channels": int(t.n_channels),
                "n_regions": int(t.n_regions),
                "n_admitted": int(t.n_admitted),
                "n_spots": int(t.n_spots),
                "warnings": list(t.warnings),
            }
            for t in batch.tiles
        ],
        "unpaired": [{"name": name, "expected_label": str(p)} for name, p in batch.unpaired],
        "outputs": {
            "results": {fmt: p.name for fmt, p in written.items()},
            "qc_overlays": qc_paths,
        },
    }

    with (out_dir / "run_manifest.yaml").open("w", encoding="utf-8") as f:
        yaml.safe_dump(manifest, f, sort_keys=False, allow_unicode=True)

    with (out_dir / "DONE").open("w", encoding="utf-8") as f:
        f.write(f"completed_at: {datetime.now(timezone.utc).isoformat()}\n")

    print(f"Nuclear tissue analysis complete: {out_dir} ({len(batch.table)} row(s))")
    return out_dir


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="ROI-based nuclear tissue analysis over a folder of tiles")
    p.add_argument(
        "--config",
        type=Path,
        default=Path("configs/nuclear_tissue.yaml"),
        help="Path to a YAML config file",
    )
    return p.parse_args()


def main() -> int:
    args = _parse_args()
    config_path = args.config
    if not config_path.is_absolute():
        config_path = (REPO_ROOT / config_path).resolve()
    run_nuclear_tissue(config_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
