from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest
import yaml

from batch import run_batch
from drivers.run_nuclear_tissue import run_nuclear_tissue
from simulate_phantom import PhantomNucleus, TilePhantomParams, write_tile_pair
from tile_pipeline import TileAnalysisParams


def _phantom(seed: int) -> TilePhantomParams:
    return TilePhantomParams(
        height=128,
        width=128,
        n_channels=2,
        pixel_size_um=0.5,
        nucleus_level=40.0,
        seed=seed,
        nuclei=(
            # admitted, two foci well inside the eroded center
            PhantomNucleus(center_y=40, center_x=40, radius=12, foci=((0.0, -4.0), (0.0, 4.0))),
            # touches the top edge: rejected
            PhantomNucleus(center_y=5, center_x=90, radius=8),
            # another object class: never segmented
            PhantomNucleus(center_y=90, center_x=90, radius=10, class_label=2, foci=((0.0, 0.0),)),
        ),
    )


def _write_config(tmp_path: Path, **overrides) -> Path:
    cfg = {
        "raw_data_dir": "tiles/raw",
        "object_maps_dir": "tiles/object_maps",
        "output_runs_dir": "runs",
        "run_name": "pytest",
        "pixel_size_um": "auto",
        "results_formats": ["csv", "parquet"],
        "write_qc_overlays": True,
    }
    cfg.update(overrides)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _no_data_root(monkeypatch):
    monkeypatch.delenv("NTA_DATA_ROOT", raising=False)


def test_driver_writes_run_folder(tmp_path) -> None:
    raw_dir = tmp_path / "tiles" / "raw"
    label_dir = tmp_path / "tiles" / "object_maps"
    write_tile_pair(raw_dir, label_dir, "tile_000", _phantom(1))
    write_tile_pair(raw_dir, label_dir, "tile_001", _phantom(2))
    # Raw tile without an object map, sorted between the paired ones: skipped, reported in the manifest.
    write_tile_pair(raw_dir, tmp_path / "elsewhere", "tile_000b", _phantom(3))

    out_dir = run_nuclear_tissue(_write_config(tmp_path))

    assert out_dir.parent == (tmp_path / "runs").resolve()
    assert (out_dir / "DONE").exists()

    df = pd.read_csv(out_dir / "results.csv")
    assert list(df["name"]) == ["tile_000.tif", "tile_001.tif"]
    assert list(df.columns[:8]) == [
        "name", "label", "bbox_x", "bbox_y", "bbox_width", "bbox_height", "area_px", "area_um2",
    ]
    assert list(df.columns[-3:]) == ["edge_spots", "center_spots", "total_spots"]
    assert (df["total_spots"] == 2).all()
    assert (df["center_spots"] == 2).all()
    assert (df["edge_spots"] == 0).all()
    assert df["area_um2"].to_numpy() == pytest.approx(df["area_px"].to_numpy() * 0.25)
    # Channel 2 is brighter inside nuclei than channel 1 (no foci there).
    assert (df["ch2_mean"] > 150).all()

    pq = pd.read_parquet(out_dir / "results.parquet")
    assert len(pq) == 2

    manifest = yaml.safe_load((out_dir / "run_manifest.yaml").read_text(encoding="utf-8"))
    assert manifest["num_tiles"] == 2
    assert manifest["num_rows"] == 2
    assert [u["name"] for u in manifest["unpaired"]] == ["tile_000b.tif"]
    assert [t["name"] for t in manifest["tiles"]] == ["tile_000.tif", "tile_001.tif"]
    assert [t["n_regions"] for t in manifest["tiles"]] == [2, 2]
    assert [t["n_admitted"] for t in manifest["tiles"]] == [1, 1]
    assert all(t["pixel_size_um"] == pytest.approx(0.5) for t in manifest["tiles"])
    assert len(manifest["outputs"]["qc_overlays"]) == 2
    for rel in manifest["outputs"]["qc_overlays"]:
        assert (out_dir / rel).exists()


def test_empty_directory_gives_empty_table(tmp_path) -> None:
    (tmp_path / "tiles" / "raw").mkdir(parents=True)
    (tmp_path / "tiles" / "object_maps").mkdir(parents=True)

    out_dir = run_nuclear_tissue(_write_config(tmp_path, results_formats=["csv"]))
    df = pd.read_csv(out_dir / "results.csv")
    assert df.empty
    assert "total_spots" in df.columns
    assert (out_dir / "DONE").exists()


def test_missing_directory_fails_before_output(tmp_path) -> None:
    (tmp_path / "tiles" / "object_maps").mkdir(parents=True)
    with pytest.raises(FileNotFoundError):
        run_nuclear_tissue(_write_config(tmp_path))
    assert not (tmp_path / "runs").exists()


def test_unknown_config_key(tmp_path) -> None:
    with pytest.raises(ValueError, match="min_spot_qualty"):
        run_nuclear_tissue(_write_config(tmp_path, min_spot_qualty=10))


def test_data_root_env(tmp_path, monkeypatch) -> None:
    data_root = tmp_path / "data"
    write_tile_pair(data_root / "tiles" / "raw", data_root / "tiles" / "object_maps", "t", _phantom(4))
    cfg_dir = tmp_path / "cfg"
    cfg_dir.mkdir()
    monkeypatch.setenv("NTA_DATA_ROOT", str(data_root))

    out_dir = run_nuclear_tissue(_write_config(cfg_dir, results_formats=["csv"]))
    assert out_dir.parent == (data_root / "runs").resolve()
    assert len(pd.read_csv(out_dir / "results.csv")) == 1


def test_pixel_size_override_mismatch_warns(tmp_path, capsys) -> None:
    raw_dir = tmp_path / "raw"
    label_dir = tmp_path / "labels"
    write_tile_pair(raw_dir, label_dir, "t", _phantom(5))

    batch = run_batch(raw_dir, label_dir, TileAnalysisParams(), pixel_size_um=1.0)
    out = capsys.readouterr().out
    assert "WARNING" in out and "[pixel_size]" in out
    assert batch.tiles[0].pixel_size_um == 1.0
    assert batch.tiles[0].pixel_size_source == "config"
    assert batch.table["area_um2"].iloc[0] == batch.table["area_px"].iloc[0]


def test_driver_module_docstring() -> None:
    import drivers.run_nuclear_tissue as driver

    assert driver.__doc__ is not None
    assert driver.__doc__.startswith("Nuclear tissue analysis driver.")
