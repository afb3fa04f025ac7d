from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any, Dict

import numpy as np
import yaml

# Allow running without packaging
REPO_ROOT = Path(__file__).resolve().parents[1]
import sys

sys.path.insert(0, str(REPO_ROOT / "src"))

from simulate_phantom import PhantomNucleus, TilePhantomParams, write_tile_pair  # noqa: E402


def _load_config(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _base_dir(config_path: Path) -> Path:
    root = os.environ.get("NTA_DATA_ROOT")
    if root:
        return Path(root).expanduser().resolve()
    return config_path.resolve().parent


def random_nuclei(cfg: Dict[str, Any], rng: np.random.Generator) -> tuple[PhantomNucleus, ...]:
    """Random disc nuclei; roughly one in four belongs to another object class."""
    height = int(cfg.get("sim_height", 256))
    width = int(cfg.get("sim_width", 256))
    n_nuclei = int(cfg.get("sim_num_nuclei", 8))
    max_foci = int(cfg.get("sim_max_foci", 5))

    nuclei: list[PhantomNucleus] = []
    for _ in range(n_nuclei):
        radius = int(rng.integers(10, 18))
        y = int(rng.integers(0, height))
        x = int(rng.integers(0, width))
        foci = []
        for _f in range(int(rng.integers(0, max_foci + 1))):
            angle = rng.uniform(0, 2 * np.pi)
            dist = rng.uniform(0, radius * 0.8)
            foci.append((float(dist * np.sin(angle)), float(dist * np.cos(angle))))
        nuclei.append(
            PhantomNucleus(
                center_y=y,
                center_x=x,
                radius=radius,
                class_label=1 if rng.uniform() > 0.25 else 2,
                foci=tuple(foci),
            )
        )
    return tuple(nuclei)


def main() -> int:
    ap = argparse.ArgumentParser(description="Generate synthetic raw/object-map tile pairs")
    ap.add_argument("--config", default="configs/phantom_tiles.yaml")
    ap.add_argument("--overwrite", action="store_true")
    args = ap.parse_args()

    cfg_path = Path(args.config)
    if not cfg_path.is_absolute():
        cfg_path = (REPO_ROOT / cfg_path).resolve()

    cfg = _load_config(cfg_path)
    base = _base_dir(cfg_path)
    raw_dir = base / str(cfg.get("raw_data_dir", "tiles/raw"))
    label_dir = base / str(cfg.get("object_maps_dir", "tiles/object_maps"))

    rng = np.random.default_rng(int(cfg.get("sim_seed", 42)))
    for i in range(int(cfg.get("sim_num_tiles", 3))):
        params = TilePhantomParams(
            height=int(cfg.get("sim_height", 256)),
            width=int(cfg.get("sim_width", 256)),
            n_channels=int(cfg.get("sim_n_channels", 2)),
            pixel_size_um=float(cfg.get("sim_pixel_size_um", 0.5)),
            nuclei=random_nuclei(cfg, rng),
            seed=int(rng.integers(0, 2**31 - 1)),
        )
        raw_path, label_path = write_tile_pair(
            raw_dir, label_dir, f"tile_{i:03d}", params, overwrite=args.overwrite
        )
        print(f"Wrote {raw_path.name} + {label_path.name}")

    print(f"Raw tiles: {raw_dir}")
    print(f"Object maps: {label_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
