"""Synthetic tissue tiles for tests and dry runs.

A phantom tile is a raw (C, Y, X) uint16 stack plus an Ilastik-style object
prediction map:

- channel 1: nuclear stain with bright foci (the spot channel)
- channels 2..C: flat nuclear signal at a per-channel level
- label map: disc nuclei painted with their object class id
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

import numpy as np
import tifffile
from skimage.draw import disk as draw_disk

from tile_pairing import DEFAULT_LABEL_TOKEN


@dataclass(frozen=True)
class PhantomNucleus:
    """Disc nucleus with foci at given offsets (pixels) from its center."""

    center_y: int
    center_x: int
    radius: int
    class_label: int = 1
    foci: Tuple[Tuple[float, float], ...] = ()


@dataclass(frozen=True)
class TilePhantomParams:
    height: int = 128
    width: int = 128
    n_channels: int = 2
    pixel_size_um: float = 0.5
    nuclei: Tuple[PhantomNucleus, ...] = field(default_factory=tuple)

    background_level: float = 100.0
    noise_sigma: float = 2.0
    nucleus_level: float = 400.0
    focus_amplitude: float = 3000.0
    focus_sigma_px: float = 1.5
    seed: int = 42


def generate_tile_phantom(params: TilePhantomParams) -> Tuple[np.ndarray, np.ndarray]:
    """Return (raw (C, Y, X) uint16, label map (Y, X) uint8)."""
    if params.height <= 0 or params.width <= 0:
        raise ValueError("height/width must be positive")
    if params.n_channels < 1:
        raise ValueError("n_channels must be >= 1")

    rng = np.random.default_rng(params.seed)
    shape = (params.height, params.width)

    raw = np.full((params.n_channels,) + shape, float(params.background_level), dtype=np.float32)
    raw += rng.normal(0.0, float(params.noise_sigma), size=raw.shape).astype(np.float32)
    labels = np.zeros(shape, dtype=np.uint8)

    half = int(max(2, np.ceil(3.0 * params.focus_sigma_px)))
    yy, xx = np.mgrid[-half : half + 1, -half : half + 1].astype(np.float32)
    denom = 2.0 * float(params.focus_sigma_px) ** 2

    for nucleus in params.nuclei:
        rr, cc = draw_disk((nucleus.center_y, nucleus.center_x), nucleus.radius, shape=shape)
        labels[rr, cc] = int(nucleus.class_label)
        for c in range(params.n_channels):
            raw[c, rr, cc] += float(params.nucleus_level) * (c + 1)

        for dy, dx in nucleus.foci:
            y_c = int(round(nucleus.center_y + dy))
            x_c = int(round(nucleus.center_x + dx))
            g = float(params.focus_amplitude) * np.exp(-(yy**2 + xx**2) / denom)

            y0i, y1i = max(0, y_c - half), min(params.height, y_c + half + 1)
            x0i, x1i = max(0, x_c - half), min(params.width, x_c + half + 1)
            gy0 = y0i - (y_c - half)
            gx0 = x0i - (x_c - half)
            raw[0, y0i:y1i, x0i:x1i] += g[gy0 : gy0 + (y1i - y0i), gx0 : gx0 + (x1i - x0i)]

    raw = np.clip(raw, 0, 65535).astype(np.uint16)
    return raw, labels


def write_tile_pair(
    raw_dir: Path,
    label_dir: Path,
    base_name: str,
    params: TilePhantomParams,
    *,
    overwrite: bool = False,
) -> Tuple[Path, Path]:
    """Write a calibrated ImageJ hyperstack and its object prediction map."""
    raw_dir = raw_dir.expanduser().resolve()
    label_dir = label_dir.expanduser().resolve()
    raw_dir.mkdir(parents=True, exist_ok=True)
    label_dir.mkdir(parents=True, exist_ok=True)

    raw_path = raw_dir / f"{base_name}.tif"
    label_path = label_dir / f"{base_name}{DEFAULT_LABEL_TOKEN}.tif"
    for p in (raw_path, label_path):
        if p.exists() and not overwrite:
            raise FileExistsError(
                f"Refusing to overwrite existing file: {p}. "
                "Pass --overwrite if you intend to replace it."
            )

    raw, labels = generate_tile_phantom(params)
    res = 1.0 / float(params.pixel_size_um)
    tifffile.imwrite(
        str(raw_path),
        raw,
        imagej=True,
        resolution=(res, res),
        metadata={"axes": "CYX", "unit": "um"},
    )
    tifffile.imwrite(str(label_path), labels)
    return raw_path, label_path
