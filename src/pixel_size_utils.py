"""Pixel-size inference for microscopy TIFF tiles.

Supported metadata, in order of preference:

1) OME-XML ``PhysicalSizeX/Y`` (OME-TIFF)
2) ImageJ hyperstack metadata: ``unit`` in the ImageJ description plus the
   X/YResolution tags (pixels per unit)
3) Plain TIFF resolution tags with ResolutionUnit inch/cm

All returned sizes are in **µm/px**.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import numpy as np


def _as_float(x) -> Optional[float]:
    """Best-effort conversion of a TIFF metadata scalar to float."""
    if x is None:
        return None

    if isinstance(x, np.generic):
        try:
            return float(x)
        except (TypeError, ValueError):
            return None

    if isinstance(x, tuple) and len(x) == 2:
        # TIFF RATIONAL: (numerator, denominator)
        try:
            num, den = float(x[0]), float(x[1])
        except (TypeError, ValueError):
            return None
        return num / den if den else None

    if isinstance(x, (bytes, bytearray)):
        x = x.decode("utf-8", errors="replace")

    if isinstance(x, str):
        try:
            return float(x.strip())
        except ValueError:
            return None

    try:
        return float(x)
    except (TypeError, ValueError):
        return None


def _unit_to_um_factor(unit: str) -> Optional[float]:
    u = unit.strip().lower()
    u = u.replace("μ", "u").replace("µ", "u").replace("\\u00b5", "u")
    if u in ("nm", "nanometer", "nanometers"):
        return 1e-3
    if u in ("um", "micrometer", "micrometers", "micron", "microns"):
        return 1.0
    if u in ("mm", "millimeter", "millimeters"):
        return 1e3
    if u in ("cm", "centimeter", "centimeters"):
        return 1e4
    if u in ("m", "meter", "meters"):
        return 1e6
    return None


def _ome_pixel_size(ome: str) -> Optional[Tuple[float, float, str]]:
    import xml.etree.ElementTree as ET

    try:
        root = ET.fromstring(ome)
    except ET.ParseError:
        return None
    pixels = root.find(".//{*}Pixels")
    if pixels is None:
        return None

    psx = _as_float(pixels.attrib.get("PhysicalSizeX"))
    psy = _as_float(pixels.attrib.get("PhysicalSizeY"))
    ux = pixels.attrib.get("PhysicalSizeXUnit", pixels.attrib.get("PhysicalSizeUnit", "µm"))
    uy = pixels.attrib.get("PhysicalSizeYUnit", pixels.attrib.get("PhysicalSizeUnit", "µm"))
    fx = _unit_to_um_factor(ux or "µm")
    fy = _unit_to_um_factor(uy or "µm")
    if psx is None or psy is None or not fx or not fy:
        return None
    return psy * fy, psx * fx, f"OME metadata (PhysicalSizeX/Y in {ux}/{uy})"


def inspect_tiff_pixel_size(path: Path) -> Tuple[Optional[float], Optional[float], str]:
    """Return (px_size_y_um, px_size_x_um, note) from a TIFF."""
    import tifffile

    with tifffile.TiffFile(str(path)) as tif:
        ome = tif.ome_metadata
        if ome:
            found = _ome_pixel_size(ome)
            if found is not None:
                return found

        tags = tif.pages[0].tags
        xres = _as_float(tags["XResolution"].value) if "XResolution" in tags else None
        yres = _as_float(tags["YResolution"].value) if "YResolution" in tags else None
        if not xres or not yres or xres <= 0 or yres <= 0:
            return None, None, "No usable pixel size metadata found in TIFF."

        ij = tif.imagej_metadata or {}
        ij_unit = ij.get("unit")
        if ij_unit:
            factor = _unit_to_um_factor(str(ij_unit))
            if factor is not None:
                return (
                    factor / yres,
                    factor / xres,
                    f"ImageJ metadata (unit={ij_unit})",
                )

        unit = tags["ResolutionUnit"].value if "ResolutionUnit" in tags else None
        if unit == 2:
            return 25400.0 / yres, 25400.0 / xres, "TIFF resolution tags (ResolutionUnit=inch)"
        if unit == 3:
            return 10000.0 / yres, 10000.0 / xres, "TIFF resolution tags (ResolutionUnit=cm)"

    return None, None, "No usable pixel size metadata found in TIFF."


def infer_pixel_size_um(path: Path) -> Tuple[Optional[float], Optional[float], str]:
    """Infer XY pixel size (µm/px) from an image file."""
    ext = path.suffix.lower()
    if ext in (".tif", ".tiff"):
        return inspect_tiff_pixel_size(path)
    return None, None, f"Unsupported extension: {ext}"


def infer_pixel_size_um_mean(path: Path) -> Tuple[Optional[float], str]:
    """Return (mean_xy_um, note)."""
    py_um, px_um, note = infer_pixel_size_um(path)
    if py_um is None or px_um is None:
        return None, note
    return 0.5 * (float(py_um) + float(px_um)), note
