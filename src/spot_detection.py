"""Spot detection: TrackMate-style Laplacian of Gaussian (LoG) detector.

This kernel is **pure computation** (no filesystem I/O).

Detection follows TrackMate's ``LogDetector`` with the settings the tissue
analysis uses:

1) Build a calibrated LoG kernel tuned to the target blob radius.
2) Convolve the target channel with this kernel (FFT-based, mirrored borders,
   same-size output).
3) Keep *strict* local maxima of the response in a 3×3 neighborhood whose
   response exceeds the detector threshold (0 by default).
4) Optionally refine positions to sub-pixel precision.
5) Keep spots with ``quality >= min_quality`` (TrackMate QUALITY feature filter).

Quality is the LoG response at the integer peak.

Attribution note: TrackMate is a Fiji plugin distributed under the GNU GPL v3.
This module is a Python reimplementation meant to reproduce its behavior.

Positions are reported the way TrackMate reports ``POSITION_X/Y``: pixel index
times the pixel size, in microns.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol, Tuple

import numpy as np
import pandas as pd
from scipy.ndimage import maximum_filter, median_filter
from scipy.signal import fftconvolve


SPOT_COLUMNS = ["x_um", "y_um", "quality", "x_px", "y_px"]


@dataclass(frozen=True)
class SpotDetectionParams:
    """Parameters for LoG spot detection.

    Parameter mapping vs TrackMate
    ------------------------------
    - ``radius_um``       -> RADIUS
    - ``threshold``       -> THRESHOLD (on the LoG response)
    - ``target_channel``  -> TARGET_CHANNEL (1-based)
    - ``do_median_filter`` / ``do_subpixel_localization`` -> same names
    - ``min_quality``     -> QUALITY feature filter (keep ``quality >= min_quality``)
    """

    radius_um: float = 1.125
    min_quality: float = 40.0
    target_channel: int = 1
    threshold: float = 0.0
    do_median_filter: bool = False
    do_subpixel_localization: bool = True

    # TrackMate uses a strict 3×3 neighborhood (RectangleShape(1)).
    se_size: int = 3


@dataclass(frozen=True)
class SpotDetection:
    """Spots found in one tile plus any diagnostics from the detector."""

    spots: pd.DataFrame
    warnings: Tuple[str, ...] = ()


class SpotDetector(Protocol):
    def detect(self, planes: np.ndarray, pixel_size_um: float) -> SpotDetection:
        ...


def empty_spots() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "x_um": pd.Series(dtype=float),
            "y_um": pd.Series(dtype=float),
            "quality": pd.Series(dtype=float),
            "x_px": pd.Series(dtype=float),
            "y_px": pd.Series(dtype=float),
        }
    )


def _trackmate_log_kernel(radius: float, calibration: Tuple[float, float]) -> np.ndarray:
    """Create a 2D LoG kernel using the same formula as TrackMate.

    Internally TrackMate uses ``σ = radius / √nDims`` and maps the kernel onto
    the pixel grid using ``calibration`` (pixel sizes).
    """
    radius = float(radius)
    if radius <= 0:
        raise ValueError("radius must be > 0")

    cal_y, cal_x = (float(calibration[0]), float(calibration[1]))
    if cal_y <= 0 or cal_x <= 0:
        raise ValueError("calibration values must be > 0")

    n_dims = 2
    sigma = radius / np.sqrt(n_dims)

    sigma_px_y = sigma / cal_y
    sigma_px_x = sigma / cal_x

    # hksize = max(2, int(3*sigmaPixels + 0.5) + 1)
    hks_y = max(2, int(3.0 * sigma_px_y + 0.5) + 1)
    hks_x = max(2, int(3.0 * sigma_px_x + 0.5) + 1)

    size_y = 3 + 2 * hks_y
    size_x = 3 + 2 * hks_x
    mid_y = 1 + hks_y
    mid_x = 1 + hks_x

    yy, xx = np.indices((size_y, size_x), dtype=np.float64)
    y_phys = cal_y * (yy - mid_y)
    x_phys = cal_x * (xx - mid_x)

    sumx2 = y_phys * y_phys + x_phys * x_phys

    mantissa = (
        (1.0 / (sigma_px_y * sigma_px_y)) * (y_phys * y_phys / (sigma * sigma) - 1.0)
        + (1.0 / (sigma_px_x * sigma_px_x)) * (x_phys * x_phys / (sigma * sigma) - 1.0)
    )
    exponent = -sumx2 / (2.0 * sigma * sigma)

    # C = 1/(π σ_px0^2), σ_px0 being the first dimension.
    C = 1.0 / (np.pi * sigma_px_y * sigma_px_y)

    kernel = -C * mantissa * np.exp(exponent)
    return kernel.astype(np.float32, copy=False)


@lru_cache(maxsize=64)
def _cached_trackmate_log_kernel(radius: float, cal_y: float, cal_x: float) -> np.ndarray:
    h = _trackmate_log_kernel(radius, (cal_y, cal_x))
    h.setflags(write=False)
    return h


def _strict_local_maxima_2d(img: np.ndarray, se_size: int) -> np.ndarray:
    """Pixels strictly greater than every neighbor in a square neighborhood."""
    se_size = int(se_size)
    if se_size < 3:
        raise ValueError("se_size must be >= 3")
    if se_size % 2 == 0:
        se_size += 1

    footprint = np.ones((se_size, se_size), dtype=bool)
    footprint[se_size // 2, se_size // 2] = False

    neigh_max = maximum_filter(img, footprint=footprint, mode="mirror")
    return img > neigh_max


def _subpixel_refine_parabolic(
    resp: np.ndarray, ys: np.ndarray, xs: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Quadratic-vertex refinement along each axis.

    Peaks on the outermost row/column are left at their integer position.
    """
    ys = np.asarray(ys, dtype=int)
    xs = np.asarray(xs, dtype=int)

    H, W = resp.shape
    y_sub = ys.astype(np.float64)
    x_sub = xs.astype(np.float64)

    ok = (ys >= 1) & (ys <= H - 2) & (xs >= 1) & (xs <= W - 2)
    if not np.any(ok):
        return y_sub, x_sub

    y0 = ys[ok]
    x0 = xs[ok]

    f0 = resp[y0, x0].astype(np.float64)
    fxm1 = resp[y0, x0 - 1].astype(np.float64)
    fxp1 = resp[y0, x0 + 1].astype(np.float64)
    fym1 = resp[y0 - 1, x0].astype(np.float64)
    fyp1 = resp[y0 + 1, x0].astype(np.float64)

    denom_x = fxm1 - 2.0 * f0 + fxp1
    denom_y = fym1 - 2.0 * f0 + fyp1

    # δ = (f(-1) - f(+1)) / (2*(f(-1) - 2f(0) + f(+1)))
    dx = np.zeros_like(f0)
    dy = np.zeros_like(f0)

    nzx = np.abs(denom_x) > 1e-12
    nzy = np.abs(denom_y) > 1e-12

    dx[nzx] = 0.5 * (fxm1[nzx] - fxp1[nzx]) / denom_x[nzx]
    dy[nzy] = 0.5 * (fym1[nzy] - fyp1[nzy]) / denom_y[nzy]

    # A strict maximum keeps the vertex within half a pixel.
    dx = np.clip(dx, -0.5, 0.5)
    dy = np.clip(dy, -0.5, 0.5)

    x_sub[ok] = x0 + dx
    y_sub[ok] = y0 + dy
    return y_sub, x_sub


def detect_spots_log(
    image_2d: np.ndarray,
    params: SpotDetectionParams,
    pixel_size_um: float,
) -> pd.DataFrame:
    """Detect spots in a single 2D plane.

    Returns
    -------
    pd.DataFrame
        Columns :data:`SPOT_COLUMNS`; ``x_um``/``y_um`` in microns, ``x_px``/
        ``y_px`` the (sub-)pixel positions they came from. Row order follows
        the raster order of the peaks.
    """
    if image_2d.ndim != 2:
        raise ValueError(f"detect_spots_log expects a 2D array; got shape={image_2d.shape}")

    pixel_size_um = float(pixel_size_um)
    if pixel_size_um <= 0:
        raise ValueError("pixel_size_um must be > 0")

    img_f = np.asarray(image_2d).astype(np.float32, copy=False)

    log_filter = _cached_trackmate_log_kernel(float(params.radius_um), pixel_size_um, pixel_size_um)

    img_for_conv = img_f
    if bool(params.do_median_filter):
        img_for_conv = median_filter(img_for_conv, size=3)

    # Mirror the borders so a flat background does not respond at the tile edges.
    pad_y, pad_x = log_filter.shape[0] // 2, log_filter.shape[1] // 2
    padded = np.pad(img_for_conv, ((pad_y, pad_y), (pad_x, pad_x)), mode="reflect")
    resp = fftconvolve(padded, log_filter, mode="valid")

    maxima = _strict_local_maxima_2d(resp, params.se_size) & (resp > float(params.threshold))
    ys, xs = np.nonzero(maxima)
    if ys.size == 0:
        return empty_spots()

    quality = resp[ys, xs].astype(np.float64)
    keep = quality >= float(params.min_quality)
    ys, xs, quality = ys[keep], xs[keep], quality[keep]
    if ys.size == 0:
        return empty_spots()

    if bool(params.do_subpixel_localization):
        y_px, x_px = _subpixel_refine_parabolic(resp, ys, xs)
    else:
        y_px, x_px = ys.astype(np.float64), xs.astype(np.float64)

    return pd.DataFrame(
        {
            "x_um": x_px * pixel_size_um,
            "y_um": y_px * pixel_size_um,
            "quality": quality,
            "x_px": x_px,
            "y_px": y_px,
        },
        columns=SPOT_COLUMNS,
    )


@dataclass(frozen=True)
class LogSpotDetector:
    """:class:`SpotDetector` running :func:`detect_spots_log` on the target channel."""

    params: SpotDetectionParams = SpotDetectionParams()

    def detect(self, planes: np.ndarray, pixel_size_um: float) -> SpotDetection:
        if planes.ndim != 3:
            raise ValueError(f"planes must be (C, Y, X); got shape={planes.shape}")

        ch = int(self.params.target_channel)
        n_channels = int(planes.shape[0])
        if not (1 <= ch <= n_channels):
            return SpotDetection(
                spots=empty_spots(),
                warnings=(
                    f"target channel {ch} is out of range for an image with {n_channels} channel(s); "
                    "no spots detected",
                ),
            )

        warnings: Tuple[str, ...] = ()
        sigma_px = float(self.params.radius_um) / np.sqrt(2.0) / float(pixel_size_um)
        if sigma_px < 0.5:
            warnings = (
                f"spot radius {self.params.radius_um:g} µm is below one pixel at "
                f"{float(pixel_size_um):g} µm/px (σ={sigma_px:.2f} px); detections may be noise",
            )

        spots = detect_spots_log(planes[ch - 1], self.params, pixel_size_um)
        return SpotDetection(spots=spots, warnings=warnings)
