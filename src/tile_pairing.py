"""Pair raw tiles with their Ilastik object-prediction label maps.

Naming convention::

    raw:   <raw_dir>/<base><ext>
    label: <label_dir>/<base>_Object Predictions<ext>

Both directories may be the same folder; label files found in the raw
directory are never treated as raw tiles.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple


DEFAULT_EXTENSION = ".tif"
DEFAULT_LABEL_TOKEN = "_Object Predictions"


@dataclass(frozen=True)
class TilePair:
    name: str
    raw_path: Path
    label_path: Path


@dataclass(frozen=True)
class TilePairing:
    pairs: Tuple[TilePair, ...]
    # (raw tile name, expected label path)
    unpaired: Tuple[Tuple[str, Path], ...] = ()


def _require_dir(path: Path, what: str) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} not found: {path}")
    if not path.is_dir():
        raise NotADirectoryError(f"{what} is not a directory: {path}")
    return path


def label_file_name(raw_name: str, *, extension: str = DEFAULT_EXTENSION, label_token: str = DEFAULT_LABEL_TOKEN) -> str:
    base = raw_name[: -len(extension)] if raw_name.endswith(extension) else Path(raw_name).stem
    return f"{base}{label_token}{extension}"


def list_raw_tiles(raw_dir: Path, *, extension: str = DEFAULT_EXTENSION, label_token: str = DEFAULT_LABEL_TOKEN) -> List[Path]:
    """Raw tile files in ``raw_dir``, sorted by name."""
    raw_dir = _require_dir(raw_dir, "raw data directory")
    # Label token without its leading separator, so "x Object Predictions.tif" is skipped too.
    token = label_token.strip("_ ")
    return sorted(
        (
            p
            for p in raw_dir.iterdir()
            if p.is_file() and p.name.endswith(extension) and token not in p.name
        ),
        key=lambda p: p.name,
    )


def pair_tiles(
    raw_dir: Path,
    label_dir: Path,
    *,
    extension: str = DEFAULT_EXTENSION,
    label_token: str = DEFAULT_LABEL_TOKEN,
) -> TilePairing:
    """Pair every raw tile with its label map.

    Raises ``FileNotFoundError`` / ``NotADirectoryError`` if either directory
    is missing. Tiles without a label file end up in ``unpaired``.
    """
    label_dir = _require_dir(label_dir, "object maps directory")
    raw_tiles = list_raw_tiles(raw_dir, extension=extension, label_token=label_token)

    pairs: List[TilePair] = []
    unpaired: List[Tuple[str, Path]] = []
    for raw_path in raw_tiles:
        label_path = label_dir / label_file_name(raw_path.name, extension=extension, label_token=label_token)
        if label_path.is_file():
            pairs.append(TilePair(name=raw_path.name, raw_path=raw_path, label_path=label_path))
        else:
            unpaired.append((raw_path.name, label_path))

    return TilePairing(pairs=tuple(pairs), unpaired=tuple(unpaired))
