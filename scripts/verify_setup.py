from __future__ import annotations

import os
import platform
import subprocess
import sys
from pathlib import Path


# Modules required for the tissue analysis driver + file I/O
REQUIRED_IMPORTS = [
    "numpy",
    "pandas",
    "scipy",
    "skimage",
    "tifffile",
    "yaml",
    "pyarrow",
    "matplotlib",
]


def try_git_commit(repo_root: Path) -> str | None:
    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(repo_root),
            stderr=subprocess.STDOUT,
            text=True,
        ).strip()
        return out
    except (OSError, subprocess.CalledProcessError):
        return None


def main() -> int:
    repo_root = Path(__file__).resolve().parents[1]
    print("=== nuclear-tissue-analysis :: verify_setup ===")
    print(f"repo_root: {repo_root}")
    print(f"python: {sys.executable}")
    print(f"python_version: {sys.version.split()[0]}")
    print(f"platform: {platform.platform()}")

    # 1) Env var (optional: relative config paths fall back to the config folder)
    data_root = os.environ.get("NTA_DATA_ROOT")
    if data_root:
        root = Path(data_root).expanduser().resolve()
        print(f"NTA_DATA_ROOT: {root}")
        if not root.exists():
            print(f"ERROR: NTA_DATA_ROOT path does not exist: {root}")
            return 2
    else:
        print("NTA_DATA_ROOT: (not set; relative paths resolve against the config folder)")

    # 2) Required repo files
    for rel in ["configs/nuclear_tissue.yaml", "drivers/run_nuclear_tissue.py"]:
        p = repo_root / rel
        if not p.exists():
            print(f"ERROR: missing repo file: {p}")
            return 2
    print("repo files: OK")

    # 3) Required imports
    for mod in REQUIRED_IMPORTS:
        try:
            __import__(mod)
            print(f"import {mod}: OK")
        except ImportError as e:
            print(f"ERROR: import {mod} failed: {e}")
            print("Fix:  python -m pip install -e .[test]")
            return 2

    commit = try_git_commit(repo_root)
    if commit:
        print(f"git_commit: {commit[:12]}")
    else:
        print("git_commit: (unavailable in this shell)")

    print("SETUP OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
