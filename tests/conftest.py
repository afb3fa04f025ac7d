from __future__ import annotations

import sys
from pathlib import Path

# Ensure repo root (for `drivers.*`) and src/ (kernel modules) are importable
REPO_ROOT = Path(__file__).resolve().parents[1]
for p in (REPO_ROOT, REPO_ROOT / "src"):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))
