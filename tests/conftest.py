from __future__ import annotations

import sys
from pathlib import Path


def _ensure_repo_paths_on_syspath() -> None:
    # Tests import `yolo_decode` from the repo root and the CLI module from Scripts/,
    # which is not a package.
    repo_root = Path(__file__).resolve().parents[1]
    for p in (repo_root, repo_root / "Scripts"):
        p_str = str(p)
        if p_str not in sys.path:
            sys.path.insert(0, p_str)


_ensure_repo_paths_on_syspath()
