"""barcodetrack.core.artifacts

ROLE: Create per-run artifact directories and write run metadata.

OUTPUTS:
  - artifacts/<run_id>/{logs,traces}
  - run_meta.json
  - config_effective.yaml
  - artifacts/LATEST

CONFIG KEYS:
  - runtime.run_id: optional explicit run id
  - runtime.artifacts.dir: base artifacts directory
  - runtime.artifacts.retention.max_runs: keep last N runs
"""

from __future__ import annotations

import json
import platform
import shutil
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from barcodetrack.core.clock import now_ns


def create_run_dir(base_dir: str, run_id: Optional[str] = None, max_runs: int = 10) -> Path:
    """Create and return a fresh run directory, pruning old runs."""
    base_path = Path(base_dir)
    base_path.mkdir(parents=True, exist_ok=True)
    name = (run_id or "").strip() or time.strftime("%Y%m%d_%H%M%S")
    run_path = base_path / name
    suffix = 2
    while run_path.exists():
        run_path = base_path / f"{name}_{suffix:02d}"
        suffix += 1

    (run_path / "logs").mkdir(parents=True)
    (run_path / "traces").mkdir(parents=True)

    apply_retention(base_path, max_runs=max_runs, keep_dir=run_path)
    return run_path


def apply_retention(base_dir: Path, max_runs: int, keep_dir: Optional[Path] = None) -> None:
    if max_runs <= 0:
        return
    keep = keep_dir.resolve() if keep_dir is not None else None
    runs = [p for p in base_dir.iterdir() if p.is_dir()]
    runs.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    for old in runs[max_runs:]:
        if keep is not None and old.resolve() == keep:
            continue
        shutil.rmtree(old, ignore_errors=True)


def write_run_metadata(run_dir: Path, config: Dict[str, Any]) -> None:
    """Write run_meta.json, config_effective.yaml and the LATEST pointer."""
    from barcodetrack.version import __version__
    import numpy

    meta = {
        "t_start_ns": now_ns(),
        "platform": {
            "python": sys.version,
            "machine": platform.machine(),
            "system": platform.system(),
        },
        "versions": {
            "barcodetrack": __version__,
            "numpy": numpy.__version__,
            "pyyaml": getattr(yaml, "__version__", None),
        },
        "config": config,
    }
    with open(run_dir / "run_meta.json", "w", encoding="utf-8") as handle:
        json.dump(meta, handle, indent=2, default=str)
    with open(run_dir / "config_effective.yaml", "w", encoding="utf-8") as handle:
        yaml.safe_dump(config, handle, sort_keys=False)
    (run_dir.parent / "LATEST").write_text(run_dir.name, encoding="utf-8")
