from __future__ import annotations
import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import state_dir as default_state_dir
from .models import ServiceStatusRecord, TopologyFileCandidate


def _write_json(filename: str, data: Any, state_dir: Optional[Path] = None) -> Path:
    """
    atomic write to state directory
    """
    target_dir = state_dir or default_state_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / filename
    temp = path.with_suffix(".tmp")
    with open(temp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    temp.replace(path)
    return path


def write_discovery_snapshot(root: str, candidates: List[TopologyFileCandidate], state_dir: Optional[Path] = None) -> Path:
    data = {
        "timestamp": time.time(),
        "root": root,
        "candidates": [asdict(c) for c in candidates],
    }
    return _write_json("discovery.json", data, state_dir)


def write_status_snapshot(records: List[ServiceStatusRecord], state_dir: Optional[Path] = None) -> Path:
    data = {
        "timestamp": time.time(),
        "services": [asdict(r) for r in records],
    }
    return _write_json("status.json", data, state_dir)


def write_health_snapshot(checks: List[Dict[str, Any]], state_dir: Optional[Path] = None) -> Path:
    data = {
        "timestamp": time.time(),
        "checks": checks,
    }
    return _write_json("health.json", data, state_dir)
