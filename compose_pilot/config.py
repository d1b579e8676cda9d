from __future__ import annotations
import json
import os
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import List, Optional


_APP_DIR: Optional[Path] = None


def _resolve_app_dir() -> Path:
    """
    Resolve a writable app directory.
    $COMPOSE_PILOT_HOME wins; otherwise ~/.compose-pilot, then ./.compose-pilot.
    """
    candidates = []
    override = os.environ.get("COMPOSE_PILOT_HOME")
    if override:
        candidates.append(Path(override).expanduser())
    candidates.extend([
        Path.home() / ".compose-pilot",
        Path.cwd() / ".compose-pilot",
    ])
    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            probe = candidate / ".write_test"
            probe.write_text("ok", encoding="utf-8")
            probe.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue
    raise PermissionError("No writable app directory for compose-pilot")


def app_dir() -> Path:
    """Resolved on first use, so importing the engine modules touches no files."""
    global _APP_DIR
    if _APP_DIR is None:
        _APP_DIR = _resolve_app_dir()
    return _APP_DIR


def config_path() -> Path:
    return app_dir() / "config.json"


def state_dir() -> Path:
    return app_dir() / "state"


def logs_dir() -> Path:
    return app_dir() / "logs"


POLICIES = ("merge", "replace")


@dataclass
class Config:
    max_depth: int = 6
    include_variants: bool = True

    # Extra exclusions (directory names), merged with walker.DEFAULT_EXCLUDED_DIRS
    exclude_dir_names: List[str] = field(default_factory=list)

    default_policy: str = "merge"  # merge | replace
    project_file: str = "compose-pilot.yaml"

    compose_command: List[str] = field(default_factory=lambda: ["docker", "compose"])
    legacy_compose_command: List[str] = field(default_factory=lambda: ["docker-compose"])


def ensure_app_dir() -> None:
    app_dir().mkdir(parents=True, exist_ok=True)
    state_dir().mkdir(parents=True, exist_ok=True)
    logs_dir().mkdir(parents=True, exist_ok=True)


def load_config(path: Optional[Path] = None) -> Config:
    ensure_app_dir()
    path = path or config_path()
    if path.exists():
        data = json.loads(path.read_text(encoding="utf-8"))
        cfg = Config()
        for k, v in data.items():
            if hasattr(cfg, k):
                setattr(cfg, k, v)
        return cfg
    cfg = Config()
    save_config(cfg, path)
    return cfg


def save_config(cfg: Config, path: Optional[Path] = None) -> None:
    ensure_app_dir()
    path = path or config_path()
    path.write_text(json.dumps(asdict(cfg), indent=2), encoding="utf-8")
