from __future__ import annotations
import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .logger import log_event
from .models import ProjectConfig, ServiceDescriptor, utc_now_iso


def _default_document(project_name: str) -> Dict[str, Any]:
    return {"project_name": project_name, "compose_file": None, "services": {}}


def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    """atomic write: temp file next to the target, then replace"""
    temp = path.with_name(path.name + ".tmp")
    temp.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    temp.replace(path)


def _backup_and_reset(path: Path, project_name: str, reason: str) -> Dict[str, Any]:
    stamp = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    backup = path.with_name(f"{path.name}.corrupt.{stamp}")
    try:
        if path.exists():
            path.replace(backup)
    except OSError as e:
        log_event("project_backup_failed", {"path": str(path), "error": str(e)}, level=logging.WARNING)
    data = _default_document(project_name)
    _write_yaml(path, data)
    log_event("project_file_reset", {"path": str(path), "reason": reason, "backup": str(backup)}, level=logging.WARNING)
    return data


def load_project_config(path: Path, project_name: Optional[str] = None) -> ProjectConfig:
    """
    Load the project file, creating it when missing. A malformed file is
    backed up to <name>.corrupt.<stamp> and replaced with an empty one;
    malformed service entries are skipped.
    """
    name = project_name or path.parent.name
    if not path.exists():
        _write_yaml(path, _default_document(name))
    raw = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw) or _default_document(name)
    except yaml.YAMLError:
        data = _backup_and_reset(path, name, "parse-error")
    if not isinstance(data, dict):
        data = _backup_and_reset(path, name, "root-not-mapping")
    services = data.get("services") or {}
    if not isinstance(services, dict):
        data = _backup_and_reset(path, name, "services-not-mapping")
        services = data["services"]

    out: Dict[str, ServiceDescriptor] = {}
    for svc_name, item in services.items():
        if not isinstance(item, dict):
            continue
        try:
            out[str(svc_name)] = ServiceDescriptor.from_dict(str(svc_name), item)
        except (TypeError, ValueError) as e:
            log_event("project_service_skipped", {"service": str(svc_name), "error": str(e)}, level=logging.WARNING)
    return ProjectConfig(
        project_name=data.get("project_name") or name,
        compose_file=data.get("compose_file"),
        services=out,
        updated_on=data.get("updated_on"),
    )


def save_project_config(cfg: ProjectConfig, path: Path) -> None:
    cfg.updated_on = utc_now_iso()
    services = {name: d.to_dict() for name, d in sorted(cfg.services.items(), key=lambda kv: kv[0])}
    _write_yaml(path, {
        "project_name": cfg.project_name,
        "compose_file": cfg.compose_file,
        "updated_on": cfg.updated_on,
        "services": services,
    })
