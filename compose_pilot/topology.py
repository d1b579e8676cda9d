from __future__ import annotations
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .logger import log_event
from .models import ServiceDescriptor
from .util import coerce_env_value

# Service-name tokens that usually hold persistent data worth backing up
BACKUP_CANDIDATES = (
    "postgres", "postgresql", "mysql", "mariadb", "mongodb", "mongo",
    "redis", "elasticsearch", "database", "db",
)

# "8080:80", "127.0.0.1:8080:80", "8080-8081:80-81", "8080:80/tcp"
_MAPPING_RE = re.compile(r"(?:^|:)(\d+)(?:-\d+)?:(\d+)(?:-\d+)?(?:/\w+)?$")
_SINGLE_RE = re.compile(r"^(\d+)(?:-\d+)?(?:/\w+)?$")

# what a missing, unreadable or malformed topology file raises
TOPOLOGY_ERRORS = (OSError, UnicodeDecodeError, yaml.YAMLError)


def load_topology(path: Union[str, Path]) -> Any:
    """Parse a topology file. Errors propagate; see service_names() for the lenient variant."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _services_block(data: Any) -> Optional[Dict[Any, Any]]:
    if not isinstance(data, dict):
        return None
    services = data.get("services")
    if not isinstance(services, dict):
        return None
    return services


def service_names(path: Union[str, Path]) -> List[str]:
    try:
        data = load_topology(path)
    except TOPOLOGY_ERRORS as e:
        log_event("topology_parse_failed", {"path": str(path), "error": str(e)}, level=logging.DEBUG)
        return []
    services = _services_block(data)
    if services is None:
        return []
    return [str(name) for name in services.keys()]


def _port_from_entry(entry: Any) -> Optional[int]:
    if isinstance(entry, dict):
        raw = entry.get("published") or entry.get("target")
        return _port_from_entry(raw) if raw is not None else None
    if isinstance(entry, bool):
        return None
    if isinstance(entry, int):
        port = entry
    else:
        text = str(entry).strip()
        m = _MAPPING_RE.search(text)
        if m:
            port = int(m.group(1))
        else:
            m = _SINGLE_RE.match(text)
            if not m:
                return None
            port = int(m.group(1))
    return port if 1 <= port <= 65535 else None


def extract_port(service: Dict[str, Any]) -> Optional[int]:
    """Host port of the first `ports` entry, or the container port when nothing is published."""
    ports = service.get("ports")
    if not isinstance(ports, list) or not ports:
        return None
    return _port_from_entry(ports[0])


def _volumes(service: Dict[str, Any]) -> List[str]:
    out: List[str] = []
    for v in service.get("volumes") or []:
        if isinstance(v, dict):
            source, target = v.get("source"), v.get("target")
            if source and target:
                out.append(f"{source}:{target}")
            elif target:
                out.append(str(target))
        elif v is not None:
            out.append(str(v))
    return out


def normalize_environment(raw: Any, service_name: str = "") -> Dict[str, str]:
    """
    Compose allows a mapping or a list of KEY=VALUE strings. Scalar values are
    coerced to strings (null -> ""); nested lists/mappings are skipped.
    """
    env: Dict[str, str] = {}
    if isinstance(raw, dict):
        for key, value in raw.items():
            if isinstance(value, (list, dict)):
                log_event(
                    "environment_value_skipped",
                    {"service": service_name, "key": str(key), "type": type(value).__name__},
                    level=logging.WARNING,
                )
                continue
            env[str(key)] = coerce_env_value(value)
    elif isinstance(raw, list):
        for item in raw:
            if item is None:
                continue
            key, sep, value = str(item).partition("=")
            if key:
                env[key] = value if sep else ""
    return env


def _health_check_enabled(service: Dict[str, Any]) -> bool:
    hc = service.get("healthcheck")
    if not isinstance(hc, dict) or not hc:
        return False
    return not bool(hc.get("disable", False))


def should_enable_backup(name: str) -> bool:
    low = name.lower()
    return any(token in low for token in BACKUP_CANDIDATES)


def describe_service(name: str, service: Any) -> ServiceDescriptor:
    if not isinstance(service, dict):
        service = {}
    return ServiceDescriptor(
        name=name,
        port=extract_port(service),
        description=f"Auto-detected {name} service",
        health_check_enabled=_health_check_enabled(service),
        backup_enabled=should_enable_backup(name),
        volumes=_volumes(service),
        environment=normalize_environment(service.get("environment"), name),
        detected=True,
    )


def detect_services(path: Union[str, Path]) -> Dict[str, ServiceDescriptor]:
    """
    Build the detected inventory for one topology file. Unreadable or
    malformed files yield an empty inventory.
    """
    try:
        data = load_topology(path)
    except TOPOLOGY_ERRORS as e:
        log_event("topology_parse_failed", {"path": str(path), "error": str(e)}, level=logging.WARNING)
        return {}
    services = _services_block(data)
    if not services:
        log_event("topology_no_services", {"path": str(path)}, level=logging.DEBUG)
        return {}
    detected: Dict[str, ServiceDescriptor] = {}
    for raw_name, service in services.items():
        name = str(raw_name)
        detected[name] = describe_service(name, service)
    log_event("topology_services_detected", {"path": str(path), "count": len(detected)}, level=logging.DEBUG)
    return detected


def _names(block: Any) -> List[str]:
    """Keys of a mapping or items of a list (depends_on, networks and top-level blocks allow both)."""
    if isinstance(block, dict):
        return [str(k) for k in block]
    if isinstance(block, list):
        return [str(item) for item in block if item is not None]
    return []


def _port_text(entry: Any) -> str:
    if isinstance(entry, dict):
        published, target = entry.get("published"), entry.get("target")
        if published is not None and target is not None:
            return f"{published}:{target}"
        return str(target if target is not None else published)
    return str(entry)


def _build_context(build: Any) -> Optional[str]:
    if build is None:
        return None
    if isinstance(build, dict):
        return str(build.get("context") or ".")
    return str(build)


def analyze_service(name: str, service: Any) -> Dict[str, Any]:
    if not isinstance(service, dict):
        service = {}
    ports = service.get("ports")
    env = service.get("environment")
    return {
        "name": name,
        "image": service.get("image"),
        "build": _build_context(service.get("build")),
        "ports": [_port_text(p) for p in ports] if isinstance(ports, list) else [],
        "volumes": _volumes(service),
        "environment_count": len(env) if isinstance(env, (dict, list)) else 0,
        "depends_on": _names(service.get("depends_on")),
        "networks": _names(service.get("networks")),
    }


def analyze_topology(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Per-service summary of one topology file: image or build context, ports,
    volumes, environment size, dependencies and networks, plus the top-level
    networks and named volumes. Parse errors propagate (see TOPOLOGY_ERRORS).
    """
    data = load_topology(path)
    if not isinstance(data, dict):
        data = {}
    services = _services_block(data) or {}
    version = data.get("version")
    return {
        "version": str(version) if version is not None else None,
        "services": [analyze_service(str(name), svc) for name, svc in services.items()],
        "networks": _names(data.get("networks")),
        "volumes": _names(data.get("volumes")),
    }


def validate_topology(path: Union[str, Path]) -> List[str]:
    """
    Structural warnings for a topology file that parses. An empty list means
    nothing to report; parse errors propagate.
    """
    data = load_topology(path)
    if not isinstance(data, dict):
        return ["top level is not a mapping"]
    warnings: List[str] = []
    services = data.get("services")
    if services is None:
        warnings.append("no services section")
    elif not isinstance(services, dict):
        warnings.append("services section is not a mapping")
    elif not services:
        warnings.append("services section is empty")
    else:
        for name, service in services.items():
            if not isinstance(service, dict) or not (service.get("image") or service.get("build")):
                warnings.append(f"service {name} has neither image nor build")
    if "version" not in data:
        warnings.append("no version field")
    log_event("topology_validated", {"path": str(path), "warnings": len(warnings)}, level=logging.DEBUG)
    return warnings
