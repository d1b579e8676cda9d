from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .util import coerce_env_value


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _optional_bool(value: Any) -> Optional[bool]:
    return None if value is None else bool(value)


ENVIRONMENT_TAGS = ("dev", "prod", "test", "staging", "local", "override", "none")

STATES = ("running", "stopped", "starting", "restarting", "paused", "dead", "unknown")
HEALTH_VALUES = ("healthy", "unhealthy", "starting", "none")


@dataclass(frozen=True)
class TopologyFileCandidate:
    path: str
    relative_path: str
    depth: int
    size_bytes: int = 0
    modified_at: Optional[datetime] = None
    environment_tag: str = "none"  # dev|prod|test|staging|local|override|none
    is_primary: bool = False
    service_names: Tuple[str, ...] = ()
    priority_score: int = 0

    @property
    def service_count(self) -> int:
        return len(self.service_names)

    @property
    def directory(self) -> str:
        parent = self.relative_path.rpartition("/")[0]
        return parent or "."


@dataclass
class ServiceDescriptor:
    name: str
    port: Optional[int] = None
    description: Optional[str] = None
    # None means the entry never set the flag
    health_check_enabled: Optional[bool] = None
    backup_enabled: Optional[bool] = None
    volumes: List[str] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)
    detected: bool = False

    def __post_init__(self) -> None:
        if self.port is not None and not (1 <= int(self.port) <= 65535):
            raise ValueError(f"service {self.name!r}: port {self.port} outside 1-65535")

    def to_dict(self) -> Dict[str, Any]:
        """
        Field map without the name. Unset optionals and empty collections are
        left out, so overlaying one dict on another only carries set fields.
        """
        out: Dict[str, Any] = {}
        if self.port is not None:
            out["port"] = self.port
        if self.description is not None:
            out["description"] = self.description
        if self.health_check_enabled is not None:
            out["health_check_enabled"] = self.health_check_enabled
        if self.backup_enabled is not None:
            out["backup_enabled"] = self.backup_enabled
        if self.volumes:
            out["volumes"] = list(self.volumes)
        if self.environment:
            out["environment"] = dict(self.environment)
        out["detected"] = self.detected
        return out

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ServiceDescriptor":
        port = data.get("port")
        env = data.get("environment")
        if not isinstance(env, dict):
            env = {}
        return cls(
            name=name,
            port=int(port) if port is not None else None,
            description=data.get("description"),
            health_check_enabled=_optional_bool(data.get("health_check_enabled")),
            backup_enabled=_optional_bool(data.get("backup_enabled")),
            volumes=[str(v) for v in (data.get("volumes") or [])],
            environment={str(k): coerce_env_value(v) for k, v in env.items()},
            detected=bool(data.get("detected", False)),
        )


@dataclass
class ReconciliationResult:
    merged: Dict[str, ServiceDescriptor]
    policy: str
    added: int = 0
    updated: int = 0
    replaced: int = 0
    removed: int = 0
    detected_count: int = 0
    changed: bool = False

    @property
    def no_services_detected(self) -> bool:
        return self.detected_count == 0

    @property
    def outcome(self) -> str:
        if self.no_services_detected:
            return "no-services-detected"
        return "changed" if self.changed else "in-sync"


@dataclass(frozen=True)
class ServiceStatusRecord:
    name: str
    state: str = "unknown"   # see STATES
    health: str = "none"     # see HEALTH_VALUES
    uptime_text: Optional[str] = None
    ports: Tuple[str, ...] = ()
    image: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class ProjectConfig:
    project_name: str
    compose_file: Optional[str] = None
    services: Dict[str, ServiceDescriptor] = field(default_factory=dict)
    updated_on: Optional[str] = None


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0
