from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .logger import log_event
from .models import ServiceStatusRecord
from .util import first_present

FORMAT_JSON_LINES = "json-lines"
FORMAT_TABLE = "table"
FORMATS = (FORMAT_JSON_LINES, FORMAT_TABLE)

# Accepted field names per logical field, most specific first
SERVICE_KEYS = ("Service", "service")
PROJECT_KEYS = ("Project", "project")
CONTAINER_NAME_KEYS = ("Name", "name", "Names", "names")
STATE_KEYS = ("State", "state", "Status", "status")
STATUS_TEXT_KEYS = ("Status", "status", "RunningFor", "running_for")
HEALTH_KEYS = ("Health", "health")
IMAGE_KEYS = ("Image", "image")
CREATED_KEYS = ("CreatedAt", "created_at", "Created", "created")
PUBLISHER_KEYS = ("Publishers", "publishers")
PORTS_TEXT_KEYS = ("Ports", "ports")

# Optional "0.0.0.0:" / ":::" / "[::]:" bind prefix, then host->container or
# host:container; a range such as 8000-8001->8000-8001 keeps its first port
PORT_RE = re.compile(
    r"(?:(?:\d{1,3}\.){3}\d{1,3}:|\[?::\]?:)?(?<![\d.])(\d+)(?:-\d+)?(?:->|:)(\d+)(?:-\d+)?(?![\d.])"
)
# a headerless cell is a ports column only with an arrow, a protocol or a bind address
_PORT_CELL_RE = re.compile(r"->|/(?:tcp|udp|sctp)\b|(?:\d{1,3}\.){3}\d{1,3}:\d|\[?::\]?:\d")
_UP_RE = re.compile(r"\bup\b")
_INSTANCE_NAME_RE = re.compile(r"^(?P<prefix>.+)_(?P<service>[^_]+)_(?P<index>\d+)$")
_TABLE_SPLIT_RE = re.compile(r"\t+|\s{2,}")
_HEADER_CELL_RE = re.compile(r"\S+(?: \S+)*")

_HEADER_NAME_CELLS = {"name", "names", "service", "container id", "container"}
_HEADER_OTHER_CELLS = {"image", "status", "state", "command", "ports", "created", "created at"}


def normalize_state(text: Optional[str]) -> str:
    low = (text or "").lower()
    if not low.strip():
        return "unknown"
    # "restarting" contains "starting"; "Up 1 hour (Paused)" contains "up"
    if "restarting" in low:
        return "restarting"
    if "paused" in low:
        return "paused"
    if "dead" in low:
        return "dead"
    if "exit" in low or "stopped" in low:
        return "stopped"
    if "running" in low or _UP_RE.search(low):
        return "running"
    if "starting" in low:
        return "starting"
    return "unknown"


def normalize_health(text: Optional[str]) -> str:
    low = (text or "").lower()
    if "unhealthy" in low:
        return "unhealthy"
    if "healthy" in low:
        return "healthy"
    if "starting" in low:
        return "starting"
    return "none"


def extract_ports(text: Optional[str]) -> Tuple[str, ...]:
    """Every host:container pair in order of appearance, duplicates dropped."""
    out: List[str] = []
    for host, container in PORT_RE.findall(text or ""):
        mapping = f"{host}:{container}"
        if mapping not in out:
            out.append(mapping)
    return tuple(out)


def service_name_from_container(name: str, project: Optional[str] = None) -> str:
    """
    "myproject_web_1" -> "web". With a known project, "myproject-web-1" is
    understood too. Names without an instance suffix are returned as-is.
    """
    name = (name or "").strip().lstrip("/")
    name = name.split(",")[0].strip()
    if project:
        for sep in ("_", "-"):
            prefix = f"{project}{sep}"
            if name.startswith(prefix):
                rest = name[len(prefix):]
                m = re.match(rf"^(?P<service>.+){re.escape(sep)}\d+$", rest)
                return m.group("service") if m else rest
    m = _INSTANCE_NAME_RE.match(name)
    if m:
        return m.group("service")
    return name


# ---------------------------------------------------------------------------
# JSON lines
# ---------------------------------------------------------------------------

def _publisher_ports(publishers: Any) -> Tuple[str, ...]:
    out: List[str] = []
    if not isinstance(publishers, list):
        return ()
    for p in publishers:
        if not isinstance(p, dict):
            continue
        published = p.get("PublishedPort") or p.get("published_port")
        target = p.get("TargetPort") or p.get("target_port")
        if not published or not target:
            continue
        mapping = f"{published}:{target}"
        if mapping not in out:
            out.append(mapping)
    return tuple(out)


def _record_from_row(row: Dict[str, Any], project: Optional[str]) -> Optional[ServiceStatusRecord]:
    service = first_present(row, SERVICE_KEYS)
    if service is not None:
        name = str(service).strip()
    else:
        raw_name = first_present(row, CONTAINER_NAME_KEYS)
        if raw_name is None:
            return None
        row_project = first_present(row, PROJECT_KEYS)
        name = service_name_from_container(str(raw_name), project or (str(row_project) if row_project else None))
    if not name:
        return None

    state_text = first_present(row, STATE_KEYS)
    status_text = first_present(row, STATUS_TEXT_KEYS)
    health_text = first_present(row, HEALTH_KEYS) or status_text

    ports = _publisher_ports(first_present(row, PUBLISHER_KEYS))
    if not ports:
        ports = extract_ports(str(first_present(row, PORTS_TEXT_KEYS) or ""))

    image = first_present(row, IMAGE_KEYS)
    created = first_present(row, CREATED_KEYS)
    return ServiceStatusRecord(
        name=name,
        state=normalize_state(str(state_text) if state_text is not None else None),
        health=normalize_health(str(health_text) if health_text is not None else None),
        uptime_text=str(status_text) if status_text is not None else None,
        ports=ports,
        image=str(image) if image is not None else None,
        created_at=str(created) if created is not None else None,
    )


def _json_rows(text: str) -> Iterable[Dict[str, Any]]:
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        # `docker ps --format '"{{json .}}"'` wraps each object in quotes
        if len(line) > 1 and line[0] == '"' and line[-1] == '"' and line[1:2] in ("{", "["):
            line = line[1:-1]
        try:
            data = json.loads(line)
        except ValueError:
            log_event("status_line_skipped", {"format": FORMAT_JSON_LINES, "line": line[:200]}, level=logging.DEBUG)
            continue
        # older compose releases print one JSON array instead of JSON lines
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict):
                yield item


def parse_json_lines(text: str, project: Optional[str] = None) -> List[ServiceStatusRecord]:
    records = []
    for row in _json_rows(text):
        rec = _record_from_row(row, project)
        if rec is not None:
            records.append(rec)
    return records


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

def _is_header(cells: Sequence[str]) -> bool:
    low = {c.strip().lower() for c in cells}
    return bool(low & _HEADER_NAME_CELLS) and bool(low & _HEADER_OTHER_CELLS)


def _is_separator(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and set(stripped) <= {"-", "=", "+", " "}


def _header_columns(header: str) -> List[Tuple[str, int]]:
    return [(m.group(0).strip().lower(), m.start()) for m in _HEADER_CELL_RE.finditer(header)]


def _slice_row(line: str, columns: List[Tuple[str, int]]) -> Dict[str, str]:
    row: Dict[str, str] = {}
    for i, (label, start) in enumerate(columns):
        end = columns[i + 1][1] if i + 1 < len(columns) else None
        row[label] = line[start:end].strip() if start < len(line) else ""
    return row


def _record_from_cells(cells: Dict[str, str], project: Optional[str]) -> Optional[ServiceStatusRecord]:
    raw_name = first_present(cells, ("service", "name", "names", "container"))
    if raw_name is None:
        return None
    if cells.get("service"):
        name = raw_name.strip()
    else:
        name = service_name_from_container(raw_name, project)
    status_text = first_present(cells, ("status", "state"))
    return ServiceStatusRecord(
        name=name,
        state=normalize_state(status_text),
        health=normalize_health(status_text),
        uptime_text=status_text,
        ports=extract_ports(cells.get("ports")),
        image=first_present(cells, ("image",)),
        created_at=first_present(cells, ("created at", "created")),
    )


def _positional(cells: List[str]) -> Dict[str, str]:
    row = {"name": cells[0], "image": cells[1], "status": cells[2]}
    rest = cells[3:]
    if rest and (_PORT_CELL_RE.search(rest[0]) or len(rest) > 1):
        row["ports"] = rest[0]
        rest = rest[1:]
    if rest:
        row["created"] = rest[0]
    return row


def parse_table(text: str, project: Optional[str] = None) -> List[ServiceStatusRecord]:
    lines = [ln.rstrip("\r") for ln in text.splitlines() if ln.strip()]
    if not lines:
        return []

    columns: Optional[List[Tuple[str, int]]] = None
    tab_labels: Optional[List[str]] = None
    header = lines[0]
    if _is_header(_TABLE_SPLIT_RE.split(header.strip())):
        if "\t" in header:
            tab_labels = [c.strip().lower() for c in header.split("\t")]
        else:
            columns = _header_columns(header)
        lines = lines[1:]
    # docker's tabwriter left-aligns headers; legacy docker-compose centres them
    left_aligned = bool(columns) and columns[0][1] == 0

    records: List[ServiceStatusRecord] = []
    for line in lines:
        if _is_separator(line):
            continue
        if tab_labels is not None:
            values = [v.strip() for v in line.split("\t")]
            cells = dict(zip(tab_labels, values))
        elif columns is not None:
            parts = [p for p in _TABLE_SPLIT_RE.split(line.strip()) if p]
            if len(parts) == len(columns) or not left_aligned:
                cells = dict(zip([label for label, _ in columns], parts))
            else:
                cells = _slice_row(line, columns)
        else:
            parts = [p for p in _TABLE_SPLIT_RE.split(line.strip()) if p]
            if len(parts) < 3:
                log_event("status_line_skipped", {"format": FORMAT_TABLE, "line": line[:200]}, level=logging.DEBUG)
                continue
            cells = _positional(parts)
        rec = _record_from_cells(cells, project)
        if rec is not None:
            records.append(rec)
    return records


def detect_format(text: str) -> Optional[str]:
    for line in text.splitlines():
        stripped = line.strip().lstrip('"')
        if not stripped:
            continue
        return FORMAT_JSON_LINES if stripped[:1] in ("{", "[") else FORMAT_TABLE
    return None


def normalize(
    raw_output: Union[str, bytes, None],
    hint: Optional[str] = None,
    project: Optional[str] = None,
) -> List[ServiceStatusRecord]:
    """
    Turn captured control-plane output into canonical status records.

    `hint` is "json-lines", "table" or None (sniffed from the first non-blank
    line). When that shape yields no records the other one is tried. Blank
    input, or input unparseable in both shapes, gives an empty list.
    """
    if raw_output is None:
        return []
    if isinstance(raw_output, bytes):
        raw_output = raw_output.decode("utf-8", errors="replace")
    if not raw_output.strip():
        return []
    if hint is not None and hint not in FORMATS:
        raise ValueError(f"unknown status format hint: {hint!r}")

    fmt = hint or detect_format(raw_output)
    parsers = [(FORMAT_JSON_LINES, parse_json_lines), (FORMAT_TABLE, parse_table)]
    if fmt != FORMAT_JSON_LINES:
        parsers.reverse()
    records: List[ServiceStatusRecord] = []
    for fmt, parser in parsers:
        records = parser(raw_output, project)
        if records:
            break
    log_event("status_normalized", {"format": fmt, "records": len(records)}, level=logging.DEBUG)
    return records


def summarize(records: Sequence[ServiceStatusRecord]) -> Dict[str, int]:
    return {
        "total": len(records),
        "running": sum(1 for r in records if r.state == "running"),
        "healthy": sum(1 for r in records if r.health == "healthy"),
    }
