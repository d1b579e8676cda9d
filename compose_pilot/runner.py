from __future__ import annotations
import logging
import shutil
import subprocess
from typing import List, Optional, Sequence, Tuple

import psutil

from .logger import log_event
from .models import CommandResult
from .status import FORMAT_JSON_LINES, FORMAT_TABLE

DAEMON_PROCESS_NAMES = ("dockerd", "com.docker.backend", "Docker Desktop", "podman")


def run(cmd: Sequence[str], cwd: Optional[str] = None, timeout: Optional[float] = None) -> CommandResult:
    try:
        p = subprocess.run(list(cmd), cwd=cwd, capture_output=True, text=True, check=False, timeout=timeout)
        return CommandResult(p.returncode, p.stdout, p.stderr)
    except FileNotFoundError as e:
        return CommandResult(127, "", str(e))
    except subprocess.TimeoutExpired:
        return CommandResult(124, "", f"timed out after {timeout}s: {' '.join(cmd)}")
    except OSError as e:
        return CommandResult(1, "", str(e))


def compose_args(base: Sequence[str], compose_file: Optional[str]) -> List[str]:
    args = list(base)
    if compose_file:
        args.extend(["-f", compose_file])
    return args


def compose_ps(
    compose_file: Optional[str],
    workdir: Optional[str] = None,
    compose_command: Sequence[str] = ("docker", "compose"),
    legacy_command: Sequence[str] = ("docker-compose",),
    timeout: Optional[float] = 30,
) -> Tuple[CommandResult, Optional[str]]:
    """
    Capture service status output. Tries the compose plugin with JSON output
    first, then the legacy standalone binary (table output).
    Returns the result and the format hint for status.normalize().
    """
    res = run(compose_args(compose_command, compose_file) + ["ps", "--all", "--format", "json"], cwd=workdir, timeout=timeout)
    if res.ok and res.stdout.strip():
        return res, FORMAT_JSON_LINES
    log_event("compose_ps_fallback", {"returncode": res.returncode, "stderr": res.stderr[:300]}, level=logging.DEBUG)

    legacy = run(compose_args(legacy_command, compose_file) + ["ps"], cwd=workdir, timeout=timeout)
    if legacy.ok:
        return legacy, FORMAT_TABLE
    # report the plugin failure when the legacy binary is simply absent
    return (res if legacy.returncode == 127 else legacy), None


def docker_binary() -> Optional[str]:
    return shutil.which("docker")


def docker_daemon_running() -> bool:
    for p in psutil.process_iter(attrs=["name"]):
        try:
            name = p.info.get("name") or ""
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if any(needle in name for needle in DAEMON_PROCESS_NAMES):
            return True
    return False
