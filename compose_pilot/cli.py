from __future__ import annotations
import argparse
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .classify import discover, select_candidate
from .config import POLICIES, config_path, load_config, save_config
from .inventory import load_project_config, save_project_config
from .logger import log_event, setup_logging
from .models import ServiceStatusRecord, TopologyFileCandidate
from .reconcile import POLICY_FIRST_TIME, reconcile
from .runner import compose_ps, docker_binary, docker_daemon_running
from .state import write_discovery_snapshot, write_health_snapshot, write_status_snapshot
from .status import FORMATS, normalize, summarize
from .topology import TOPOLOGY_ERRORS, analyze_topology, detect_services, validate_topology
from .util import format_file_size


def _project_dir(args: argparse.Namespace) -> Path:
    return Path(getattr(args, "project_dir", None) or os.getcwd()).expanduser().resolve()


def _print_candidate(index: int, c: TopologyFileCandidate) -> None:
    env_text = f" ({c.environment_tag})" if c.environment_tag != "none" else ""
    primary = " [primary]" if c.is_primary else ""
    modified = c.modified_at.strftime("%Y-%m-%d") if c.modified_at else "-"
    services = ", ".join(c.service_names) if c.service_names else "(no services)"
    print(f"{index}. {c.relative_path}{env_text}{primary}  depth={c.depth}  score={c.priority_score}")
    print(f"   {format_file_size(c.size_bytes)} | {modified}")
    print(f"   {c.service_count} services: {services}")


def _discover(args: argparse.Namespace) -> List[TopologyFileCandidate]:
    cfg = load_config()
    root = Path(args.root or os.getcwd()).expanduser()
    depth = cfg.max_depth if args.depth is None else args.depth
    excludes = list(cfg.exclude_dir_names) + list(args.exclude or [])
    include_variants = cfg.include_variants and not args.no_variants
    cands = discover(root, depth, excludes, include_variants=include_variants)
    write_discovery_snapshot(str(root), cands)
    log_event("discovery_complete", {"root": str(root), "depth": depth, "candidates": len(cands)})
    return cands


def cmd_discover(args: argparse.Namespace) -> int:
    try:
        cands = _discover(args)
    except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
        print(f"❌ {e}")
        return 1
    if args.hide_empty:
        cands = [c for c in cands if c.service_names]
    if not cands:
        print("(no topology files found)")
        return 0
    print(f"Found {len(cands)} topology file(s):")
    print()
    for i, c in enumerate(cands, start=1):
        _print_candidate(i, c)
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    cfg = load_config()
    try:
        cands = _discover(args)
    except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
        print(f"❌ {e}")
        return 1
    if not cands:
        print("No topology files found; nothing to detect.")
        return 0

    try:
        selected = select_candidate(cands, args.select - 1 if args.select else None)
    except IndexError:
        selected = cands[0]
        print(f"⚠️  Invalid choice {args.select}; using {selected.relative_path}")
    print(f"Using {selected.relative_path}")
    if not selected.service_names:
        print(f"⚠️  {selected.relative_path} declares no services (or could not be parsed).")

    project_dir = _project_dir(args)
    project_path = project_dir / cfg.project_file
    proj = load_project_config(project_path)
    policy = args.policy or cfg.default_policy
    if not proj.services:
        policy = POLICY_FIRST_TIME

    detected = detect_services(selected.path)
    result = reconcile(proj.services, detected, policy)
    log_event("detect_complete", {
        "file": selected.relative_path,
        "policy": policy,
        "outcome": result.outcome,
        "added": result.added,
        "updated": result.updated,
        "replaced": result.replaced,
        "removed": result.removed,
    })

    if result.outcome == "no-services-detected":
        print("No services detected; inventory left unchanged.")
        return 0

    try:
        compose_file = os.path.relpath(selected.path, project_dir)
    except ValueError:
        compose_file = selected.path
    if result.outcome == "in-sync" and proj.compose_file == compose_file:
        print("All services are already in sync.")
        return 0

    print(f"Services ({policy}): {result.added} added, {result.updated} updated, "
          f"{result.replaced} replaced, {result.removed} removed")
    if args.dry_run:
        print("(dry run: project file not written)")
        return 0
    proj.services = result.merged
    proj.compose_file = compose_file
    save_project_config(proj, project_path)
    print(f"Saved {project_path}")
    return 0


def _topology_file(value: str) -> Optional[Path]:
    path = Path(value).expanduser()
    if not path.is_file():
        print(f"❌ Topology file not found: {path}")
        return None
    return path


def cmd_analyze(args: argparse.Namespace) -> int:
    path = _topology_file(args.file)
    if path is None:
        return 1
    try:
        info = analyze_topology(path)
    except TOPOLOGY_ERRORS as e:
        print(f"❌ Failed to analyze {path.name}: {e}")
        return 1

    st = path.stat()
    modified = datetime.fromtimestamp(st.st_mtime).strftime("%Y-%m-%d %H:%M")
    print(f"{path.name}  ({format_file_size(st.st_size)}, modified {modified})")
    if info["version"]:
        print(f"version: {info['version']}")
    names = [s["name"] for s in info["services"]]
    print(f"{len(names)} services: {', '.join(names) if names else '(none)'}")
    for s in info["services"]:
        print()
        print(f"- {s['name']}")
        if s["image"]:
            print(f"  image:        {s['image']}")
        if s["build"]:
            print(f"  build:        {s['build']}")
        if s["ports"]:
            print(f"  ports:        {', '.join(s['ports'])}")
        if s["volumes"]:
            print(f"  volumes:      {len(s['volumes'])}")
        if s["environment_count"]:
            print(f"  environment:  {s['environment_count']} variable(s)")
        if s["depends_on"]:
            print(f"  depends on:   {', '.join(s['depends_on'])}")
        if s["networks"]:
            print(f"  networks:     {', '.join(s['networks'])}")
    if info["networks"]:
        print()
        print(f"networks ({len(info['networks'])}): {', '.join(info['networks'])}")
    if info["volumes"]:
        print(f"volumes ({len(info['volumes'])}): {', '.join(info['volumes'])}")
    log_event("analyze_complete", {"file": str(path), "services": len(names)})
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    path = _topology_file(args.file)
    if path is None:
        return 1
    try:
        warnings = validate_topology(path)
    except TOPOLOGY_ERRORS as e:
        print(f"❌ Invalid topology file {path.name}: {e}")
        return 1
    print(f"✅ {path.name} parses")
    for w in warnings:
        print(f"⚠️  {w}")
    return 0


def cmd_services(args: argparse.Namespace) -> int:
    cfg = load_config()
    proj = load_project_config(_project_dir(args) / cfg.project_file)
    if not proj.services:
        print("(empty)")
        return 0
    for d in proj.services.values():
        port = str(d.port) if d.port else "-"
        origin = "detected" if d.detected else "manual"
        print(f"- {d.name:24}  port={port:6}  {origin:8}  {d.description or ''}")
    return 0


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).expanduser().read_text(encoding="utf-8", errors="replace")


def _print_record(r: ServiceStatusRecord) -> None:
    ports = ",".join(r.ports) if r.ports else "-"
    health = "" if r.health == "none" else f" ({r.health})"
    print(f"- {r.name:24}  {r.state:10}{health:12}  ports={ports:16}  {r.uptime_text or ''}")


def cmd_status(args: argparse.Namespace) -> int:
    cfg = load_config()
    project_dir = _project_dir(args)
    proj = load_project_config(project_dir / cfg.project_file)

    hint: Optional[str] = args.format
    if args.input:
        raw = _read_input(args.input)
    else:
        res, detected_hint = compose_ps(
            args.file or proj.compose_file,
            workdir=str(project_dir),
            compose_command=cfg.compose_command,
            legacy_command=cfg.legacy_compose_command,
        )
        if not res.ok:
            print(f"❌ Status query failed: {res.stderr.strip() or res.returncode}")
            return 1
        raw = res.stdout
        hint = hint or detected_hint

    records = normalize(raw, hint, project=proj.project_name)
    write_status_snapshot(records)
    if not records:
        print("(no status available)")
        return 0

    for r in records:
        _print_record(r)
    counts = summarize(records)
    print()
    print(f"{counts['running']}/{counts['total']} running, {counts['healthy']} healthy")

    seen = {r.name for r in records}
    missing = [name for name in proj.services if name not in seen]
    if missing:
        print(f"⚠️  Not created: {', '.join(missing)}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    cfg = load_config()
    if args.show:
        print(config_path())
        print()
        print(cfg)
        return 0
    if args.depth is not None:
        if args.depth < 0:
            print("❌ depth must be >= 0")
            return 1
        cfg.max_depth = args.depth
    if args.variants is not None:
        cfg.include_variants = bool(args.variants)
    if args.add_exclude:
        cfg.exclude_dir_names = sorted(set(cfg.exclude_dir_names) | {args.add_exclude})
    if args.policy:
        cfg.default_policy = args.policy
    save_config(cfg)
    log_event("config_updated", {
        "max_depth": cfg.max_depth,
        "include_variants": cfg.include_variants,
        "default_policy": cfg.default_policy,
    })
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    """
    Runs diagnostics and writes a health snapshot.
    """
    checks = []

    try:
        cfg = load_config()
        checks.append({"name": "config", "status": "ok", "message": f"max_depth={cfg.max_depth}"})
    except (OSError, ValueError) as e:
        cfg = None
        checks.append({"name": "config", "status": "error", "message": str(e)})

    if cfg is not None:
        try:
            proj = load_project_config(_project_dir(args) / cfg.project_file)
            checks.append({"name": "project", "status": "ok", "message": f"{len(proj.services)} services"})
        except OSError as e:
            checks.append({"name": "project", "status": "error", "message": str(e)})

    binary = docker_binary()
    if binary:
        checks.append({"name": "docker", "status": "ok", "message": binary})
    else:
        checks.append({"name": "docker", "status": "warning", "message": "docker binary not on PATH"})

    if docker_daemon_running():
        checks.append({"name": "daemon", "status": "ok", "message": "container daemon process found"})
    else:
        checks.append({"name": "daemon", "status": "warning", "message": "no container daemon process found"})

    write_health_snapshot(checks)

    print("Health Check:")
    for c in checks:
        icon = "✅" if c["status"] == "ok" else "❌" if c["status"] == "error" else "⚠️"
        print(f"{icon} {c['name']:10} : {c['message']}")
    return 0


def _add_discovery_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("root", nargs="?", help="Search root (default: current directory)")
    p.add_argument("--depth", type=int, help="Override max search depth")
    p.add_argument("--no-variants", action="store_true", help="Only primary file names")
    p.add_argument("--exclude", nargs="*", help="Extra directory names to skip")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="composepilot", description="Compose topology discovery, service inventory and status.")
    p.add_argument("-v", "--verbose", action="store_true")
    p.add_argument("--project-dir", help="Directory holding the project file (default: current directory)")
    sub = p.add_subparsers(dest="cmd", required=True)

    pdisc = sub.add_parser("discover", help="List ranked topology files.")
    _add_discovery_args(pdisc)
    pdisc.add_argument("--hide-empty", action="store_true", help="Hide files without services")
    pdisc.set_defaults(func=cmd_discover)

    pdet = sub.add_parser("detect", help="Detect services from a topology file and update the project file.")
    _add_discovery_args(pdet)
    pdet.add_argument("--select", type=int, help="1-based index into the ranked list (default: 1)")
    pdet.add_argument("--policy", choices=list(POLICIES))
    pdet.add_argument("--dry-run", action="store_true")
    pdet.set_defaults(func=cmd_detect)

    pana = sub.add_parser("analyze", help="Summarize the services, networks and volumes of one topology file.")
    pana.add_argument("file")
    pana.set_defaults(func=cmd_analyze)

    pval = sub.add_parser("validate", help="Check that a topology file parses and report structural warnings.")
    pval.add_argument("file")
    pval.set_defaults(func=cmd_validate)

    psvc = sub.add_parser("services", help="List the stored service inventory.")
    psvc.set_defaults(func=cmd_services)

    pstat = sub.add_parser("status", help="Show normalized service status.")
    pstat.add_argument("--file", help="Topology file passed to the compose tool")
    pstat.add_argument("--format", choices=list(FORMATS), help="Format of the status output")
    pstat.add_argument("--input", help="Read captured status output from a file ('-' for stdin)")
    pstat.set_defaults(func=cmd_status)

    pcfg = sub.add_parser("config", help="Show/update config.")
    pcfg.add_argument("--show", action="store_true")
    pcfg.add_argument("--depth", type=int)
    pcfg.add_argument("--variants", type=int, choices=[0, 1])
    pcfg.add_argument("--add-exclude", type=str)
    pcfg.add_argument("--policy", choices=list(POLICIES))
    pcfg.set_defaults(func=cmd_config)

    phealth = sub.add_parser("health", help="Run diagnostics and save health snapshot.")
    phealth.set_defaults(func=cmd_health)
    return p


def main(argv: Optional[List[str]] = None) -> None:
    p = build_parser()
    args = p.parse_args(argv)
    setup_logging(verbose=args.verbose)
    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
