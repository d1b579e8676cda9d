from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import AbstractSet, FrozenSet, Iterable, List, Optional, Union

from .logger import log_event

PRIMARY_FILENAMES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")

TOPOLOGY_STEMS = ("docker-compose", "compose")
TOPOLOGY_EXTENSIONS = ("yml", "yaml")
VARIANT_TOKENS = (
    "dev", "development",
    "prod", "production",
    "test", "testing",
    "staging",
    "local",
    "override",
)


def _variant_filenames() -> FrozenSet[str]:
    names = set()
    for stem in TOPOLOGY_STEMS:
        for token in VARIANT_TOKENS:
            for sep in (".", "-"):
                for ext in TOPOLOGY_EXTENSIONS:
                    names.add(f"{stem}{sep}{token}.{ext}")
    return frozenset(names)


VARIANT_FILENAMES = _variant_filenames()

# Hard exclusions (directory names); any name starting with "." is excluded as well
DEFAULT_EXCLUDED_DIRS: FrozenSet[str] = frozenset({
    ".git", ".hg", ".svn",
    "node_modules", "vendor", "bower_components",
    "__pycache__", ".pytest_cache", ".tox", "venv", ".venv", "env",
    "dist", "build", "target", "out", "coverage", ".next", ".nuxt",
    "tmp", "temp", "logs",
    ".idea", ".vscode", ".docker",
})


def recognized_filenames(include_variants: bool = True) -> FrozenSet[str]:
    names = set(PRIMARY_FILENAMES)
    if include_variants:
        names |= VARIANT_FILENAMES
    return frozenset(names)


def is_excluded_dir(name: str, excluded: AbstractSet[str]) -> bool:
    return name.startswith(".") or name in excluded


def walk(
    root: Union[str, os.PathLike],
    max_depth: int,
    excluded_dir_names: Optional[Iterable[str]] = None,
    include_variants: bool = True,
    defaults: AbstractSet[str] = DEFAULT_EXCLUDED_DIRS,
) -> List[Path]:
    """
    Depth-first search for topology files under `root`.

    `max_depth` counts directory levels below root (0 = root only). Entries are
    visited in sorted name order so the result is reproducible for a given
    tree. Only a missing or unreadable root raises; unreadable subdirectories
    are skipped.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    base = Path(root).expanduser()
    if not base.exists():
        raise FileNotFoundError(f"search root does not exist: {base}")
    if not base.is_dir():
        raise NotADirectoryError(f"search root is not a directory: {base}")
    if not os.access(base, os.R_OK | os.X_OK):
        raise PermissionError(f"search root is not readable: {base}")

    excluded = frozenset(defaults) | frozenset(excluded_dir_names or ())
    wanted = recognized_filenames(include_variants)
    found: List[Path] = []

    def _visit(directory: Path, depth: int, is_root: bool) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            if is_root:
                raise
            log_event("walk_dir_skipped", {"dir": str(directory), "error": str(e)}, level=logging.DEBUG)
            return
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if depth < max_depth and not is_excluded_dir(entry.name, excluded):
                        _visit(Path(entry.path), depth + 1, False)
                elif entry.name in wanted and entry.is_file():
                    found.append(Path(entry.path).absolute())
            except OSError as e:
                log_event("walk_entry_skipped", {"path": entry.path, "error": str(e)}, level=logging.DEBUG)

    _visit(base, 0, True)
    return found
