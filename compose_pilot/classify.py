from __future__ import annotations
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .logger import log_event
from .models import TopologyFileCandidate
from .topology import service_names
from .walker import PRIMARY_FILENAMES, walk

# First match wins; the tag on the left is what the candidate reports
ENVIRONMENT_PATTERNS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("dev", ("dev",)),
    ("prod", ("prod", "production")),
    ("test", ("test", "testing")),
    ("staging", ("staging",)),
    ("local", ("local",)),
    ("override", ("override",)),
)

DEPTH_WEIGHT = 10
VARIANT_PENALTY = 5
EMPTY_PENALTY = 20


def environment_tag(filename: str) -> str:
    low = filename.lower()
    for tag, tokens in ENVIRONMENT_PATTERNS:
        if any(token in low for token in tokens):
            return tag
    return "none"


def is_primary_name(filename: str) -> bool:
    return filename in PRIMARY_FILENAMES


def priority_score(depth: int, is_primary: bool, service_count: int) -> int:
    """
    Lower is better: shallow files first, then primary names, then files that
    declare services, then files declaring more services.
    """
    score = DEPTH_WEIGHT * depth
    if not is_primary:
        score += VARIANT_PENALTY
    if service_count == 0:
        score += EMPTY_PENALTY
    return score - service_count


def _relative(path: Path, root: Optional[Path]) -> Tuple[str, int]:
    if root is not None:
        try:
            rel = path.relative_to(root)
            return rel.as_posix(), len(rel.parts) - 1
        except ValueError:
            pass
    return path.name, 0


def classify_one(path: Union[str, Path], root: Optional[Union[str, Path]] = None) -> TopologyFileCandidate:
    p = Path(path).absolute()
    base = Path(root).absolute() if root is not None else p.parent
    relative_path, depth = _relative(p, base)

    size, modified = 0, None
    try:
        st = p.stat()
        size = st.st_size
        modified = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
    except OSError as e:
        log_event("classify_stat_failed", {"path": str(p), "error": str(e)}, level=logging.DEBUG)

    names = tuple(service_names(p))
    primary = is_primary_name(p.name)
    return TopologyFileCandidate(
        path=str(p),
        relative_path=relative_path,
        depth=depth,
        size_bytes=size,
        modified_at=modified,
        environment_tag="none" if primary else environment_tag(p.name),
        is_primary=primary,
        service_names=names,
        priority_score=priority_score(depth, primary, len(names)),
    )


def rank(candidates: Iterable[TopologyFileCandidate]) -> List[TopologyFileCandidate]:
    return sorted(candidates, key=lambda c: (c.priority_score, c.relative_path))


def classify(paths: Iterable[Union[str, Path]], root: Optional[Union[str, Path]] = None) -> List[TopologyFileCandidate]:
    """
    Classify every path and return them ranked (ascending score, then relative
    path). A file that fails to parse is still returned, with no service names.
    """
    cands = [classify_one(p, root) for p in paths]
    ranked = rank(cands)
    log_event("classify_complete", {
        "root": str(root) if root is not None else None,
        "candidates": len(ranked),
        "top": ranked[0].relative_path if ranked else None,
    }, level=logging.DEBUG)
    return ranked


def select_candidate(ranked: Sequence[TopologyFileCandidate], index: Optional[int] = None) -> Optional[TopologyFileCandidate]:
    """Top-ranked candidate by default; an explicit 0-based index overrides it."""
    if not ranked:
        return None
    if index is None:
        return ranked[0]
    if index < 0 or index >= len(ranked):
        raise IndexError(f"candidate index {index} out of range (0..{len(ranked) - 1})")
    return ranked[index]


def discover(
    root: Union[str, os.PathLike],
    max_depth: int,
    excluded_dir_names: Optional[Iterable[str]] = None,
    include_variants: bool = True,
) -> List[TopologyFileCandidate]:
    """Walk + classify in one call."""
    paths = walk(root, max_depth, excluded_dir_names, include_variants=include_variants)
    return classify(paths, root=Path(root).expanduser())
