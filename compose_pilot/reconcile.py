from __future__ import annotations
import logging
from typing import Dict, Mapping

from .logger import log_event
from .models import ReconciliationResult, ServiceDescriptor

POLICY_MERGE = "merge"
POLICY_REPLACE = "replace"
POLICY_FIRST_TIME = "first-time"
POLICIES = (POLICY_MERGE, POLICY_REPLACE, POLICY_FIRST_TIME)

Inventory = Mapping[str, ServiceDescriptor]


def _copy(name: str, d: ServiceDescriptor) -> ServiceDescriptor:
    return ServiceDescriptor.from_dict(name, d.to_dict())


def merge_descriptor(current: ServiceDescriptor, detected: ServiceDescriptor) -> ServiceDescriptor:
    """Detected fields first, then any field the current entry already sets on top."""
    fields = detected.to_dict()
    fields.update(current.to_dict())
    fields["detected"] = True
    return ServiceDescriptor.from_dict(current.name, fields)


def _merge(current: Inventory, detected: Inventory, result: ReconciliationResult) -> None:
    merged: Dict[str, ServiceDescriptor] = {name: _copy(name, d) for name, d in current.items()}
    for name, found in detected.items():
        if name in merged:
            merged[name] = merge_descriptor(merged[name], found)
            result.updated += 1
        else:
            merged[name] = _copy(name, found)
            result.added += 1
    result.merged = merged


def _replace(current: Inventory, detected: Inventory, result: ReconciliationResult) -> None:
    merged: Dict[str, ServiceDescriptor] = {}
    for name, found in detected.items():
        merged[name] = _copy(name, found)
        if name in current:
            result.replaced += 1
        else:
            result.added += 1
    result.removed = sum(1 for name in current if name not in detected)
    result.merged = merged


def _first_time(current: Inventory, detected: Inventory, result: ReconciliationResult) -> None:
    if current:
        raise ValueError("first-time reconciliation requires an empty current inventory")
    result.merged = {name: _copy(name, found) for name, found in detected.items()}
    result.added = len(result.merged)


def reconcile(current: Inventory, detected: Inventory, policy: str = POLICY_MERGE) -> ReconciliationResult:
    """
    Combine the persisted inventory with a freshly detected one.

    merge      keep everything, add new names, overlay user fields on re-detected ones
    replace    keep only detected names; counts replaced/added/removed
    first-time populate an empty inventory

    An empty detected inventory is a no-op for every policy: `merged` is the
    current inventory and `outcome` reports "no-services-detected".
    Pure function: neither input is mutated and nothing is read or written.
    """
    if policy not in POLICIES:
        raise ValueError(f"unknown reconciliation policy: {policy!r} (expected one of {', '.join(POLICIES)})")

    result = ReconciliationResult(merged={}, policy=policy, detected_count=len(detected))
    if not detected:
        result.merged = {name: _copy(name, d) for name, d in current.items()}
        log_event("reconcile_noop", {"policy": policy, "current": len(current)}, level=logging.DEBUG)
        return result

    if policy == POLICY_MERGE:
        _merge(current, detected, result)
    elif policy == POLICY_REPLACE:
        _replace(current, detected, result)
    else:
        _first_time(current, detected, result)

    result.changed = result.merged != dict(current)
    log_event("reconcile_complete", {
        "policy": policy,
        "added": result.added,
        "updated": result.updated,
        "replaced": result.replaced,
        "removed": result.removed,
        "changed": result.changed,
    }, level=logging.DEBUG)
    return result
