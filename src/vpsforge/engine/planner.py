# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/planner.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Set

from ..config.models import Manifest, Module
from ..observers.dispatcher import EventBus
from ..observers.events import PlanComputed, PlanFailed


class UnknownModuleError(ValueError):
    pass


class SelectionError(ValueError):
    pass


def _validate_ids(ids: Sequence[str], known: Dict[str, Module], flag: str) -> None:
    for mid in ids:
        if mid not in known:
            raise UnknownModuleError(f"{flag}: unknown module '{mid}'")


def _validate_dependencies(manifest: Manifest) -> None:
    known = manifest.by_id()
    for m in manifest.modules:
        for d in m.dependencies:
            if d not in known:
                raise UnknownModuleError(f"Module '{m.id}' depends on unknown module '{d}'")


def _select(
    manifest: Manifest,
    only: Sequence[str],
    skip: Sequence[str],
    no_deps: bool,
) -> List[Module]:
    known = manifest.by_id()
    _validate_dependencies(manifest)
    _validate_ids(only, known, "--only")
    _validate_ids(skip, known, "--skip")

    if only:
        wanted: Set[str] = set(only)
    else:
        wanted = {m.id for m in manifest.modules if m.enabled_by_default}

    skipped = set(skip)
    wanted -= skipped

    if not no_deps:
        stack = list(wanted)
        while stack:
            mid = stack.pop()
            for dep in known[mid].dependencies:
                if dep in skipped:
                    raise SelectionError(f"Module '{mid}' depends on '{dep}', which was skipped")
                if dep not in wanted:
                    wanted.add(dep)
                    stack.append(dep)

    # compiled order is authoritative
    return [m for m in manifest.modules if m.id in wanted]


def plan(
    manifest: Manifest,
    *,
    only: Optional[Sequence[str]] = None,
    skip: Optional[Sequence[str]] = None,
    no_deps: bool = False,
    bus: Optional[EventBus] = None,
) -> List[Module]:
    """
    Choose which modules run, keeping the manifest's order.

    - default selection is every enabled_by_default module
    - `only` replaces the default selection
    - dependencies of selected modules are pulled in unless `no_deps`
    - skipping a module that a selected module depends on is an error

    Ordering is the manifest compiler's job; this never reorders.
    """
    try:
        ordered = _select(manifest, list(only or []), list(skip or []), no_deps)
    except ValueError as exc:
        if bus is not None:
            bus.publish(PlanFailed, error=str(exc))
        raise

    if bus is not None:
        bus.publish(PlanComputed, order=[m.id for m in ordered])
    return ordered
