# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    mode: str         # vibe/safe
    target: str       # "local" or the ssh host

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(mode: str, target: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "mode": mode,
        "target": target,
    }


# ---------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    order: List[str]

@dataclass(frozen=True)
class PlanFailed(BaseEvent):
    error: str


# ---------------------------------------------------------------------
# Module lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ModuleStarted(BaseEvent):
    module_id: str
    identity: str
    required: bool

@dataclass(frozen=True)
class ContractBlocked(BaseEvent):
    module_id: str
    contract: str

@dataclass(frozen=True)
class StepSucceeded(BaseEvent):
    module_id: str
    step: str
    command: str

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    module_id: str
    step: str
    command: str
    exit_code: Optional[int] = None

@dataclass(frozen=True)
class DryRunReported(BaseEvent):
    module_id: str
    phase: str        # install | verify | detach | check
    identity: str
    action: str

@dataclass(frozen=True)
class VerifyWarning(BaseEvent):
    module_id: str
    check_id: str
    command: str

@dataclass(frozen=True)
class SessionLaunched(BaseEvent):
    module_id: str
    session: str
    backend: str

@dataclass(frozen=True)
class ModuleSucceeded(BaseEvent):
    module_id: str
    already_installed: bool = False

@dataclass(frozen=True)
class ModuleFailed(BaseEvent):
    module_id: str
    error: str
    step: Optional[str] = None
    aborting: bool = True

@dataclass(frozen=True)
class ModuleSkipped(BaseEvent):
    module_id: str
    reason: str


# ---------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunSummary(BaseEvent):
    passed: int
    failed: int
    skipped: int
    aborted: bool

@dataclass(frozen=True)
class DoctorCheckResult(BaseEvent):
    check_id: str
    module_id: str
    status: str       # ok | fail | skip

@dataclass(frozen=True)
class DoctorSummary(BaseEvent):
    passed: int
    failed: int
    skipped: int
