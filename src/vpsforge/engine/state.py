# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/state.py
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List


class ModuleState(str, Enum):
    PENDING = "pending"
    CONTRACT_CHECKED = "contract_checked"
    DRY_RUN_REPORTED = "dry_run_reported"
    INSTALLED = "installed"
    VERIFIED = "verified"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL: FrozenSet[ModuleState] = frozenset({ModuleState.SUCCESS, ModuleState.FAILED, ModuleState.SKIPPED})

TRANSITIONS: Dict[ModuleState, FrozenSet[ModuleState]] = {
    ModuleState.PENDING: frozenset({ModuleState.CONTRACT_CHECKED}),
    ModuleState.CONTRACT_CHECKED: frozenset({ModuleState.DRY_RUN_REPORTED, ModuleState.INSTALLED}),
    ModuleState.DRY_RUN_REPORTED: frozenset({ModuleState.VERIFIED}),
    ModuleState.INSTALLED: frozenset({ModuleState.VERIFIED}),
    ModuleState.VERIFIED: frozenset({ModuleState.SUCCESS}),
}


class IllegalTransition(RuntimeError):
    pass


class ModuleStateMachine:
    def __init__(self, module_id: str):
        self.module_id = module_id
        self.state = ModuleState.PENDING
        self.history: List[ModuleState] = [ModuleState.PENDING]

    def can(self, target: ModuleState) -> bool:
        if self.state in TERMINAL:
            return False
        if target in (ModuleState.FAILED, ModuleState.SKIPPED):
            return True
        return target in TRANSITIONS.get(self.state, frozenset())

    def advance(self, target: ModuleState) -> ModuleState:
        if not self.can(target):
            raise IllegalTransition(
                f"{self.module_id}: {self.state.value} -> {target.value} is not allowed"
            )
        self.state = target
        self.history.append(target)
        return target

    @property
    def done(self) -> bool:
        return self.state in TERMINAL
