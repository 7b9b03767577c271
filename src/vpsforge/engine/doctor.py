# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/doctor.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from ..config.models import Module
from ..execution.identity import IdentityRouter
from ..observers.dispatcher import EventBus
from ..observers.events import DoctorCheckResult, DoctorSummary
from ..utils.serialize import to_jsonable
from .gate import ExecutionGate
from .verification import FAIL, OK, SKIP, CheckResult, run_verify_steps

log = logging.getLogger("vpsforge")


@dataclass
class DoctorReport:
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def to_json(self) -> str:
        # no timestamps or durations, so identical systems give identical bytes
        return json.dumps(to_jsonable(self), indent=2, sort_keys=True)


class HealthReconciler:
    """
    Re-runs verify steps only. Never touches install steps.
    """

    def __init__(self, router: IdentityRouter, gate: ExecutionGate, bus: EventBus):
        self.router = router
        self.gate = gate
        self.bus = bus

    def reconcile(self, modules: Iterable[Module]) -> DoctorReport:
        report = DoctorReport()
        for module in modules:
            for check in run_verify_steps(module, self.router, self.gate):
                report.checks.append(check)
                if check.status == OK:
                    report.passed += 1
                    log.info("  ok    %s", check.check_id)
                elif check.status == FAIL:
                    report.failed += 1
                    log.error("  FAIL  %s: %s", check.check_id, check.command)
                elif check.status == SKIP:
                    report.skipped += 1
                    log.warning("  skip  %s: %s (optional)", check.check_id, check.command)
                self.bus.publish(
                    DoctorCheckResult,
                    check_id=check.check_id,
                    module_id=check.module_id,
                    status=check.status,
                )

        self.bus.publish(DoctorSummary, passed=report.passed, failed=report.failed, skipped=report.skipped)
        return report
