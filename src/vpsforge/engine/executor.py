# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/executor.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from ..config.models import Module
from ..observers.dispatcher import EventBus
from ..observers.events import RunSummary
from .installer import ModuleInstaller, ModuleOutcome, SkipRecord
from .state import ModuleState

log = logging.getLogger("vpsforge")


@dataclass
class RunReport:
    outcomes: List[ModuleOutcome] = field(default_factory=list)
    skips: List[SkipRecord] = field(default_factory=list)
    aborted: bool = False
    not_run: List[str] = field(default_factory=list)

    def add(self, outcome: ModuleOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.skip is not None:
            self.skips.append(outcome.skip)

    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.state == ModuleState.SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.aborts_run)

    @property
    def skipped(self) -> int:
        return len(self.skips)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def summary(self) -> str:
        return f"passed={self.passed} failed={self.failed} skipped={self.skipped}"


def install_all(modules: Sequence[Module], installer: ModuleInstaller, bus: EventBus) -> RunReport:
    """
    Install *modules* one after another, in the order given.

    No retries and no parallelism. The first required failure stops the
    run; everything after it is listed in `not_run`. The summary is
    always logged and published, aborted or not.
    """
    report = RunReport()

    for i, module in enumerate(modules):
        outcome = installer.install(module)
        report.add(outcome)

        if outcome.aborts_run:
            report.aborted = True
            report.not_run = [m.id for m in modules[i + 1:]]
            break

    if report.aborted:
        log.error("Run aborted; not run: %s", ", ".join(report.not_run) or "-")
    for rec in report.skips:
        log.warning("skipped %s: %s", rec.module_id, rec.reason)
    log.info("Summary: %s", report.summary())

    bus.publish(
        RunSummary,
        passed=report.passed,
        failed=report.failed,
        skipped=report.skipped,
        aborted=report.aborted,
    )
    return report
