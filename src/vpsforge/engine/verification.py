# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/verification.py
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import List

from ..config.models import Module
from ..execution.identity import IdentityRouter
from .gate import Action, ExecutionGate

log = logging.getLogger("vpsforge")

OK = "ok"
FAIL = "fail"
SKIP = "skip"


@dataclass
class CheckResult:
    check_id: str
    module_id: str
    description: str
    command: str
    required: bool
    status: str                  # ok | fail | skip
    exit_code: int = 0


def check_id(module: Module, index: int) -> str:
    """`<module>` for a single verify step, `<module>.<n>` (1-based) otherwise."""
    if len(module.verify_steps) == 1:
        return module.id
    return f"{module.id}.{index + 1}"


def run_verify_steps(
    module: Module,
    router: IdentityRouter,
    gate: ExecutionGate,
    *,
    stop_on_fail: bool = False,
) -> List[CheckResult]:
    """
    Run the verify steps of *module* under its declared identity.

    Never installs anything. A failing required step is `fail`, a
    failing optional one is `skip`. With stop_on_fail the first `fail`
    ends the sequence.
    """
    results: List[CheckResult] = []
    for idx, step in enumerate(module.verify_steps):
        cid = check_id(module, idx)
        shown = step.command.display()

        res = gate.execute(
            Action(
                module_id=module.id,
                phase="verify",
                identity=module.identity,
                summary=shown,
                perform=functools.partial(router.run_as, module.identity, step.command),
            )
        )

        if res.ok:
            status = OK
        elif step.required:
            status = FAIL
        else:
            status = SKIP
        log.debug("verify %s: %s (exit %d)", cid, status, res.returncode)

        results.append(
            CheckResult(
                check_id=cid,
                module_id=module.id,
                description=module.description,
                command=shown,
                required=step.required,
                status=status,
                exit_code=res.returncode,
            )
        )
        if status == FAIL and stop_on_fail:
            break
    return results
