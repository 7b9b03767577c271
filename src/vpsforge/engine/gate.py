# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/gate.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from ..config.models import Identity
from ..config.run import RunConfig
from ..execution.runner import CommandResult
from ..observers.dispatcher import EventBus
from ..observers.events import DryRunReported

log = logging.getLogger("vpsforge")


@dataclass(frozen=True)
class Action:
    """
    One side effect about to happen: a process spawn, an installer fetch
    or a session launch. `perform` does the work; nothing else may.
    """
    module_id: str
    phase: str            # install | verify | detach | check
    identity: Identity
    summary: str
    perform: Callable[[], CommandResult]


class ExecutionGate:
    """
    The one place where dry-run is decided. In dry-run the action is
    reported and `perform` is never called.
    """

    def __init__(self, config: RunConfig, bus: EventBus):
        self.config = config
        self.bus = bus

    def execute(self, action: Action) -> CommandResult:
        if self.config.dry_run:
            log.info(
                "dry-run: [%s] %s as %s: %s",
                action.module_id,
                action.phase,
                action.identity.value,
                action.summary,
            )
            self.bus.publish(
                DryRunReported,
                module_id=action.module_id,
                phase=action.phase,
                identity=action.identity.value,
                action=action.summary,
            )
            return CommandResult(argv=[], returncode=0, dry_run=True)

        return action.perform()
