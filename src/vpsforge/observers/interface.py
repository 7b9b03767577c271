# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/observers/interface.py
from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import BaseEvent

# carried by every event; observers usually print them once, not per line
CONTEXT_FIELDS = ("ts", "run_id", "mode", "target")


@runtime_checkable
class Observer(Protocol):
    """Anything the EventBus can fan a run's lifecycle events out to."""

    def notify(self, event: BaseEvent) -> None: ...


def event_fields(event: BaseEvent) -> str:
    """`key=value` pairs of an event's own fields, context left out."""
    return ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in CONTEXT_FIELDS)
