# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/observers/console.py
import typer

from .events import BaseEvent
from .interface import event_fields


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        typer.echo(f"[{event.ts}] {type(event).__name__} target={event.target} {event_fields(event)}")
