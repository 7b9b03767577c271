# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/observers/dispatcher.py
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from .events import BaseEvent, new_ctx
from .interface import Observer

log = logging.getLogger("vpsforge")


class EventBus:
    """
    Fans events out to observers. Carries the per-run context so
    emitters only pass their own fields.
    """

    def __init__(self, observers: Optional[List[Observer]] = None, *, mode: str = "vibe", target: str = "local", run_id: Optional[str] = None):
        self._observers: List[Observer] = list(observers or [])
        self._lock = threading.Lock()
        self.mode = mode
        self.target = target
        self.run_id = run_id

    def ctx(self) -> Dict[str, Any]:
        ctx = new_ctx(self.mode, self.target, self.run_id)
        self.run_id = ctx["run_id"]
        return ctx

    def publish(self, event_cls, **fields) -> BaseEvent:
        event = event_cls(**self.ctx(), **fields)
        self.emit(event)
        return event

    def emit(self, event: BaseEvent) -> None:
        with self._lock:
            observers = list(self._observers)
        for ob in observers:
            try:
                ob.notify(event)
            except Exception as exc:
                # observers must not break a run
                log.debug("observer %s failed on %s: %s", type(ob).__name__, type(event).__name__, exc)
