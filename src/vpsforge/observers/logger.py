# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent
from .interface import event_fields


class LoggerObserver:
    """Mirrors events into the run log file at debug, tagged with the run id."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        self.logger.debug("[event %s] %s: %s", event.run_id, type(event).__name__, event_fields(event))
