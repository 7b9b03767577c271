# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/contracts/validator.py
from __future__ import annotations

import threading
from typing import Iterable, Optional, Set

from ..errors import ContractUnsatisfied


class ContractValidator:
    """
    Set of satisfied contract keys for one run.

    Keys are only ever added. This does not order modules; it only
    refuses to start one whose prerequisites were never marked.
    """

    def __init__(self, initial: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._satisfied: Set[str] = set(initial)

    def satisfy(self, key: str) -> None:
        with self._lock:
            self._satisfied.add(key)

    def is_satisfied(self, key: str) -> bool:
        with self._lock:
            return key in self._satisfied

    def require(self, key: str, *, module_id: Optional[str] = None) -> None:
        if not self.is_satisfied(key):
            raise ContractUnsatisfied(
                f"contract '{key}' is not satisfied",
                contract=key,
                module_id=module_id,
                step="contract",
            )

    def satisfied(self) -> Set[str]:
        with self._lock:
            return set(self._satisfied)
