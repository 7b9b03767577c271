# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/security/audit.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import yaml

from ..errors import ChecksumMismatch, VerificationError
from .registry import ChecksumRegistry
from .verifier import SecurityVerifier


@dataclass
class ToolAudit:
    tool: str
    url: str
    status: str                  # "ok" | "changed" | "error"
    actual: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RegistryAudit:
    results: List[ToolAudit] = field(default_factory=list)

    @property
    def verified(self) -> int:
        return sum(1 for r in self.results if r.status == "ok")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status != "ok")

    @property
    def ok(self) -> bool:
        return self.failed == 0


def audit_registry(registry: ChecksumRegistry, verifier: SecurityVerifier) -> RegistryAudit:
    """
    Re-fetch every registered installer and compare against its pin.
    Nothing is executed.
    """
    audit = RegistryAudit()
    for entry in registry:
        try:
            payload = verifier.fetch_and_verify(entry.url, entry.sha256, entry.tool)
            audit.results.append(ToolAudit(entry.tool, entry.url, "ok", actual=payload.sha256))
        except ChecksumMismatch as exc:
            audit.results.append(ToolAudit(entry.tool, entry.url, "changed", actual=exc.actual))
        except VerificationError as exc:
            audit.results.append(ToolAudit(entry.tool, entry.url, "error", error=str(exc)))
    return audit


def render_registry(registry: ChecksumRegistry, verifier: SecurityVerifier) -> Tuple[str, List[str]]:
    """
    Build a refreshed checksums.yaml document from what upstream serves now.

    Tools that cannot be fetched keep their current pin and are returned
    in the second element so the caller can report them.
    """
    installers = {}
    failures: List[str] = []
    for entry in registry:
        try:
            digest = verifier.compute_digest(entry.url, entry.tool)
        except VerificationError:
            digest = entry.sha256
            failures.append(entry.tool)
        installers[entry.tool] = {"url": entry.url, "sha256": digest}

    text = yaml.safe_dump({"installers": installers}, sort_keys=True, default_flow_style=False)
    return text, failures
