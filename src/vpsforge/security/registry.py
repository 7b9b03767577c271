# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/security/registry.py
from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..config.models import ChecksumEntry
from ..errors import RegistryLoadError

log = logging.getLogger("vpsforge")


class ChecksumRegistry:
    """
    Trusted installer URLs and their pinned sha256 digests.

    File format::

        installers:
          bun:
            url: "https://bun.sh/install"
            sha256: "<64 hex chars>"

    Loaded once per run and never mutated afterwards.
    """

    def __init__(self, entries: Mapping[str, ChecksumEntry], *, source: Optional[Path] = None):
        self._entries: Mapping[str, ChecksumEntry] = MappingProxyType(dict(entries))
        self.source = source

    @classmethod
    def empty(cls) -> "ChecksumRegistry":
        return cls({})

    @classmethod
    def load(cls, path: str | Path) -> "ChecksumRegistry":
        path = Path(path)
        if not path.is_file():
            raise RegistryLoadError(f"checksums file not found: {path}")

        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise RegistryLoadError(f"checksums file {path} is not valid YAML: {exc}") from exc

        installers = data.get("installers") if isinstance(data, dict) else None
        if not isinstance(installers, dict):
            raise RegistryLoadError(f"checksums file {path} has no 'installers' mapping")

        entries: Dict[str, ChecksumEntry] = {}
        for tool, raw in installers.items():
            if not isinstance(raw, dict):
                raise RegistryLoadError(f"{path}: entry for '{tool}' must be a mapping with url and sha256")
            try:
                entries[str(tool)] = ChecksumEntry(tool=str(tool), url=raw.get("url", ""), sha256=str(raw.get("sha256", "")))
            except ValidationError as exc:
                raise RegistryLoadError(f"{path}: invalid entry for '{tool}':\n{exc}") from exc

        log.debug("Loaded %d checksum entries from %s", len(entries), path)
        return cls(entries, source=path)

    def lookup(self, tool: str) -> Optional[ChecksumEntry]:
        """Return the entry for *tool*, or None when the registry has no such tool."""
        return self._entries.get(tool)

    def tools(self) -> List[str]:
        return sorted(self._entries)

    def __iter__(self) -> Iterator[ChecksumEntry]:
        for tool in self.tools():
            yield self._entries[tool]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tool: object) -> bool:
        return tool in self._entries
