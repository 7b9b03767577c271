# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/cli/helper.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import requests

from vpsforge.config.loader import find_checksums_file
from vpsforge.config.models import Manifest, Module
from vpsforge.errors import RegistryLoadError
from vpsforge.execution.runner import CommandRunner, Runner
from vpsforge.execution.ssh import RemoteHost, open_ssh
from vpsforge.security.registry import ChecksumRegistry

log = logging.getLogger("vpsforge")


@dataclass
class GlobalOptions:
    manifest: Path
    checksums: Optional[Path] = None
    target_user: Optional[str] = None
    target_home: Optional[Path] = None
    mode: Optional[str] = None
    host: Optional[str] = None
    ssh_user: str = "root"
    ssh_key: Optional[Path] = None
    ssh_port: int = 22
    backend: str = "tmux"
    log_dir: Optional[Path] = None
    verbose: bool = False
    events: bool = False

    @property
    def target_label(self) -> str:
        return self.host or "local"


def split_csv(value: Optional[str]) -> List[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def build_runner(opts: GlobalOptions, *, dry_run: bool = False) -> Runner:
    """
    Local subprocess runner, or one paramiko connection when --host is set.
    In dry-run nothing connects; the runner only shapes argv for reporting.
    """
    if not opts.host:
        return CommandRunner()
    if dry_run:
        log.info("dry-run: not connecting to %s@%s", opts.ssh_user, opts.host)
        return CommandRunner(label=opts.host, current_user=opts.ssh_user)
    return open_ssh(
        RemoteHost(
            address=opts.host,
            username=opts.ssh_user,
            port=opts.ssh_port,
            pkey_path=opts.ssh_key,
        )
    )


def build_session() -> requests.Session:
    s = requests.Session()
    s.headers["User-Agent"] = "vpsforge"
    return s


def load_registry(opts: GlobalOptions, *, needed: bool) -> ChecksumRegistry:
    """
    Resolve and load checksums.yaml.

    Raises RegistryLoadError when the file is missing or broken and a
    selected module needs verified installs; otherwise an unusable file
    only costs a warning.
    """
    path = find_checksums_file(opts.manifest, opts.checksums)
    if path is None:
        if needed:
            raise RegistryLoadError(
                "no checksums file found (use --checksums, VPSFORGE_CHECKSUMS_FILE, "
                "or put checksums.yaml next to the manifest)"
            )
        return ChecksumRegistry.empty()

    try:
        return ChecksumRegistry.load(path)
    except RegistryLoadError as exc:
        if needed:
            raise
        log.warning("ignoring checksums file: %s", exc)
        return ChecksumRegistry.empty()


def needs_registry(manifest: Manifest, modules: List[Module]) -> bool:
    return manifest.needs_verified_installs(modules)
