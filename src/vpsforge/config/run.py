# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/config/run.py

from __future__ import annotations

import getpass
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_TARGET_USER = "ubuntu"
DEFAULT_MODE = "vibe"
MODES = ("vibe", "safe")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def parse_bool(raw: Optional[str], *, name: str = "value") -> bool:
    if raw is None:
        return False
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name}={raw!r} is not a boolean (expected 0/1, true/false, yes/no, on/off)")


def resolve_target_home(target_user: str, *, current_user: str, current_home: Optional[str]) -> Path:
    """
    Resolve the target user's home once, at startup:
      - root            -> /root
      - already target  -> $HOME of this process
      - anyone else     -> /home/<user>
    """
    if target_user == "root":
        return Path("/root")
    if current_user == target_user and current_home:
        return Path(current_home)
    return Path("/home") / target_user


@dataclass(frozen=True)
class RunConfig:
    """
    Controls how a run executes. Built once, then passed to every
    component that needs it; nothing below the CLI reads the environment.
    """

    dry_run: bool = False
    target_user: str = DEFAULT_TARGET_USER
    target_home: Path = Path("/home") / DEFAULT_TARGET_USER
    mode: str = DEFAULT_MODE
    log_dir: Optional[Path] = None

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {', '.join(MODES)}; got {self.mode!r}")
        if not self.target_user:
            raise ValueError("target_user must not be empty")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        dry_run: Optional[bool] = None,
        target_user: Optional[str] = None,
        target_home: Optional[Path] = None,
        mode: Optional[str] = None,
        log_dir: Optional[Path] = None,
        current_user: Optional[str] = None,
    ) -> "RunConfig":
        """
        Collect TARGET_USER / TARGET_HOME / DRY_RUN / MODE from the
        environment; explicit keyword arguments (CLI options) win.
        """
        env = os.environ if environ is None else environ
        user = target_user or env.get("TARGET_USER") or DEFAULT_TARGET_USER
        whoami = current_user or getpass.getuser()

        home: Optional[Path] = target_home
        if home is None and env.get("TARGET_HOME"):
            home = Path(env["TARGET_HOME"])
        if home is None:
            home = resolve_target_home(user, current_user=whoami, current_home=env.get("HOME"))

        if dry_run is None:
            dry_run = parse_bool(env.get("DRY_RUN"), name="DRY_RUN")

        return cls(
            dry_run=dry_run,
            target_user=user,
            target_home=home,
            mode=mode or env.get("MODE") or DEFAULT_MODE,
            log_dir=log_dir,
        )

    def with_dry_run(self, dry_run: bool) -> "RunConfig":
        return replace(self, dry_run=dry_run)
