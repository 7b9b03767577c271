# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/execution/identity.py
from __future__ import annotations

import logging
from typing import List, Optional

from ..config.models import Command, Identity
from ..config.run import RunConfig
from .runner import CommandResult, Runner

log = logging.getLogger("vpsforge")

USER_PATH_DIRS = (".local/bin", ".cargo/bin", ".bun/bin", ".atuin/bin", "go/bin")

# Fixed wrapper: argv after "_" is exec'd unchanged.
TARGET_WRAPPER = (
    'cd "$HOME" 2>/dev/null; '
    'PATH="' + ":".join(f"$HOME/{d}" for d in USER_PATH_DIRS) + ':$PATH"; '
    'export PATH; exec "$@"'
)


class IdentityRouter:
    """
    Runs a Command as root or as the target user.

    Pure dispatch: the caller decides which identity applies.
    """

    def __init__(self, runner: Runner, config: RunConfig):
        self.runner = runner
        self.config = config

    def _env(self) -> List[str]:
        return [
            f"TARGET_USER={self.config.target_user}",
            f"TARGET_HOME={self.config.target_home}",
            f"MODE={self.config.mode}",
        ]

    def argv_for(self, identity: Identity, command: Command) -> List[str]:
        inner = command.argv()
        current = self.runner.current_user

        if identity == Identity.ROOT:
            argv = ["env", *self._env(), *inner]
            if current != "root":
                argv = ["sudo", "-n", *argv]
            return argv

        user = self.config.target_user
        argv = [
            "env",
            f"HOME={self.config.target_home}",
            *self._env(),
            "UV_NO_CONFIG=1",
            "sh", "-c", TARGET_WRAPPER, "_",
            *inner,
        ]
        if current != user:
            argv = ["sudo", "-n", "-u", user, *argv]
        return argv

    def run_as(
        self,
        identity: Identity,
        command: Command,
        *,
        stdin: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv = self.argv_for(identity, command)
        log.debug("run_as %s: %s", identity.value, command.display())
        return self.runner.run(argv, stdin=stdin, timeout=timeout)
