# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/execution/runner.py
from __future__ import annotations

import getpass
import logging
import subprocess
import time
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

log = logging.getLogger("vpsforge")


@dataclass
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class Runner(Protocol):
    """Something that can spawn an argv on the target machine."""

    current_user: str
    label: str

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult: ...


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", "replace")
    return data


@dataclass
class CommandRunner:
    """
    Runs commands on the local machine. argv is handed to subprocess as a
    list; no shell is involved unless the argv itself starts one.
    """
    label: str = "local"
    timeout: float = 1800.0
    current_user: str = field(default_factory=getpass.getuser)

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv = [str(a) for a in argv]
        cmd_str = " ".join(argv)
        log.debug("[%s] $ %s", self.label, cmd_str)

        start = time.time()
        try:
            cp = subprocess.run(
                argv,
                input=stdin,
                capture_output=True,
                check=False,
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError as exc:
            # missing program behaves like the shell's "command not found"
            log.debug("[%s][exit 127] %s", self.label, exc)
            return CommandResult(argv=argv, returncode=127, stderr=str(exc), duration_s=time.time() - start)
        except subprocess.TimeoutExpired as exc:
            log.debug("[%s] timed out after %ss", self.label, exc.timeout)
            return CommandResult(
                argv=argv,
                returncode=124,
                stdout=_decode(exc.stdout),
                stderr=f"timed out after {exc.timeout}s",
                duration_s=time.time() - start,
            )

        duration = time.time() - start
        result = CommandResult(
            argv=argv,
            returncode=cp.returncode,
            stdout=_decode(cp.stdout),
            stderr=_decode(cp.stderr),
            duration_s=duration,
        )

        if result.stdout:
            log.debug("[%s][stdout]\n%s", self.label, result.stdout.rstrip())
        if result.stderr:
            log.debug("[%s][stderr]\n%s", self.label, result.stderr.rstrip())
        log.debug("[%s][exit %d] (%.2fs)", self.label, result.returncode, duration)

        return result
