# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/sessions.py
from __future__ import annotations

import functools
import logging
import time
from typing import Callable, List, Optional, Sequence

from ..config.models import ChecksumEntry, Command, Module, VerifiedInstaller
from ..errors import SessionLaunchFailed
from ..execution.identity import IdentityRouter
from ..execution.runner import CommandResult
from ..security.verifier import SecurityVerifier
from ..utils.retry import RetryError, retry

log = logging.getLogger("vpsforge")

RunFn = Callable[..., CommandResult]

# Reads the installer from stdin into a private executable and prints its path.
STAGE_SCRIPT = (
    'umask 077; '
    't=$(mktemp "${TMPDIR:-/tmp}/vpsforge-install-XXXXXX") && '
    'cat > "$t" && chmod 700 "$t" && echo "$t"'
)


class SessionBackend:
    """
    A named, persistent detached session. Subclasses only say which
    commands to run; `run` executes them as the module's identity.
    """
    name = "base"

    def has_command(self, session: str) -> Command:
        raise NotImplementedError

    def kill_command(self, session: str) -> Command:
        raise NotImplementedError

    def new_command(self, session: str, argv: Sequence[str]) -> Command:
        raise NotImplementedError

    def exists(self, run: RunFn, session: str) -> bool:
        return run(self.has_command(session)).ok

    def terminate(self, run: RunFn, session: str) -> None:
        res = run(self.kill_command(session))
        if not res.ok:
            log.debug("%s: terminate %s exited %d", self.name, session, res.returncode)

    def spawn(self, run: RunFn, session: str, argv: Sequence[str]) -> CommandResult:
        return run(self.new_command(session, argv))


class TmuxBackend(SessionBackend):
    name = "tmux"

    def has_command(self, session: str) -> Command:
        return Command(program="tmux", args=["has-session", "-t", session])

    def kill_command(self, session: str) -> Command:
        return Command(program="tmux", args=["kill-session", "-t", session])

    def new_command(self, session: str, argv: Sequence[str]) -> Command:
        return Command(program="tmux", args=["new-session", "-d", "-s", session, *argv])


class ScreenBackend(SessionBackend):
    name = "screen"

    def has_command(self, session: str) -> Command:
        # `screen -ls` exit status is unreliable; match the socket name instead
        return Command(
            program="sh",
            args=["-c", 'screen -ls 2>/dev/null | grep -q "[.]$1[[:space:]]"', "_", session],
        )

    def kill_command(self, session: str) -> Command:
        return Command(program="screen", args=["-S", session, "-X", "quit"])

    def new_command(self, session: str, argv: Sequence[str]) -> Command:
        return Command(program="screen", args=["-dmS", session, *argv])


BACKENDS = {"tmux": TmuxBackend, "screen": ScreenBackend}


def get_backend(name: str) -> SessionBackend:
    try:
        return BACKENDS[name]()
    except KeyError:
        raise ValueError(f"unknown session backend '{name}' (expected one of {', '.join(sorted(BACKENDS))})")


class DetachedSessionManager:
    """
    Launches a verified installer inside a named detached session.

    The payload is verified before anything is written to disk, so the
    trust boundary is the same as for a synchronous install. The caller
    does not wait for the installer to finish.
    """

    def __init__(
        self,
        router: IdentityRouter,
        verifier: SecurityVerifier,
        backend: Optional[SessionBackend] = None,
        *,
        settle_s: float = 3.0,
        confirm_attempts: int = 3,
        confirm_delay_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.router = router
        self.verifier = verifier
        self.backend = backend or TmuxBackend()
        self.settle_s = settle_s
        self.confirm_attempts = confirm_attempts
        self.confirm_delay_s = confirm_delay_s
        self.sleep = sleep

    def launch(self, module: Module, installer: VerifiedInstaller, entry: ChecksumEntry) -> CommandResult:
        payload = self.verifier.fetch_and_verify(entry.url, entry.sha256, entry.tool)
        run = functools.partial(self.router.run_as, module.identity)
        session = module.session_name

        staged = run(Command(program="sh", args=["-c", STAGE_SCRIPT]), stdin=payload.content)
        path = staged.stdout.strip().splitlines()[-1] if staged.stdout.strip() else ""
        if not staged.ok or not path:
            raise SessionLaunchFailed(
                f"could not stage installer for {entry.tool}: {staged.stderr.strip() or 'no path returned'}",
                module_id=module.id,
                step="stage",
            )
        log.debug("[%s] staged %s at %s", module.id, entry.tool, path)

        if self.backend.exists(run, session):
            log.info("[%s] terminating stale %s session '%s'", module.id, self.backend.name, session)
            self.backend.terminate(run, session)

        argv: List[str] = [installer.runner, path, *installer.args]
        res = self.backend.spawn(run, session, argv)
        if not res.ok:
            raise SessionLaunchFailed(
                f"{self.backend.name} refused to start session '{session}' (exit {res.returncode})",
                module_id=module.id,
                step="spawn",
                command=" ".join(argv),
            )

        self.sleep(self.settle_s)
        self._confirm(module, run, session)

        log.info("[%s] installing in %s session '%s'", module.id, self.backend.name, session)
        return res

    def _confirm(self, module: Module, run: RunFn, session: str) -> None:
        @retry(
            retries=self.confirm_attempts,
            delay=self.confirm_delay_s,
            retry_on=(SessionLaunchFailed,),
            sleep=self.sleep,
        )
        def _probe():
            if not self.backend.exists(run, session):
                raise SessionLaunchFailed(
                    f"session '{session}' is not running",
                    module_id=module.id,
                    step="confirm",
                )

        try:
            _probe()
        except RetryError as exc:
            raise SessionLaunchFailed(
                f"session '{session}' did not start ({self.backend.name})",
                module_id=module.id,
                step="confirm",
            ) from exc
