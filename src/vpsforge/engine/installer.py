# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/engine/installer.py
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config.models import Command, InstallStep, Module, VerifiedInstaller
from ..config.run import RunConfig
from ..contracts.validator import ContractValidator
from ..errors import (
    ContractUnsatisfied,
    ForgeError,
    InstallStepFailed,
    MissingRegistryEntry,
    VerifyStepFailed,
)
from ..execution.identity import IdentityRouter
from ..execution.runner import CommandResult
from ..observers.dispatcher import EventBus
from ..observers.events import (
    ContractBlocked,
    ModuleFailed,
    ModuleSkipped,
    ModuleStarted,
    ModuleSucceeded,
    SessionLaunched,
    StepFailed,
    StepSucceeded,
    VerifyWarning,
)
from ..security.registry import ChecksumRegistry
from ..security.verifier import SecurityVerifier
from .gate import Action, ExecutionGate
from .sessions import DetachedSessionManager
from .state import ModuleState, ModuleStateMachine
from .verification import FAIL, SKIP, run_verify_steps

log = logging.getLogger("vpsforge")


@dataclass
class SkipRecord:
    module_id: str
    reason: str


@dataclass
class ModuleOutcome:
    module_id: str
    state: ModuleState
    required: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    step: Optional[str] = None
    command: Optional[str] = None
    history: List[ModuleState] = field(default_factory=list)
    already_installed: bool = False
    session: Optional[str] = None
    skip: Optional[SkipRecord] = None

    @property
    def aborts_run(self) -> bool:
        return self.required and self.state == ModuleState.FAILED


class ModuleInstaller:
    """
    Drives one module through

        Pending -> ContractChecked -> (DryRunReported | Installed) -> Verified -> Success

    and applies the failure policy: a required module ends Failed, an
    optional one ends Skipped with a SkipRecord. Every side effect goes
    through the ExecutionGate.
    """

    def __init__(
        self,
        config: RunConfig,
        router: IdentityRouter,
        registry: ChecksumRegistry,
        verifier: SecurityVerifier,
        contracts: ContractValidator,
        sessions: DetachedSessionManager,
        gate: ExecutionGate,
        bus: EventBus,
    ):
        self.config = config
        self.router = router
        self.registry = registry
        self.verifier = verifier
        self.contracts = contracts
        self.sessions = sessions
        self.gate = gate
        self.bus = bus

    # ------------------------- public -------------------------

    def install(self, module: Module) -> ModuleOutcome:
        sm = ModuleStateMachine(module.id)
        outcome = ModuleOutcome(module_id=module.id, state=sm.state, required=module.required)

        log.info("==> %s%s", module.id, f": {module.description}" if module.description else "")
        self.bus.publish(
            ModuleStarted,
            module_id=module.id,
            identity=module.identity.value,
            required=module.required,
        )

        try:
            self._check_contracts(module)
            sm.advance(ModuleState.CONTRACT_CHECKED)

            if self._already_installed(module):
                outcome.already_installed = True
                log.info("[%s] already installed, skipping install steps", module.id)
            elif module.run_detached:
                *prep, last = module.install_steps
                for idx, step in enumerate(prep):
                    self._run_install_step(module, idx, step)
                outcome.session = self._launch_detached(module, last.verified_installer)
            else:
                for idx, step in enumerate(module.install_steps):
                    self._run_install_step(module, idx, step)

            sm.advance(ModuleState.DRY_RUN_REPORTED if self.config.dry_run else ModuleState.INSTALLED)

            if module.run_detached and not outcome.already_installed:
                # still running in its session; the doctor checks it later
                log.info("[%s] verify deferred: installer running in session '%s'", module.id, module.session_name)
            else:
                self._verify(module)
            sm.advance(ModuleState.VERIFIED)

        except ContractUnsatisfied as exc:
            # always fatal for this module; the required flag only decides the run
            sm.advance(ModuleState.FAILED)
            return self._finish_failed(module, sm, outcome, exc)
        except ForgeError as exc:
            if module.required:
                sm.advance(ModuleState.FAILED)
            else:
                sm.advance(ModuleState.SKIPPED)
            return self._finish_failed(module, sm, outcome, exc)

        sm.advance(ModuleState.SUCCESS)
        self.contracts.satisfy(module.contract_key)
        for key in module.provides:
            self.contracts.satisfy(key)

        outcome.state = sm.state
        outcome.history = list(sm.history)
        log.info("[%s] ok", module.id)
        self.bus.publish(ModuleSucceeded, module_id=module.id, already_installed=outcome.already_installed)
        return outcome

    # ------------------------- phases -------------------------

    def _check_contracts(self, module: Module) -> None:
        for key in module.required_contracts:
            try:
                self.contracts.require(key, module_id=module.id)
            except ContractUnsatisfied:
                self.bus.publish(ContractBlocked, module_id=module.id, contract=key)
                raise

    def _already_installed(self, module: Module) -> bool:
        if module.installed_check is None:
            return False
        res = self.gate.execute(
            Action(
                module_id=module.id,
                phase="check",
                identity=module.identity,
                summary=module.installed_check.display(),
                perform=functools.partial(self.router.run_as, module.identity, module.installed_check),
            )
        )
        # in dry-run nothing ran, so report the install steps too
        return res.ok and not res.dry_run

    def _run_install_step(self, module: Module, idx: int, step: InstallStep) -> None:
        step_name = f"install[{idx + 1}]"
        shown = step.display()

        try:
            if step.verified_installer is not None:
                perform = self._verified_perform(module, step_name, step.verified_installer)
            else:
                perform = functools.partial(self.router.run_as, module.identity, step.command)
            res = self.gate.execute(
                Action(
                    module_id=module.id,
                    phase="install",
                    identity=module.identity,
                    summary=shown,
                    perform=perform,
                )
            )
        except ForgeError as exc:
            exc.module_id = exc.module_id or module.id
            exc.step = exc.step or step_name
            exc.command = exc.command or shown
            raise

        if res.dry_run:
            return
        if not res.ok:
            self.bus.publish(StepFailed, module_id=module.id, step=step_name, command=shown, exit_code=res.returncode)
            detail = res.stderr.strip().splitlines()[-1] if res.stderr.strip() else ""
            raise InstallStepFailed(
                f"install command exited {res.returncode}" + (f": {detail}" if detail else ""),
                exit_code=res.returncode,
                module_id=module.id,
                step=step_name,
                command=shown,
            )
        self.bus.publish(StepSucceeded, module_id=module.id, step=step_name, command=shown)

    def _resolve(self, module: Module, step_name: str, vi: VerifiedInstaller):
        entry = self.registry.lookup(vi.tool)
        if entry is None:
            raise MissingRegistryEntry(
                f"no checksum entry for '{vi.tool}'",
                tool=vi.tool,
                module_id=module.id,
                step=step_name,
            )
        return entry

    def _verified_perform(self, module: Module, step_name: str, vi: VerifiedInstaller):
        # registry lookup is not a side effect; a miss is reported in dry-run too
        entry = self._resolve(module, step_name, vi)
        runner_cmd = Command(program=vi.runner, args=["-s", "--", *vi.args])

        def perform() -> CommandResult:
            payload = self.verifier.fetch_and_verify(entry.url, entry.sha256, entry.tool)
            return self.router.run_as(module.identity, runner_cmd, stdin=payload.content)

        return perform

    def _launch_detached(self, module: Module, vi: VerifiedInstaller) -> str:
        step_name = "detach"
        backend = self.sessions.backend.name
        shown = f"{vi.tool} in {backend} session '{module.session_name}'"

        try:
            entry = self._resolve(module, step_name, vi)
            res = self.gate.execute(
                Action(
                    module_id=module.id,
                    phase="detach",
                    identity=module.identity,
                    summary=shown,
                    perform=functools.partial(self.sessions.launch, module, vi, entry),
                )
            )
        except ForgeError as exc:
            exc.module_id = exc.module_id or module.id
            exc.step = exc.step or step_name
            exc.command = exc.command or shown
            raise

        if not res.dry_run:
            self.bus.publish(SessionLaunched, module_id=module.id, session=module.session_name, backend=backend)
        return module.session_name

    def _verify(self, module: Module) -> None:
        for check in run_verify_steps(module, self.router, self.gate, stop_on_fail=True):
            if check.status == SKIP:
                log.warning("[%s] optional verify failed: %s", module.id, check.command)
                self.bus.publish(VerifyWarning, module_id=module.id, check_id=check.check_id, command=check.command)
            elif check.status == FAIL:
                self.bus.publish(
                    StepFailed,
                    module_id=module.id,
                    step=f"verify[{check.check_id}]",
                    command=check.command,
                    exit_code=check.exit_code,
                )
                raise VerifyStepFailed(
                    f"verify command exited {check.exit_code}",
                    exit_code=check.exit_code,
                    module_id=module.id,
                    step=f"verify[{check.check_id}]",
                    command=check.command,
                )

    # ------------------------- terminal -------------------------

    def _finish_failed(self, module: Module, sm: ModuleStateMachine, outcome: ModuleOutcome, exc: ForgeError) -> ModuleOutcome:
        outcome.state = sm.state
        outcome.history = list(sm.history)
        outcome.error = str(exc)
        outcome.error_type = type(exc).__name__
        outcome.step = exc.step
        outcome.command = exc.command

        aborting = module.required
        log.error(
            "[%s] %s failed at %s%s: %s (%s)",
            module.id,
            type(exc).__name__,
            exc.step or "?",
            f" running '{exc.command}'" if exc.command else "",
            exc,
            "aborting run" if aborting else "optional module, continuing",
        )
        self.bus.publish(ModuleFailed, module_id=module.id, error=str(exc), step=exc.step, aborting=aborting)

        if not module.required:
            outcome.skip = SkipRecord(module_id=module.id, reason=f"{type(exc).__name__}: {exc}")
            self.bus.publish(ModuleSkipped, module_id=module.id, reason=outcome.skip.reason)
        return outcome
