# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/cli/app.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from vpsforge.cli import helper
from vpsforge.cli.helper import GlobalOptions, split_csv
from vpsforge.config.loader import find_checksums_file, load_manifest
from vpsforge.config.models import Manifest, Module
from vpsforge.config.run import RunConfig
from vpsforge.contracts.validator import ContractValidator
from vpsforge.engine.doctor import HealthReconciler
from vpsforge.engine.executor import install_all
from vpsforge.engine.gate import ExecutionGate
from vpsforge.engine.installer import ModuleInstaller
from vpsforge.engine.planner import plan
from vpsforge.engine.sessions import DetachedSessionManager, get_backend
from vpsforge.errors import ManifestError, RegistryLoadError, VerificationError
from vpsforge.execution.identity import IdentityRouter
from vpsforge.execution.ssh import SSHCommandError
from vpsforge.logging.log import init_logging
from vpsforge.observers.console import ConsoleObserver
from vpsforge.observers.dispatcher import EventBus
from vpsforge.observers.jsonfile import JsonFileObserver
from vpsforge.observers.logger import LoggerObserver
from vpsforge.security.audit import audit_registry, render_registry
from vpsforge.security.registry import ChecksumRegistry
from vpsforge.security.verifier import SecurityVerifier

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="vpsforge: verified, idempotent module installer for a fresh VPS")
checksums_app = typer.Typer(help="Inspect and refresh the installer checksum registry")
app.add_typer(checksums_app, name="checksums")


@app.callback()
def main(
    ctx: typer.Context,
    manifest: Path = typer.Option(Path("manifest.yaml"), "--manifest", "-m", envvar="VPSFORGE_MANIFEST", help="Compiled module manifest (YAML or JSON)"),
    checksums: Optional[Path] = typer.Option(None, "--checksums", help="checksums.yaml (default: VPSFORGE_CHECKSUMS_FILE or next to the manifest)"),
    target_user: Optional[str] = typer.Option(None, "--target-user", help="Unprivileged account tools are installed for (env TARGET_USER)"),
    target_home: Optional[Path] = typer.Option(None, "--target-home", help="Home of the target user (env TARGET_HOME)"),
    mode: Optional[str] = typer.Option(None, "--mode", help="vibe | safe (env MODE)"),
    host: Optional[str] = typer.Option(None, "--host", help="Run against this host over SSH instead of locally"),
    ssh_user: str = typer.Option("root", "--ssh-user"),
    ssh_key: Optional[Path] = typer.Option(None, "--ssh-key"),
    ssh_port: int = typer.Option(22, "--ssh-port"),
    backend: str = typer.Option("tmux", "--session-backend", help="tmux | screen, for detached modules"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Where run logs go (default ~/.vpsforge/logs)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    events: bool = typer.Option(False, "--events", help="Echo every lifecycle event to the console"),
):
    ctx.obj = GlobalOptions(
        manifest=manifest,
        checksums=checksums,
        target_user=target_user,
        target_home=target_home,
        mode=mode,
        host=host,
        ssh_user=ssh_user,
        ssh_key=ssh_key,
        ssh_port=ssh_port,
        backend=backend,
        log_dir=log_dir,
        verbose=verbose,
        events=events,
    )


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _fail_config(message: str) -> None:
    typer.secho(f"error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(EXIT_CONFIG)


def _run_config(opts: GlobalOptions, *, dry_run: Optional[bool]) -> RunConfig:
    try:
        return RunConfig.from_env(
            dry_run=dry_run,
            target_user=opts.target_user,
            target_home=opts.target_home,
            mode=opts.mode,
            log_dir=opts.log_dir,
        )
    except ValueError as exc:
        _fail_config(str(exc))


def _start(opts: GlobalOptions, config: RunConfig, title: str) -> tuple[logging.Logger, EventBus]:
    logger, run_id, log_path = init_logging(base_dir=opts.log_dir, verbose=opts.verbose)

    observers = [LoggerObserver(logger), JsonFileObserver(log_path.parent / f"{run_id}.jsonl")]
    if opts.events:
        observers.insert(0, ConsoleObserver())
    bus = EventBus(observers=observers, mode=config.mode, target=opts.target_label, run_id=run_id)

    typer.secho(title, bold=True, err=True)
    typer.echo(f"  Run ID   : {run_id}", err=True)
    typer.echo(f"  Logs     : {log_path}", err=True)
    typer.echo(f"  Target   : {opts.target_label} (user {config.target_user}, home {config.target_home})", err=True)
    if config.dry_run:
        typer.echo("  Dry run  : nothing will be fetched or executed", err=True)
    typer.echo("", err=True)
    return logger, bus


def _load(opts: GlobalOptions) -> Manifest:
    try:
        return load_manifest(opts.manifest)
    except ManifestError as exc:
        _fail_config(str(exc))


def _plan(manifest: Manifest, only: Optional[str], skip: Optional[str], no_deps: bool, bus: Optional[EventBus]) -> List[Module]:
    try:
        return plan(manifest, only=split_csv(only), skip=split_csv(skip), no_deps=no_deps, bus=bus)
    except ValueError as exc:
        _fail_config(str(exc))


def _registry(opts: GlobalOptions, *, needed: bool) -> ChecksumRegistry:
    try:
        return helper.load_registry(opts, needed=needed)
    except RegistryLoadError as exc:
        _fail_config(str(exc))


def _router(opts: GlobalOptions, config: RunConfig) -> IdentityRouter:
    try:
        runner = helper.build_runner(opts, dry_run=config.dry_run)
    except SSHCommandError as exc:
        _fail_config(str(exc))
    return IdentityRouter(runner, config)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def install(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", help="Report every action without fetching or executing (env DRY_RUN)"),
    only: Optional[str] = typer.Option(None, "--only", help="Comma-separated module ids to install"),
    skip: Optional[str] = typer.Option(None, "--skip", help="Comma-separated module ids to leave out"),
    no_deps: bool = typer.Option(False, "--no-deps", help="Do not pull in dependencies of --only modules"),
):
    """Install the selected modules in manifest order."""
    opts: GlobalOptions = ctx.obj
    config = _run_config(opts, dry_run=True if dry_run else None)
    manifest = _load(opts)
    _, bus = _start(opts, config, "vpsforge install")

    modules = _plan(manifest, only, skip, no_deps, bus)
    registry = _registry(opts, needed=helper.needs_registry(manifest, modules))
    try:
        backend = get_backend(opts.backend)
    except ValueError as exc:
        _fail_config(str(exc))
    router = _router(opts, config)

    verifier = SecurityVerifier(helper.build_session())
    gate = ExecutionGate(config, bus)
    installer = ModuleInstaller(
        config=config,
        router=router,
        registry=registry,
        verifier=verifier,
        contracts=ContractValidator(manifest.bootstrap_contracts),
        sessions=DetachedSessionManager(router, verifier, backend),
        gate=gate,
        bus=bus,
    )

    report = install_all(modules, installer, bus)

    typer.echo("")
    for o in report.outcomes:
        note = " (already installed)" if o.already_installed else ""
        note += f" [session {o.session}]" if o.session else ""
        typer.echo(f"  {o.state.value:<8} {o.module_id}{note}")
    for mid in report.not_run:
        typer.echo(f"  {'not run':<8} {mid}")
    typer.secho(
        f"\npassed={report.passed} failed={report.failed} skipped={report.skipped}",
        fg=typer.colors.RED if report.exit_code else typer.colors.GREEN,
        bold=True,
    )
    raise typer.Exit(report.exit_code)


@app.command()
def doctor(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="Machine-readable report on stdout"),
    only: Optional[str] = typer.Option(None, "--only"),
    skip: Optional[str] = typer.Option(None, "--skip"),
):
    """Re-run verify steps only and report system health."""
    opts: GlobalOptions = ctx.obj
    # the doctor only reads state; DRY_RUN does not apply to it
    config = _run_config(opts, dry_run=False)
    manifest = _load(opts)
    _, bus = _start(opts, config, "vpsforge doctor")

    modules = _plan(manifest, only, skip, False, bus)
    router = _router(opts, config)
    report = HealthReconciler(router, ExecutionGate(config, bus), bus).reconcile(modules)

    if json_out:
        typer.echo(report.to_json())
    else:
        for c in report.checks:
            typer.echo(f"  {c.status:<4}  {c.check_id:<28} {c.command}")
        typer.echo(f"\npassed={report.passed} failed={report.failed} skipped={report.skipped}")
    raise typer.Exit(report.exit_code)


@app.command("plan")
def show_plan(
    ctx: typer.Context,
    only: Optional[str] = typer.Option(None, "--only"),
    skip: Optional[str] = typer.Option(None, "--skip"),
    no_deps: bool = typer.Option(False, "--no-deps"),
):
    """Print which modules would run, in order."""
    opts: GlobalOptions = ctx.obj
    manifest = _load(opts)
    modules = _plan(manifest, only, skip, no_deps, None)

    for m in modules:
        flags = [m.identity.value, "required" if m.required else "optional"]
        if m.run_detached:
            flags.append("detached")
        if m.needs_verified_installs():
            flags.append("verified")
        typer.echo(f"{m.id:<32} {' '.join(flags)}")


# ------------------------------------------------------------------------------
# checksums
# ------------------------------------------------------------------------------

def _checksums_registry(opts: GlobalOptions) -> ChecksumRegistry:
    path = find_checksums_file(opts.manifest, opts.checksums)
    if path is None:
        _fail_config("no checksums file found (use --checksums)")
    try:
        return ChecksumRegistry.load(path)
    except RegistryLoadError as exc:
        _fail_config(str(exc))


@checksums_app.command("list")
def checksums_list(ctx: typer.Context):
    """Print every registered installer."""
    registry = _checksums_registry(ctx.obj)
    for entry in registry:
        typer.echo(f"{entry.tool:<20} {entry.sha256}  {entry.url}")


@checksums_app.command("verify")
def checksums_verify(ctx: typer.Context):
    """Fetch every installer and compare against its pinned digest."""
    registry = _checksums_registry(ctx.obj)
    audit = audit_registry(registry, SecurityVerifier(helper.build_session()))

    for r in audit.results:
        if r.status == "ok":
            typer.echo(f"  ok       {r.tool}")
        elif r.status == "changed":
            typer.secho(f"  CHANGED  {r.tool}: now {r.actual}", fg=typer.colors.RED)
        else:
            typer.secho(f"  ERROR    {r.tool}: {r.error}", fg=typer.colors.RED)
    typer.echo(f"\nverified={audit.verified} failed={audit.failed}")
    raise typer.Exit(EXIT_OK if audit.ok else EXIT_FAILED)


@checksums_app.command("update")
def checksums_update(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write here instead of stdout"),
    in_place: bool = typer.Option(False, "--in-place", help="Overwrite the registry file"),
):
    """Re-pin every installer to what upstream serves now."""
    registry = _checksums_registry(ctx.obj)
    text, failures = render_registry(registry, SecurityVerifier(helper.build_session()))

    target = registry.source if in_place else output
    if target is not None:
        Path(target).write_text(text)
        typer.echo(f"wrote {target}", err=True)
    else:
        typer.echo(text, nl=False)

    for tool in failures:
        typer.secho(f"  could not fetch {tool}; kept previous pin", fg=typer.colors.YELLOW, err=True)
    raise typer.Exit(EXIT_FAILED if failures else EXIT_OK)


@checksums_app.command("compute")
def checksums_compute(url: str = typer.Argument(..., help="HTTPS URL of an installer")):
    """Print the sha256 of whatever URL serves right now."""
    try:
        digest = SecurityVerifier(helper.build_session()).compute_digest(url)
    except VerificationError as exc:
        typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_FAILED)
    typer.echo(f"{digest}  {url}")


if __name__ == "__main__":
    app()
