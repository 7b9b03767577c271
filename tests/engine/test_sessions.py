import hashlib

import pytest

from vpsforge.config.models import ChecksumEntry, Module
from vpsforge.config.run import RunConfig
from vpsforge.engine.sessions import (
    STAGE_SCRIPT,
    DetachedSessionManager,
    ScreenBackend,
    TmuxBackend,
    get_backend,
)
from vpsforge.errors import ChecksumMismatch, SessionLaunchFailed
from vpsforge.execution.identity import IdentityRouter
from vpsforge.security.verifier import SecurityVerifier

BODY = b"#!/bin/sh\nexec server\n"
URL = "https://example.test/mail"

def _module():
    return Module.model_validate({
        "id": "stack.mail",
        "run_detached": True,
        "session_name": "mail-svc",
        "install": [{"verified_installer": {"tool": "mail", "args": ["--port", "8765"]}}],
    })

def _manager(fake_runner, fake_session, responder, digest=None, backend=None):
    runner = fake_runner(responder)
    router = IdentityRouter(runner, RunConfig())
    verifier = SecurityVerifier(fake_session({URL: BODY}))
    sleeps = []
    mgr = DetachedSessionManager(router, verifier, backend or TmuxBackend(), sleep=sleeps.append, confirm_attempts=2)
    entry = ChecksumEntry(tool="mail", url=URL, sha256=digest or hashlib.sha256(BODY).hexdigest())
    return mgr, runner, entry, sleeps

def _tmux(running):
    def responder(argv, stdin):
        if argv[:3] == ["sh", "-c", STAGE_SCRIPT]:
            return (0, "/tmp/vpsforge-install-1\n", "")
        if argv[:2] == ["tmux", "has-session"]:
            return 0 if argv[-1] in running else 1
        if argv[:2] == ["tmux", "kill-session"]:
            running.discard(argv[-1])
        if argv[:2] == ["tmux", "new-session"]:
            running.add(argv[4])
    return responder

def test_launch_fresh_session(fake_runner, fake_session):
    running = set()
    mgr, runner, entry, sleeps = _manager(fake_runner, fake_session, _tmux(running))
    m = _module()
    mgr.launch(m, m.install_steps[0].verified_installer, entry)

    cmds = runner.inners()
    assert cmds[0] == ["sh", "-c", STAGE_SCRIPT]
    assert runner.calls[0].stdin == BODY
    assert "umask 077" in STAGE_SCRIPT and "chmod 700" in STAGE_SCRIPT
    assert not any(c[:2] == ["tmux", "kill-session"] for c in cmds)
    assert ["tmux", "new-session", "-d", "-s", "mail-svc", "bash", "/tmp/vpsforge-install-1", "--port", "8765"] in cmds
    assert running == {"mail-svc"}
    assert sleeps == [3.0]

def test_stale_session_is_replaced(fake_runner, fake_session):
    running = {"mail-svc"}
    mgr, runner, entry, _ = _manager(fake_runner, fake_session, _tmux(running))
    m = _module()
    mgr.launch(m, m.install_steps[0].verified_installer, entry)
    cmds = runner.inners()
    kill = cmds.index(["tmux", "kill-session", "-t", "mail-svc"])
    new = next(i for i, c in enumerate(cmds) if c[:2] == ["tmux", "new-session"])
    assert kill < new

def test_session_that_never_appears_fails(fake_runner, fake_session):
    def responder(argv, stdin):
        if argv[:2] == ["sh", "-c"]:
            return (0, "/tmp/x\n", "")
        if argv[:2] == ["tmux", "has-session"]:
            return 1
    mgr, runner, entry, sleeps = _manager(fake_runner, fake_session, responder)
    m = _module()
    with pytest.raises(SessionLaunchFailed) as exc:
        mgr.launch(m, m.install_steps[0].verified_installer, entry)
    assert exc.value.step == "confirm"
    # settle once, then one pause between the two confirm attempts
    assert sleeps == [3.0, 1.0]

def test_mismatch_stops_before_anything_is_staged(fake_runner, fake_session):
    mgr, runner, entry, _ = _manager(fake_runner, fake_session, _tmux(set()), digest="0" * 64)
    m = _module()
    with pytest.raises(ChecksumMismatch):
        mgr.launch(m, m.install_steps[0].verified_installer, entry)
    assert runner.calls == []

def test_staging_failure(fake_runner, fake_session):
    mgr, runner, entry, _ = _manager(fake_runner, fake_session, lambda argv, stdin: (1, "", "no tmp"))
    m = _module()
    with pytest.raises(SessionLaunchFailed) as exc:
        mgr.launch(m, m.install_steps[0].verified_installer, entry)
    assert exc.value.step == "stage"

def test_screen_backend_commands():
    b = get_backend("screen")
    assert isinstance(b, ScreenBackend)
    assert b.new_command("svc", ["bash", "/tmp/x"]).argv() == ["screen", "-dmS", "svc", "bash", "/tmp/x"]
    assert b.kill_command("svc").argv() == ["screen", "-S", "svc", "-X", "quit"]
    assert b.has_command("svc").args[-1] == "svc"
    with pytest.raises(ValueError):
        get_backend("zellij")
