import hashlib
import logging
import types
from pathlib import Path

import pytest

from vpsforge.config.models import ChecksumEntry
from vpsforge.config.run import RunConfig
from vpsforge.contracts.validator import ContractValidator
from vpsforge.engine.gate import ExecutionGate
from vpsforge.engine.installer import ModuleInstaller
from vpsforge.engine.sessions import DetachedSessionManager, TmuxBackend
from vpsforge.execution.identity import TARGET_WRAPPER, IdentityRouter
from vpsforge.execution.runner import CommandResult
from vpsforge.observers.dispatcher import EventBus
from vpsforge.security.registry import ChecksumRegistry
from vpsforge.security.verifier import SecurityVerifier


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)
    def kinds(self): return [e.__class__.__name__ for e in self.events]


def inner_command(argv):
    """Strip the sudo / env / wrapper prefix IdentityRouter adds."""
    argv = list(argv)
    if argv[:1] == ["sudo"]:
        argv = argv[2:]                      # sudo -n
        if argv[:1] == ["-u"]:
            argv = argv[2:]
    if argv[:1] == ["env"]:
        argv = argv[1:]
        while argv and "=" in argv[0] and not argv[0].startswith("-"):
            argv = argv[1:]
    if argv[:4] == ["sh", "-c", TARGET_WRAPPER, "_"]:
        argv = argv[4:]
    return argv


class FakeRunner:
    """
    Records every argv. `responder(inner_argv, stdin)` may return an int
    (exit code), a (rc, stdout, stderr) tuple, or None for success.
    """

    def __init__(self, responder=None, current_user="root"):
        self.calls = []
        self.responder = responder
        self.current_user = current_user
        self.label = "fake"

    def run(self, argv, *, stdin=None, timeout=None):
        argv = list(argv)
        self.calls.append(types.SimpleNamespace(argv=argv, inner=inner_command(argv), stdin=stdin))
        rc, out, err = 0, "", ""
        if self.responder is not None:
            r = self.responder(inner_command(argv), stdin)
            if isinstance(r, tuple):
                rc, out, err = r
            elif r is not None:
                rc = r
        return CommandResult(argv=argv, returncode=rc, stdout=out, stderr=err)

    def inners(self):
        return [c.inner for c in self.calls]


class FakeResponse:
    def __init__(self, url, content=b"", status_code=200, history=()):
        self.url = url
        self.content = content
        self.status_code = status_code
        self.history = list(history)


class FakeSession:
    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.gets = []

    def get(self, url, timeout=None, allow_redirects=True):
        self.gets.append(url)
        page = self.pages.get(url)
        if isinstance(page, FakeResponse):
            return page
        if page is None:
            return FakeResponse(url, b"not found", status_code=404)
        return FakeResponse(url, page)


def sha(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def inner():
    return inner_command


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def build_stack():
    """
    Wire a ModuleInstaller over fakes.

    installers: {tool: bytes}  served at https://example.test/<tool>
    pins:       {tool: digest} overrides the correct digest
    """

    def _build(
        *,
        dry_run=False,
        installers=None,
        pins=None,
        responder=None,
        current_user="root",
        bootstrap=(),
        target_user="ubuntu",
    ):
        installers = installers or {}
        pins = pins or {}
        entries = {}
        pages = {}
        for tool, content in installers.items():
            url = f"https://example.test/{tool}"
            pages[url] = content
            entries[tool] = ChecksumEntry(tool=tool, url=url, sha256=pins.get(tool, sha(content)))

        cap = Capture()
        config = RunConfig(dry_run=dry_run, target_user=target_user, target_home=Path("/home") / target_user)
        bus = EventBus([cap], mode=config.mode, target="local", run_id="run-1")
        runner = FakeRunner(responder, current_user=current_user)
        session = FakeSession(pages)
        verifier = SecurityVerifier(session)
        router = IdentityRouter(runner, config)
        gate = ExecutionGate(config, bus)
        registry = ChecksumRegistry(entries)
        contracts = ContractValidator(bootstrap)
        sleeps = []
        sessions = DetachedSessionManager(router, verifier, TmuxBackend(), sleep=sleeps.append)
        installer = ModuleInstaller(config, router, registry, verifier, contracts, sessions, gate, bus)
        return types.SimpleNamespace(
            config=config,
            bus=bus,
            capture=cap,
            runner=runner,
            session=session,
            verifier=verifier,
            router=router,
            gate=gate,
            registry=registry,
            contracts=contracts,
            sessions=sessions,
            sleeps=sleeps,
            installer=installer,
        )

    return _build


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture(autouse=True)
def _reset_forge_logger():
    # init_logging detaches the logger from root; undo it between tests
    yield
    lg = logging.getLogger("vpsforge")
    for h in list(lg.handlers):
        lg.removeHandler(h)
        h.close()
    lg.propagate = True
    lg.setLevel(logging.NOTSET)
