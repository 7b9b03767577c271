import json

from vpsforge.config.models import Module
from vpsforge.config.run import RunConfig
from vpsforge.engine.doctor import HealthReconciler
from vpsforge.engine.gate import ExecutionGate
from vpsforge.execution.identity import IdentityRouter
from vpsforge.observers.dispatcher import EventBus

def _modules():
    return [
        Module.model_validate({"id": "lang.bun", "install": ["never run"], "verify": ["bun --version"]}),
        Module.model_validate({
            "id": "tools.rg",
            "verify": ["rg --version", {"shell": "rg-extra", "required": False}],
        }),
        Module.model_validate({"id": "tools.broken", "verify": ["broken --version"]}),
        Module.model_validate({"id": "no.verify", "install": ["echo hi"]}),
    ]

def _responder(argv, stdin):
    if argv[-1] in ("rg-extra", "broken --version"):
        return 1
    return 0

def _doctor(fake_runner, capture, bus_run_id=None):
    runner = fake_runner(_responder)
    cfg = RunConfig()
    bus = EventBus([capture], run_id=bus_run_id)
    return runner, HealthReconciler(IdentityRouter(runner, cfg), ExecutionGate(cfg, bus), bus)

def test_reconcile_tallies(fake_runner, capture):
    runner, doctor = _doctor(fake_runner, capture)
    report = doctor.reconcile(_modules())

    assert (report.passed, report.failed, report.skipped) == (2, 1, 1)
    assert report.exit_code == 1
    assert [c.check_id for c in report.checks] == ["lang.bun", "tools.rg.1", "tools.rg.2", "tools.broken"]
    assert {c.check_id: c.status for c in report.checks}["tools.rg.2"] == "skip"
    # install steps are never touched
    assert all(c[-1] != "never run" and c[-1] != "echo hi" for c in runner.inners())
    assert "DoctorSummary" in capture.kinds()

def test_json_output_is_stable(fake_runner, capture):
    _, d1 = _doctor(fake_runner, capture, bus_run_id="one")
    _, d2 = _doctor(fake_runner, capture, bus_run_id="two")
    a = d1.reconcile(_modules()).to_json()
    b = d2.reconcile(_modules()).to_json()
    assert a == b
    data = json.loads(a)
    assert data["failed"] == 1
    assert '"ts"' not in a and "duration" not in a
