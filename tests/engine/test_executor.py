from vpsforge.config.models import Module
from vpsforge.engine.doctor import HealthReconciler
from vpsforge.engine.executor import install_all
from vpsforge.observers.events import RunSummary

SCRIPT = b"#!/bin/sh\necho install\n"

def _modules():
    return [
        Module.model_validate({
            "id": "A",
            "required": True,
            "install": [{"verified_installer": {"tool": "a"}}],
            "verify": [{"command": {"program": "tool", "args": ["--version"]}}],
        }),
        Module.model_validate({
            "id": "B",
            "required": False,
            "install": [{"verified_installer": {"tool": "b-missing"}}],
            "verify": ["b --version"],
        }),
        Module.model_validate({
            "id": "D",
            "dependencies": ["A"],
            "install": ["echo d"],
            "verify": ["d --version"],
        }),
    ]

def test_scenario_a_and_b_run_completes_with_skip(build_stack):
    st = build_stack(installers={"a": SCRIPT})
    report = install_all(_modules(), st.installer, st.bus)

    assert report.exit_code == 0
    assert not report.aborted
    assert report.passed == 2
    assert report.failed == 0
    assert report.skipped == 1
    assert [s.module_id for s in report.skips] == ["B"]
    assert "MissingRegistryEntry" in report.skips[0].reason

    summary = next(e for e in st.capture.events if isinstance(e, RunSummary))
    assert (summary.passed, summary.failed, summary.skipped) == (2, 0, 1)

def test_doctor_after_successful_install_reports_no_failures(build_stack):
    st = build_stack(installers={"a": SCRIPT})
    modules = [m for m in _modules() if m.id != "B"]
    assert install_all(modules, st.installer, st.bus).exit_code == 0

    report = HealthReconciler(st.router, st.gate, st.bus).reconcile(modules)
    assert report.failed == 0
    assert report.passed >= 1

def test_scenario_c_mismatch_aborts_before_later_modules(build_stack):
    st = build_stack(installers={"a": SCRIPT}, pins={"a": "f" * 64})
    report = install_all(_modules(), st.installer, st.bus)

    assert report.exit_code != 0
    assert report.aborted
    assert [o.module_id for o in report.outcomes] == ["A"]
    assert report.not_run == ["B", "D"]
    assert st.runner.calls == []
    # the summary is still published on abort
    summary = next(e for e in st.capture.events if isinstance(e, RunSummary))
    assert summary.aborted and summary.failed == 1

def test_optional_failure_gives_exactly_one_skip_record(build_stack):
    st = build_stack(responder=lambda argv, stdin: 7 if argv[-1] == "exit 7" else 0)
    modules = [
        Module.model_validate({"id": "opt", "required": False, "install": ["exit 7", "exit 7"]}),
        Module.model_validate({"id": "after", "install": ["true"]}),
    ]
    report = install_all(modules, st.installer, st.bus)
    assert report.exit_code == 0
    assert len(report.skips) == 1
    assert [o.module_id for o in report.outcomes] == ["opt", "after"]

def test_rerun_is_idempotent(build_stack):
    def tally(report):
        return [(o.module_id, o.state) for o in report.outcomes], report.passed, report.failed, report.skipped

    first = build_stack(installers={"a": SCRIPT})
    second = build_stack(installers={"a": SCRIPT})
    r1 = install_all(_modules(), first.installer, first.bus)
    r2 = install_all(_modules(), second.installer, second.bus)
    assert tally(r1) == tally(r2)

def test_dry_run_over_whole_list_has_no_side_effects(build_stack):
    st = build_stack(dry_run=True, installers={"a": SCRIPT})
    report = install_all(_modules(), st.installer, st.bus)
    assert st.runner.calls == []
    assert st.session.gets == []
    # B still fails closed on its missing checksum entry
    assert report.skipped == 1
    assert report.exit_code == 0
