import hashlib

import yaml

from vpsforge.config.models import ChecksumEntry
from vpsforge.security.audit import audit_registry, render_registry
from vpsforge.security.registry import ChecksumRegistry
from vpsforge.security.verifier import SecurityVerifier

def _sha(b): return hashlib.sha256(b).hexdigest()

def _registry():
    return ChecksumRegistry({
        "ok": ChecksumEntry(tool="ok", url="https://a.test/ok", sha256=_sha(b"same")),
        "moved": ChecksumEntry(tool="moved", url="https://a.test/moved", sha256=_sha(b"old")),
        "gone": ChecksumEntry(tool="gone", url="https://a.test/gone", sha256=_sha(b"x")),
    })

def test_audit_reports_each_tool(fake_session):
    s = fake_session({"https://a.test/ok": b"same", "https://a.test/moved": b"new"})
    audit = audit_registry(_registry(), SecurityVerifier(s))
    status = {r.tool: r.status for r in audit.results}
    assert status == {"gone": "error", "moved": "changed", "ok": "ok"}
    assert audit.verified == 1
    assert audit.failed == 2
    assert not audit.ok
    moved = next(r for r in audit.results if r.tool == "moved")
    assert moved.actual == _sha(b"new")

def test_render_registry_repins_and_keeps_unfetchable(fake_session):
    s = fake_session({"https://a.test/ok": b"same", "https://a.test/moved": b"new"})
    text, failures = render_registry(_registry(), SecurityVerifier(s))
    data = yaml.safe_load(text)["installers"]
    assert data["moved"]["sha256"] == _sha(b"new")
    assert data["ok"]["sha256"] == _sha(b"same")
    assert data["gone"]["sha256"] == _sha(b"x")
    assert failures == ["gone"]
