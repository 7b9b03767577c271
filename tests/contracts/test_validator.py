import pytest

from vpsforge.contracts.validator import ContractValidator
from vpsforge.errors import ContractUnsatisfied

def test_bootstrap_contracts_are_satisfied():
    v = ContractValidator(["module:users.ubuntu"])
    v.require("module:users.ubuntu")
    assert v.is_satisfied("module:users.ubuntu")

def test_require_unsatisfied_raises_with_key():
    v = ContractValidator()
    with pytest.raises(ContractUnsatisfied) as exc:
        v.require("module:lang.bun", module_id="agents.claude")
    assert exc.value.contract == "module:lang.bun"
    assert exc.value.module_id == "agents.claude"

def test_satisfy_is_append_only():
    v = ContractValidator()
    v.satisfy("a")
    v.satisfy("a")
    v.satisfy("b")
    snapshot = v.satisfied()
    snapshot.clear()
    assert v.satisfied() == {"a", "b"}
