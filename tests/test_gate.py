"""Gate and approval provider tests."""

import pytest

from core.approval import EnvironmentApprovalProvider, StaticApprovalProvider
from core.errors import GateBlocked
from core.gate import Gate
from core.models import ApprovalState, GateState, RunRequest, ToolKind


def _request(tmp_path, apply=True, environment="prod"):
    return RunRequest(tool=ToolKind.TERRAFORM, working_directory=tmp_path, apply=apply, environment_name=environment)


def test_gate_starts_blocked():
    gate = Gate(StaticApprovalProvider(approved=["prod"]))
    assert gate.state is GateState.BLOCKED
    with pytest.raises(GateBlocked, match="not been evaluated"):
        gate.require_open()


def test_plan_only_request_keeps_gate_blocked(tmp_path):
    gate = Gate(StaticApprovalProvider(approved=["*"]))
    decision = gate.evaluate(_request(tmp_path, apply=False))
    assert decision.allowed is False
    assert decision.state is GateState.BLOCKED
    assert "plan only" in decision.reason
    with pytest.raises(GateBlocked):
        gate.require_open()


def test_pending_approval_blocks(tmp_path):
    gate = Gate(StaticApprovalProvider())
    decision = gate.evaluate(_request(tmp_path))
    assert decision.allowed is False
    assert decision.approval is ApprovalState.PENDING
    with pytest.raises(GateBlocked) as excinfo:
        gate.require_open()
    assert excinfo.value.exit_code == 3


def test_approved_environment_opens_gate(tmp_path):
    gate = Gate(StaticApprovalProvider(approved=["prod"]))
    decision = gate.evaluate(_request(tmp_path))
    assert decision.allowed is True
    assert gate.state is GateState.OPEN
    gate.require_open()


def test_approval_is_per_environment(tmp_path):
    gate = Gate(StaticApprovalProvider(approved=["staging"]))
    assert gate.evaluate(_request(tmp_path, environment="prod")).allowed is False


def test_static_denial_beats_wildcard():
    provider = StaticApprovalProvider(approved=["*"], denied=["prod"])
    assert provider.status("prod") is ApprovalState.DENIED
    assert provider.status("dev") is ApprovalState.APPROVED


def test_environment_provider_reads_variables():
    provider = EnvironmentApprovalProvider(
        environ={"IACGATE_APPROVED_ENVIRONMENTS": "staging, prod", "IACGATE_DENIED_ENVIRONMENTS": "prod"}
    )
    assert provider.status("staging") is ApprovalState.APPROVED
    assert provider.status("prod") is ApprovalState.DENIED
    assert provider.status("dev") is ApprovalState.PENDING


def test_environment_provider_falls_back():
    provider = EnvironmentApprovalProvider(environ={}, fallback=StaticApprovalProvider(approved=["dev"]))
    assert provider.status("dev") is ApprovalState.APPROVED
    assert provider.status("prod") is ApprovalState.PENDING


def test_environment_denial_overrides_fallback_approval():
    provider = EnvironmentApprovalProvider(
        environ={"IACGATE_DENIED_ENVIRONMENTS": "prod"},
        fallback=StaticApprovalProvider(approved=["*"]),
    )
    assert provider.status("prod") is ApprovalState.DENIED
