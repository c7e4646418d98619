"""Two-state gate in front of every mutating step."""

from __future__ import annotations

import logging

from core.approval import ApprovalProvider
from core.errors import GateBlocked
from core.models import ApprovalState, GateDecision, GateState, RunRequest

logger = logging.getLogger(__name__)


class Gate:
    """Starts BLOCKED; opens only for apply requests whose environment is approved."""

    def __init__(self, approvals: ApprovalProvider) -> None:
        self._approvals = approvals
        self.state = GateState.BLOCKED
        self.decision: GateDecision | None = None

    def evaluate(self, request: RunRequest) -> GateDecision:
        if not request.apply:
            decision = GateDecision(allowed=False, reason="apply not requested; plan only")
        else:
            approval = self._approvals.status(request.environment_name)
            if approval is ApprovalState.APPROVED:
                self.state = GateState.OPEN
                decision = GateDecision(
                    allowed=True,
                    reason=f"environment {request.environment_name!r} approved",
                    state=GateState.OPEN,
                    approval=approval,
                )
            else:
                decision = GateDecision(
                    allowed=False,
                    reason=f"environment {request.environment_name!r} approval is {approval.value}",
                    approval=approval,
                )
        self.decision = decision
        logger.info("Gate %s: %s", decision.state.value, decision.reason)
        return decision

    def require_open(self) -> None:
        if self.state is not GateState.OPEN:
            reason = self.decision.reason if self.decision else "gate has not been evaluated"
            raise GateBlocked(reason)


__all__ = ["Gate"]
