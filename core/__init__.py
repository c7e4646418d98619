"""Core pipeline models and services for iacgate."""

from .models import GateDecision, PlanArtifact, RunOutcome, RunRequest, ToolKind

__all__ = ["GateDecision", "PlanArtifact", "RunOutcome", "RunRequest", "ToolKind"]
