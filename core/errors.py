"""Error taxonomy for pipeline stages."""

from __future__ import annotations

from typing import Any

from core.constants import EXIT_BLOCKED, EXIT_FAILED, EXIT_INVALID


class PipelineError(Exception):
    """Base class for failures that abort the remaining pipeline stages."""

    stage = "pipeline"
    exit_code = EXIT_FAILED

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class InvalidConfig(PipelineError):
    stage = "config"
    exit_code = EXIT_INVALID


class AuthError(PipelineError):
    stage = "credentials"

    def __init__(self, message: str, code: str = "auth_error") -> None:
        super().__init__(message)
        self.code = code


class LintError(PipelineError):
    stage = "lint"

    def __init__(self, message: str, violations: list[str] | None = None) -> None:
        super().__init__(message)
        self.violations = list(violations or [])


class PlanError(PipelineError):
    stage = "plan"


class ApplyError(PipelineError):
    """Mutating stage failure; ``partial`` holds whatever the tool reported."""

    stage = "apply"

    def __init__(self, message: str, partial: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.partial = dict(partial or {})


class GateBlocked(Exception):
    """Expected terminal state when apply is not requested or not approved."""

    exit_code = EXIT_BLOCKED

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "PipelineError",
    "InvalidConfig",
    "AuthError",
    "LintError",
    "PlanError",
    "ApplyError",
    "GateBlocked",
]
