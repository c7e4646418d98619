"""Read environment approval state asserted by the hosting platform.

Reviewer workflows and wait timers belong to the CI platform. These providers
only report what the platform has already decided for an environment.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Iterable, Mapping

from core.constants import APPROVED_ENVIRONMENTS_VAR, DENIED_ENVIRONMENTS_VAR
from core.models import ApprovalState


def _split(value: str | None) -> set[str]:
    return {item.strip() for item in (value or "").split(",") if item.strip()}


class ApprovalProvider(ABC):
    @abstractmethod
    def status(self, environment: str) -> ApprovalState:
        """Return the approval state of ``environment``."""


class StaticApprovalProvider(ApprovalProvider):
    def __init__(self, approved: Iterable[str] = (), denied: Iterable[str] = ()) -> None:
        self.approved = set(approved)
        self.denied = set(denied)

    def status(self, environment: str) -> ApprovalState:
        if environment in self.denied:
            return ApprovalState.DENIED
        if environment in self.approved or "*" in self.approved:
            return ApprovalState.APPROVED
        return ApprovalState.PENDING


class EnvironmentApprovalProvider(ApprovalProvider):
    """Approval asserted through comma-separated environment variables.

    A denial always wins. Environments the platform says nothing about fall
    through to ``fallback`` (pending when there is none).
    """

    def __init__(self, environ: Mapping[str, str] | None = None, fallback: ApprovalProvider | None = None) -> None:
        self._environ = os.environ if environ is None else environ
        self._fallback = fallback

    def status(self, environment: str) -> ApprovalState:
        if environment in _split(self._environ.get(DENIED_ENVIRONMENTS_VAR)):
            return ApprovalState.DENIED
        if environment in _split(self._environ.get(APPROVED_ENVIRONMENTS_VAR)):
            return ApprovalState.APPROVED
        if self._fallback is not None:
            return self._fallback.status(environment)
        return ApprovalState.PENDING


__all__ = ["ApprovalProvider", "StaticApprovalProvider", "EnvironmentApprovalProvider"]
