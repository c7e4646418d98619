"""Capability set every IaC backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import boto3

from core.models import PlanArtifact, RunRequest, ToolKind
from core.process import CommandResult, CommandRunner


class ToolAdapter(ABC):
    """Translate a RunRequest into the backend's lint, plan and apply commands.

    ``plan`` never mutates remote state. ``apply`` only executes the plan
    captured in the artifact it is given and never computes a new one.
    """

    tool: ToolKind

    def __init__(self, request: RunRequest, runner: CommandRunner, session: Any | None = None) -> None:
        self.request = request
        self.runner = runner
        self.session = session
        self.params = request.parameters()
        self.workdir = Path(request.working_directory).resolve()

    @abstractmethod
    def lint(self) -> None:
        """Run static validation; raise LintError listing violations."""

    @abstractmethod
    def plan(self, plan_dir: Path, run_id: str) -> PlanArtifact:
        """Write a non-mutating preview into ``plan_dir`` and describe it."""

    @abstractmethod
    def apply(self, artifact: PlanArtifact) -> dict[str, Any]:
        """Execute exactly the previewed change; return the tool's report."""

    def _run(self, *args: str) -> CommandResult:
        return self.runner.run(list(args), cwd=self.workdir)

    def _client(self, service: str) -> Any:
        if self.session is None:
            return boto3.client(service, region_name=self.request.region)
        return self.session.client(service, region_name=self.request.region)


def tail(lines: list[str], limit: int = 40) -> list[str]:
    return lines[-limit:]


__all__ = ["ToolAdapter", "tail"]
