"""Plan and apply stages around a tool adapter."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from core.adapters.base import ToolAdapter
from core.artifacts import ArtifactStore
from core.errors import ApplyError
from core.gate import Gate
from core.models import PlanArtifact, RunRequest

logger = logging.getLogger(__name__)


class PlanExecutor:
    """lint() then plan(); publish the artifact only when both pass."""

    def __init__(self, adapter: ToolAdapter, store: ArtifactStore, s3_client: Any | None = None) -> None:
        self.adapter = adapter
        self.store = store
        self._s3 = s3_client
        self.manifest_path: Path | None = None

    def run(self, request: RunRequest, run_id: str) -> PlanArtifact:
        logger.info("Linting %s configuration in %s", request.tool.value, self.adapter.workdir)
        self.adapter.lint()
        logger.info("Planning %s changes", request.tool.value)
        artifact = self.adapter.plan(self.store.run_dir(run_id), run_id)
        self.manifest_path = self.store.publish(artifact, request, s3_client=self._s3)
        return artifact


class ApplyExecutor:
    """Execute a published plan once the gate is open, never re-planning."""

    def __init__(self, adapter: ToolAdapter, store: ArtifactStore) -> None:
        self.adapter = adapter
        self.store = store

    def run(self, artifact: PlanArtifact | None, gate: Gate, expected_run_id: str | None = None) -> dict[str, Any]:
        gate.require_open()
        if artifact is None:
            raise ApplyError("No plan artifact available to apply")
        if artifact.tool is not self.adapter.tool:
            raise ApplyError(f"Plan artifact was produced by {artifact.tool.value}, not {self.adapter.tool.value}")
        self.store.verify(artifact, expected_run_id=expected_run_id)
        logger.info("Applying plan artifact %s (sha256=%s)", artifact.content.name, artifact.checksum)
        return self.adapter.apply(artifact)


__all__ = ["PlanExecutor", "ApplyExecutor"]
