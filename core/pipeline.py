"""End-to-end orchestration: config, credentials, plan, gate, apply.

Every stage is a checkpoint. The first failing stage ends the run and is
reported in the RunOutcome; nothing is retried.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

import boto3
from pydantic import ValidationError

from core.adapters import adapter_for
from core.approval import ApprovalProvider
from core.artifacts import ArtifactStore, new_run_id
from core.credentials import CredentialBroker
from core.errors import ApplyError, GateBlocked, InvalidConfig, LintError, PipelineError
from core.executor import ApplyExecutor, PlanExecutor
from core.gate import Gate
from core.loader import load_request, merge_request_data
from core.models import PlanArtifact, RunOutcome, RunRequest, RunStatus
from core.process import CommandRunner

logger = logging.getLogger(__name__)


def _ambient_session(region: str) -> Any:
    return boto3.Session(region_name=region)


class Pipeline:
    def __init__(
        self,
        store: ArtifactStore,
        approvals: ApprovalProvider,
        broker: CredentialBroker | None = None,
        *,
        command_timeout: float | None = None,
        runner_factory: Callable[..., CommandRunner] = CommandRunner,
        adapter_factory: Callable[..., Any] = adapter_for,
        session_factory: Callable[[str], Any] = _ambient_session,
    ) -> None:
        self.store = store
        self.approvals = approvals
        self.broker = broker or CredentialBroker()
        self.command_timeout = command_timeout
        self._runner_factory = runner_factory
        self._adapter_factory = adapter_factory
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    def execute(self, data: Mapping[str, Any]) -> RunOutcome:
        """Validate a raw request, then run it."""
        try:
            request = load_request(data)
        except InvalidConfig as exc:
            logger.error("Invalid run request: %s", exc)
            return RunOutcome(status=RunStatus.FAILED, stage=exc.stage, reason=str(exc), invalid_config=True)
        return self.run(request)

    def run(self, request: RunRequest) -> RunOutcome:
        run_id = new_run_id(request.tool)
        gate = Gate(self.approvals)
        artifact: PlanArtifact | None = None
        base = {"tool": request.tool, "environment": request.environment_name, "run_id": run_id}
        logger.info("Run %s: %s in %s (%s)", run_id, request.tool.value, request.working_directory, request.region)

        try:
            adapter = self._prepare(request)
            planner = PlanExecutor(adapter, self.store, s3_client=self._s3_client(adapter))
            artifact = planner.run(request, run_id)

            decision = gate.evaluate(request)
            if not request.apply:
                return RunOutcome(status=RunStatus.SUCCEEDED, stage="plan", reason=artifact.summary, artifact=artifact, gate=decision, **base)

            report = ApplyExecutor(adapter, self.store).run(artifact, gate, expected_run_id=run_id)
            logger.info("Apply finished: %s", report.get("status"))
            return RunOutcome(
                status=RunStatus.SUCCEEDED,
                stage="apply",
                reason=artifact.summary,
                artifact=artifact,
                gate=decision,
                apply_report=report,
                **base,
            )
        except GateBlocked as exc:
            logger.warning("Apply skipped: %s", exc.reason)
            return RunOutcome(status=RunStatus.BLOCKED, stage="gate", reason=exc.reason, artifact=artifact, gate=gate.decision, **base)
        except PipelineError as exc:
            return self._failed(exc, artifact, gate, base)

    def apply_published(self, manifest_path: Path, overrides: Mapping[str, Any] | None = None) -> RunOutcome:
        """Apply an artifact published by an earlier plan-only run."""
        try:
            artifact, request_data = self.store.load(manifest_path)
            request = load_request(merge_request_data(request_data, {**(overrides or {}), "apply": True}))
        except InvalidConfig as exc:
            logger.error("Cannot apply %s: %s", manifest_path, exc)
            return RunOutcome(status=RunStatus.FAILED, stage=exc.stage, reason=str(exc), invalid_config=True)

        gate = Gate(self.approvals)
        base = {"tool": request.tool, "environment": request.environment_name, "run_id": artifact.run_id}
        decision = gate.evaluate(request)
        if not decision.allowed:
            logger.warning("Apply skipped: %s", decision.reason)
            return RunOutcome(status=RunStatus.BLOCKED, stage="gate", reason=decision.reason, artifact=artifact, gate=decision, **base)

        try:
            adapter = self._prepare(request)
            report = ApplyExecutor(adapter, self.store).run(artifact, gate, expected_run_id=artifact.run_id)
        except PipelineError as exc:
            return self._failed(exc, artifact, gate, base)
        return RunOutcome(
            status=RunStatus.SUCCEEDED,
            stage="apply",
            reason=artifact.summary,
            artifact=artifact,
            gate=decision,
            apply_report=report,
            **base,
        )

    # ------------------------------------------------------------------
    def _prepare(self, request: RunRequest) -> Any:
        """Select the adapter and bind it to exchanged (or ambient) credentials."""
        try:
            request.parameters()
        except ValidationError as exc:
            raise InvalidConfig(f"{request.tool.value} parameters: {exc}") from exc

        if request.role_identity:
            credentials = self.broker.exchange(request.role_identity, request.region)
            env = credentials.as_env(request.region)
            session = credentials.session(request.region)
            del credentials
        else:
            logger.info("No roleIdentity given; using the ambient AWS credential chain")
            env = {"AWS_REGION": request.region, "AWS_DEFAULT_REGION": request.region}
            session = self._session_factory(request.region)

        runner = self._runner_factory(env=env, timeout=self.command_timeout)
        return self._adapter_factory(request, runner, session)

    def _s3_client(self, adapter: Any) -> Any:
        if not self.store.bucket or adapter.session is None:
            return None
        return adapter.session.client("s3")

    @staticmethod
    def _failed(exc: PipelineError, artifact: PlanArtifact | None, gate: Gate, base: dict[str, Any]) -> RunOutcome:
        logger.error("%s stage failed: %s", exc.stage, exc)
        return RunOutcome(
            status=RunStatus.FAILED,
            stage=exc.stage,
            reason=str(exc),
            artifact=artifact,
            gate=gate.decision,
            violations=exc.violations if isinstance(exc, LintError) else [],
            partial=exc.partial if isinstance(exc, ApplyError) else {},
            invalid_config=isinstance(exc, InvalidConfig),
            **base,
        )


__all__ = ["Pipeline"]
