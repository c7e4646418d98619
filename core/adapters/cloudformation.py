"""CloudFormation backend: cfn-lint, then a change set previewed and executed by ARN."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from core.adapters import changeset
from core.adapters.base import ToolAdapter
from core.errors import ApplyError, LintError, PlanError
from core.models import PlanArtifact, ToolKind

logger = logging.getLogger(__name__)

# cfn-lint exit codes are a bit mask: 2 errors, 4 warnings, 8 informational.
CFN_LINT_INFO_ONLY = 8
TEMPLATE_BODY_LIMIT = 51_200


class CloudFormationAdapter(ToolAdapter):
    tool = ToolKind.CLOUDFORMATION

    @property
    def template(self) -> Path:
        return self.workdir / self.params.template_path

    def _require_template(self, error: type[Exception]) -> None:
        if not self.template.is_file():
            raise error(f"Template {self.template} not found")

    def lint(self) -> None:
        self._require_template(LintError)
        result = self._run("cfn-lint", str(self.template))
        if result.returncode in (0, CFN_LINT_INFO_ONLY):
            logger.info("cfn-lint passed for %s", self.template.name)
            return
        raise LintError(f"cfn-lint reported problems in {self.template.name}", result.lines())

    def change_set_name(self, run_id: str) -> str:
        return f"iacgate-{run_id}"[:128]

    def plan(self, plan_dir: Path, run_id: str) -> PlanArtifact:
        self._require_template(PlanError)
        body = self.template.read_text(encoding="utf-8")
        if len(body.encode("utf-8")) > TEMPLATE_BODY_LIMIT:
            raise PlanError(f"Template {self.template.name} exceeds the {TEMPLATE_BODY_LIMIT} byte inline limit; package it with SAM")

        cfn = self._client("cloudformation")
        stack_name = self.params.stack_name
        try:
            set_type = changeset.change_set_type(changeset.stack_status(cfn, stack_name))
            kwargs: dict[str, Any] = {
                "StackName": stack_name,
                "ChangeSetName": self.change_set_name(run_id),
                "ChangeSetType": set_type,
                "TemplateBody": body,
                "Capabilities": self.params.capability_list(),
                "Parameters": [
                    {"ParameterKey": key, "ParameterValue": value} for key, value in self.params.overrides().items()
                ],
                "Description": f"iacgate plan {run_id}",
            }
            if self.params.tags:
                kwargs["Tags"] = [{"Key": key, "Value": value} for key, value in self.params.tags.items()]
            response = cfn.create_change_set(**kwargs)
            description = changeset.wait_for_change_set(cfn, response["Id"])
        except (ClientError, BotoCoreError) as exc:
            raise PlanError(f"Creating change set for {stack_name} failed: {exc}") from exc

        artifact = changeset.change_set_artifact(run_id, self.tool, plan_dir, description, stack_name, set_type)
        logger.info("Change set for %s: %s", stack_name, artifact.summary)
        return artifact

    def apply(self, artifact: PlanArtifact) -> dict[str, Any]:
        try:
            return changeset.execute_change_set(self._client("cloudformation"), artifact)
        except (ClientError, BotoCoreError) as exc:
            raise ApplyError(f"CloudFormation call failed: {exc}") from exc


__all__ = ["CloudFormationAdapter"]
