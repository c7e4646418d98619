"""AWS SAM backend.

``sam deploy --no-execute-changeset`` builds and uploads the application and
leaves a change set behind; apply executes that change set rather than running
``sam deploy`` again, which would compute a fresh one.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from core.adapters import changeset
from core.adapters.cloudformation import CloudFormationAdapter
from core.adapters.base import tail
from core.errors import LintError, PlanError
from core.models import PlanArtifact, ToolKind

logger = logging.getLogger(__name__)

CHANGE_SET_ARN = re.compile(r"arn:aws[\w-]*:cloudformation:[\w-]+:\d{12}:changeSet/[\w-]+/[\w-]+")
NO_CHANGES = re.compile(r"No changes to deploy|didn't contain changes", re.IGNORECASE)
DEPLOY_LOG = "sam-deploy.log"


class SamAdapter(CloudFormationAdapter):
    tool = ToolKind.SAM

    def _config_args(self) -> list[str]:
        config = self.workdir / self.params.sam_config_path
        return ["--config-file", str(config)] if config.is_file() else []

    def lint(self) -> None:
        self._require_template(LintError)
        result = self._run(
            "sam", "validate", "--lint",
            "--template-file", str(self.template),
            "--region", self.request.region,
            *self._config_args(),
        )
        if not result.ok:
            raise LintError(f"sam validate reported problems in {self.template.name}", result.lines())
        logger.info("sam validate passed for %s", self.template.name)

    def deploy_args(self) -> list[str]:
        args = [
            "sam", "deploy",
            "--no-execute-changeset",
            "--no-fail-on-empty-changeset",
            "--no-confirm-changeset",
            "--no-progressbar",
            "--stack-name", self.params.stack_name,
            "--region", self.request.region,
            "--capabilities", *self.params.capability_list(),
            *self._config_args(),
        ]
        if self.params.s3_bucket:
            args += ["--s3-bucket", self.params.s3_bucket]
        else:
            args.append("--resolve-s3")
        overrides = self.params.overrides()
        if overrides:
            args += ["--parameter-overrides", *(f"{key}={value}" for key, value in overrides.items())]
        if self.params.tags:
            args += ["--tags", *(f"{key}={value}" for key, value in self.params.tags.items())]
        return args

    def plan(self, plan_dir: Path, run_id: str) -> PlanArtifact:
        self._require_template(PlanError)
        build = self._run("sam", "build", "--template-file", str(self.template), *self._config_args())
        if not build.ok:
            raise PlanError(f"sam build failed: {' | '.join(tail(build.lines(), 10))}")

        deploy = self._run(*self.deploy_args())
        (plan_dir / DEPLOY_LOG).write_text(deploy.output + "\n", encoding="utf-8")
        if not deploy.ok:
            raise PlanError(f"sam deploy --no-execute-changeset failed: {' | '.join(tail(deploy.lines(), 10))}")

        cfn = self._client("cloudformation")
        stack_name = self.params.stack_name
        match = CHANGE_SET_ARN.search(deploy.output)
        try:
            set_type = changeset.change_set_type(changeset.stack_status(cfn, stack_name))
            if match is None:
                if not NO_CHANGES.search(deploy.output):
                    raise PlanError("sam deploy did not report a change set")
                description = {"StackName": stack_name, "Status": "FAILED", "StatusReason": "No changes to deploy", "Changes": []}
            else:
                description = changeset.wait_for_change_set(cfn, match.group(0))
        except (ClientError, BotoCoreError) as exc:
            raise PlanError(f"Describing SAM change set for {stack_name} failed: {exc}") from exc

        artifact = changeset.change_set_artifact(
            run_id, self.tool, plan_dir, description, stack_name, set_type, files=[DEPLOY_LOG]
        )
        logger.info("SAM change set for %s: %s", stack_name, artifact.summary)
        return artifact


__all__ = ["SamAdapter"]
