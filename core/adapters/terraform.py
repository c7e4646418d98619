"""Terraform backend: fmt/validate/TFLint, saved plan file, apply of that file only."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from core.adapters.base import ToolAdapter, tail
from core.artifacts import build_artifact
from core.errors import ApplyError, LintError, PlanError
from core.models import PlanArtifact, ToolKind

logger = logging.getLogger(__name__)

PLAN_FILE = "tfplan"
PLAN_TEXT = "tfplan.txt"
PLAN_SUMMARY = re.compile(r"Plan: \d+ to add, \d+ to change, \d+ to destroy\.?")
PROGRESS = re.compile(r"^(?P<address>\S+): (?P<event>Creation|Modifications|Destruction) complete")

# terraform plan -detailed-exitcode
PLAN_NO_CHANGES = 0
PLAN_HAS_CHANGES = 2


class TerraformAdapter(ToolAdapter):
    tool = ToolKind.TERRAFORM

    # ------------------------------------------------------------------
    def _check_version(self) -> None:
        result = self._run("terraform", "version", "-json")
        if not result.ok:
            raise LintError("terraform is not available", result.lines())
        try:
            installed = json.loads(result.stdout).get("terraform_version")
        except ValueError:
            installed = None
        wanted = self.params.terraform_version
        if installed != wanted:
            raise LintError(
                "terraform version does not match the pinned version",
                [f"terraform {installed or 'unknown'} installed, {wanted} required"],
            )

    def init_args(self) -> list[str]:
        args = ["terraform", "init", "-input=false", "-no-color"]
        if self.params.backend_bucket:
            args += [
                f"-backend-config=bucket={self.params.backend_bucket}",
                f"-backend-config=key={self.params.backend_key}",
                f"-backend-config=region={self.request.region}",
            ]
            if self.params.backend_use_lockfile:
                args.append("-backend-config=use_lockfile=true")
        return args

    def _init(self, error: type[Exception]) -> None:
        init = self._run(*self.init_args())
        if not init.ok:
            raise error(f"terraform init failed: {' | '.join(tail(init.lines(), 10))}")

    def _select_workspace(self, error: type[Exception], create: bool = False) -> None:
        """Select the configured workspace; only plan may create it in the backend."""
        if not self.params.workspace:
            return
        args = ["terraform", "workspace", "select"]
        if create:
            args.append("-or-create")
        select = self._run(*args, self.params.workspace)
        if not select.ok:
            raise error(f"terraform workspace select {self.params.workspace} failed: {' | '.join(tail(select.lines(), 5))}")

    @staticmethod
    def _validate_violations(stdout: str, fallback: list[str]) -> list[str]:
        try:
            report = json.loads(stdout)
        except ValueError:
            return fallback
        violations = []
        for diagnostic in report.get("diagnostics") or []:
            location = ""
            rng = diagnostic.get("range") or {}
            if rng.get("filename"):
                location = f" ({rng['filename']}:{(rng.get('start') or {}).get('line', '?')})"
            violations.append(f"validate: {diagnostic.get('severity', 'error')}: {diagnostic.get('summary', '')}{location}")
        return violations or fallback

    def lint(self) -> None:
        self._check_version()
        # workspaces are selected (and created) by plan, never by lint
        self._init(LintError)

        violations: list[str] = []
        fmt = self._run("terraform", "fmt", "-check", "-recursive", "-no-color")
        if not fmt.ok:
            violations += [f"fmt: {line} is not formatted" for line in fmt.stdout.splitlines() if line.strip()] or [
                f"fmt: {line}" for line in fmt.lines()
            ]

        validate = self._run("terraform", "validate", "-json", "-no-color")
        if not validate.ok:
            violations += self._validate_violations(validate.stdout, [f"validate: {line}" for line in validate.lines()])

        if self.params.tflint:
            tflint_init = self._run("tflint", "--init")
            if not tflint_init.ok:
                violations += [f"tflint: {line}" for line in tflint_init.lines()]
            else:
                tflint = self._run("tflint", "--format", "compact", "--no-color")
                if not tflint.ok:
                    violations += [f"tflint: {line}" for line in tflint.lines()]

        if violations:
            raise LintError(f"terraform lint found {len(violations)} problem(s)", violations)
        logger.info("terraform fmt/validate%s passed", "/tflint" if self.params.tflint else "")

    # ------------------------------------------------------------------
    def plan(self, plan_dir: Path, run_id: str) -> PlanArtifact:
        self._select_workspace(PlanError, create=True)
        plan_file = plan_dir / PLAN_FILE
        args = ["terraform", "plan", "-input=false", "-no-color", "-detailed-exitcode", f"-out={plan_file}"]
        args += [f"-var-file={path}" for path in self.params.var_files]
        result = self._run(*args)
        if result.returncode not in (PLAN_NO_CHANGES, PLAN_HAS_CHANGES):
            raise PlanError(f"terraform plan failed: {' | '.join(tail(result.lines(), 10))}")
        if not plan_file.is_file():
            raise PlanError("terraform plan did not write a plan file")

        show = self._run("terraform", "show", "-no-color", str(plan_file))
        if not show.ok:
            raise PlanError(f"terraform show failed: {' | '.join(tail(show.lines(), 5))}")
        (plan_dir / PLAN_TEXT).write_text(show.stdout, encoding="utf-8")

        has_changes = result.returncode == PLAN_HAS_CHANGES
        match = PLAN_SUMMARY.search(result.stdout)
        summary = match.group(0) if match else ("No changes." if not has_changes else "Changes pending.")
        details = {
            "planFile": PLAN_FILE,
            "hasChanges": has_changes,
            "workspace": self.params.workspace or "default",
            "files": [PLAN_TEXT],
        }
        logger.info("terraform plan: %s", summary)
        return build_artifact(run_id, self.tool, plan_file, summary, details)

    def apply(self, artifact: PlanArtifact) -> dict[str, Any]:
        if not artifact.has_changes:
            logger.info("terraform plan has no changes; nothing to apply")
            return {"status": "NO_CHANGES"}

        # A separate apply job starts from a fresh checkout: re-init only, never re-plan.
        self._init(ApplyError)
        self._select_workspace(ApplyError)
        result = self._run("terraform", "apply", "-input=false", "-no-color", "-auto-approve", str(artifact.content))
        completed = [match.group("address") for match in map(PROGRESS.match, result.output.splitlines()) if match]
        if not result.ok:
            raise ApplyError(
                "terraform apply failed",
                partial={
                    "returncode": result.returncode,
                    "completedResources": completed,
                    "output": tail(result.lines()),
                },
            )
        return {"status": "APPLIED", "completedResources": completed}


__all__ = ["TerraformAdapter"]
