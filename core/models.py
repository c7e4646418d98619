"""Data models shared across the pipeline."""

from __future__ import annotations

import shlex
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from core.constants import (
    DEFAULT_CAPABILITIES,
    DEFAULT_ENVIRONMENT,
    DEFAULT_REGION,
    DEFAULT_SAM_CONFIG_PATH,
    DEFAULT_TEMPLATE_PATH,
    DEFAULT_TERRAFORM_VERSION,
    EXIT_BLOCKED,
    EXIT_FAILED,
    EXIT_INVALID,
    EXIT_OK,
)


class ToolKind(str, Enum):
    """Closed set of supported IaC backends."""

    TERRAFORM = "terraform"
    CLOUDFORMATION = "cloudformation"
    SAM = "sam"


class GateState(str, Enum):
    BLOCKED = "blocked"
    OPEN = "open"


class ApprovalState(str, Enum):
    APPROVED = "approved"
    PENDING = "pending"
    DENIED = "denied"


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    BLOCKED = "blocked"
    FAILED = "failed"


def parse_parameter_overrides(text: str | None) -> dict[str, str]:
    """Split ``KEY=VALUE KEY2="two words"`` into an ordered mapping."""
    overrides: dict[str, str] = {}
    if not text:
        return overrides
    for token in shlex.split(text):
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise ValueError(f"parameter override {token!r} is not KEY=VALUE")
        overrides[key] = value
    return overrides


class _Parameters(BaseModel):
    model_config = {
        "populate_by_name": True,
        "frozen": True,
        "extra": "forbid",
    }


class TerraformParameters(_Parameters):
    terraform_version: str = Field(default=DEFAULT_TERRAFORM_VERSION, alias="terraformVersion")
    backend_bucket: Optional[str] = Field(default=None, alias="tfBackendBucket")
    backend_key: Optional[str] = Field(default=None, alias="tfBackendKey")
    backend_use_lockfile: bool = Field(default=False, alias="tfBackendUseLockfile")
    workspace: Optional[str] = Field(default=None, alias="tfWorkspace")
    tflint: bool = Field(default=True, description="Run TFLint during lint")
    var_files: list[str] = Field(default_factory=list, alias="varFiles")

    @model_validator(mode="after")
    def _backend_is_complete(self) -> "TerraformParameters":
        if bool(self.backend_bucket) != bool(self.backend_key):
            raise ValueError("tfBackendBucket and tfBackendKey must be provided together")
        return self


class CloudFormationParameters(_Parameters):
    template_path: str = Field(default=DEFAULT_TEMPLATE_PATH, alias="templatePath")
    stack_name: str = Field(..., alias="stackName", min_length=1)
    capabilities: str = Field(default=DEFAULT_CAPABILITIES)
    parameter_overrides: Optional[str] = Field(default=None, alias="parameterOverrides")
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("parameter_overrides")
    @classmethod
    def _overrides_are_pairs(cls, value: Optional[str]) -> Optional[str]:
        parse_parameter_overrides(value)
        return value

    def capability_list(self) -> list[str]:
        return [item for item in self.capabilities.replace(",", " ").split() if item]

    def overrides(self) -> dict[str, str]:
        return parse_parameter_overrides(self.parameter_overrides)


class SamParameters(CloudFormationParameters):
    sam_config_path: str = Field(default=DEFAULT_SAM_CONFIG_PATH, alias="samConfigPath")
    s3_bucket: Optional[str] = Field(default=None, alias="s3Bucket")


ToolParameters = Union[TerraformParameters, CloudFormationParameters, SamParameters]

PARAMETER_MODELS: dict[ToolKind, type[_Parameters]] = {
    ToolKind.TERRAFORM: TerraformParameters,
    ToolKind.CLOUDFORMATION: CloudFormationParameters,
    ToolKind.SAM: SamParameters,
}


class RunRequest(BaseModel):
    """One pipeline invocation. Built once, never mutated."""

    tool: ToolKind
    working_directory: Path = Field(default=Path("."), alias="workingDirectory")
    region: str = Field(default=DEFAULT_REGION, min_length=1)
    role_identity: Optional[str] = Field(default=None, alias="roleIdentity")
    apply: bool = False
    environment_name: str = Field(default=DEFAULT_ENVIRONMENT, alias="environmentName")
    tool_parameters: dict[str, Any] = Field(default_factory=dict, alias="toolParameters")

    model_config = {
        "populate_by_name": True,
        "frozen": True,
        "extra": "forbid",
    }

    @model_validator(mode="after")
    def _apply_needs_environment(self) -> "RunRequest":
        if self.apply and not self.environment_name.strip():
            raise ValueError("environmentName must be set when apply is requested")
        return self

    def parameters(self) -> ToolParameters:
        """Validate ``tool_parameters`` against the selected tool's model."""
        return PARAMETER_MODELS[self.tool].model_validate(self.tool_parameters)  # type: ignore[return-value]


class PlanArtifact(BaseModel):
    """Immutable non-mutating preview produced by the plan stage."""

    run_id: str = Field(..., alias="runId")
    tool: ToolKind
    produced_at: datetime = Field(..., alias="producedAt")
    content: Path = Field(..., description="Plan file inside the artifact directory")
    checksum: str = Field(..., description="sha256 of the plan file")
    summary: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    @computed_field
    @property
    def has_changes(self) -> bool:
        return bool(self.details.get("hasChanges", True))


class GateDecision(BaseModel):
    allowed: bool
    reason: str
    state: GateState = GateState.BLOCKED
    approval: Optional[ApprovalState] = None


class RunOutcome(BaseModel):
    """Terminal report of a pipeline run."""

    status: RunStatus
    stage: str
    reason: str = ""
    tool: Optional[ToolKind] = None
    environment: Optional[str] = None
    run_id: Optional[str] = None
    artifact: Optional[PlanArtifact] = None
    gate: Optional[GateDecision] = None
    violations: list[str] = Field(default_factory=list)
    partial: dict[str, Any] = Field(default_factory=dict)
    apply_report: dict[str, Any] = Field(default_factory=dict)
    invalid_config: bool = Field(default=False, exclude=True)

    @computed_field
    @property
    def exit_code(self) -> int:
        if self.status is RunStatus.SUCCEEDED:
            return EXIT_OK
        if self.status is RunStatus.BLOCKED:
            return EXIT_BLOCKED
        return EXIT_INVALID if self.invalid_config else EXIT_FAILED


__all__ = [
    "ToolKind",
    "GateState",
    "ApprovalState",
    "RunStatus",
    "TerraformParameters",
    "CloudFormationParameters",
    "SamParameters",
    "ToolParameters",
    "PARAMETER_MODELS",
    "RunRequest",
    "PlanArtifact",
    "GateDecision",
    "RunOutcome",
    "parse_parameter_overrides",
]
