"""Tool adapters, one per supported IaC backend."""

from __future__ import annotations

from typing import Any

from core.adapters.base import ToolAdapter
from core.adapters.cloudformation import CloudFormationAdapter
from core.adapters.sam import SamAdapter
from core.adapters.terraform import TerraformAdapter
from core.models import RunRequest, ToolKind
from core.process import CommandRunner

ADAPTERS: dict[ToolKind, type[ToolAdapter]] = {
    ToolKind.CLOUDFORMATION: CloudFormationAdapter,
    ToolKind.SAM: SamAdapter,
    ToolKind.TERRAFORM: TerraformAdapter,
}


def adapter_for(request: RunRequest, runner: CommandRunner, session: Any | None = None) -> ToolAdapter:
    return ADAPTERS[request.tool](request, runner, session)


__all__ = [
    "ADAPTERS",
    "CloudFormationAdapter",
    "SamAdapter",
    "TerraformAdapter",
    "ToolAdapter",
    "adapter_for",
]
