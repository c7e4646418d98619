"""CloudFormation change set helpers shared by the CloudFormation and SAM adapters.

A change set is created without execution during plan and executed by ARN
during apply, so what runs is exactly what reviewers saw.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from botocore.exceptions import ClientError, WaiterError

from core.artifacts import build_artifact
from core.errors import ApplyError, PlanError
from core.models import PlanArtifact, ToolKind

logger = logging.getLogger(__name__)

CHANGE_SET_DOCUMENT = "changeset.json"
EMPTY_CHANGE_SET_MARKERS = (
    "didn't contain changes",
    "No updates are to be performed",
    "submitted information didn't contain changes",
)
CREATE_WAIT = {"Delay": 5, "MaxAttempts": 120}
EXECUTE_WAIT = {"Delay": 15, "MaxAttempts": 240}


def stack_status(cfn: Any, stack_name: str) -> str | None:
    try:
        response = cfn.describe_stacks(StackName=stack_name)
    except ClientError as exc:
        if "does not exist" in str(exc):
            return None
        raise
    stacks = response.get("Stacks") or []
    return stacks[0].get("StackStatus") if stacks else None


def change_set_type(status: str | None) -> str:
    # REVIEW_IN_PROGRESS: a CREATE change set exists but was never executed
    if status is None or status == "REVIEW_IN_PROGRESS":
        return "CREATE"
    return "UPDATE"


def describe_change_set(cfn: Any, change_set_id: str) -> dict[str, Any]:
    description: dict[str, Any] = {}
    changes: list[dict[str, Any]] = []
    kwargs: dict[str, Any] = {"ChangeSetName": change_set_id}
    while True:
        page = cfn.describe_change_set(**kwargs)
        changes.extend(page.get("Changes") or [])
        description = {**description, **page}
        token = page.get("NextToken")
        if not token:
            break
        kwargs["NextToken"] = token
    description["Changes"] = changes
    description.pop("NextToken", None)
    description.pop("ResponseMetadata", None)
    return description


def wait_for_change_set(cfn: Any, change_set_id: str) -> dict[str, Any]:
    """Block until the change set is computed; empty change sets are not failures."""
    try:
        cfn.get_waiter("change_set_create_complete").wait(ChangeSetName=change_set_id, WaiterConfig=CREATE_WAIT)
    except WaiterError:
        # FAILED also covers "no changes"; inspect the description below
        pass
    description = describe_change_set(cfn, change_set_id)
    status = description.get("Status")
    if status == "FAILED":
        reason = description.get("StatusReason") or ""
        if any(marker in reason for marker in EMPTY_CHANGE_SET_MARKERS):
            return description
        raise PlanError(f"Change set {change_set_id} failed: {reason}")
    if status != "CREATE_COMPLETE":
        raise PlanError(f"Change set {change_set_id} ended in unexpected status {status}")
    return description


def summarize_changes(description: dict[str, Any]) -> tuple[str, list[dict[str, Any]]]:
    rows: list[dict[str, Any]] = []
    for change in description.get("Changes") or []:
        resource = change.get("ResourceChange") or {}
        rows.append(
            {
                "action": resource.get("Action", ""),
                "logicalId": resource.get("LogicalResourceId", ""),
                "type": resource.get("ResourceType", ""),
                "replacement": resource.get("Replacement", ""),
            }
        )
    if not rows:
        return "No changes.", rows
    counts = Counter(row["action"] for row in rows)
    summary = f"{counts['Add']} to add, {counts['Modify']} to modify, {counts['Remove']} to remove"
    replacements = sum(1 for row in rows if row["replacement"] == "True")
    if replacements:
        summary += f" ({replacements} replacement)"
    return summary, rows


def change_set_artifact(
    run_id: str,
    tool: ToolKind,
    plan_dir: Path,
    description: dict[str, Any],
    stack_name: str,
    set_type: str,
    files: list[str] | None = None,
) -> PlanArtifact:
    document = plan_dir / CHANGE_SET_DOCUMENT
    document.write_text(json.dumps(description, indent=2, sort_keys=True, default=str) + "\n", encoding="utf-8")
    summary, rows = summarize_changes(description)
    details = {
        "stackName": stack_name,
        "changeSetId": description.get("ChangeSetId"),
        "changeSetName": description.get("ChangeSetName"),
        "changeSetType": set_type,
        "hasChanges": bool(rows),
        "changes": rows,
        "files": list(files or []),
    }
    return build_artifact(run_id, tool, document, summary, details)


def previewed_change_set(artifact: PlanArtifact) -> dict[str, Any]:
    """Read the checksummed change set description written at plan time."""
    try:
        document = json.loads(artifact.content.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ApplyError(f"Cannot read previewed change set {artifact.content.name}: {exc}") from exc
    if not isinstance(document, dict):
        raise ApplyError(f"{artifact.content.name} does not describe a change set")
    return document


def execute_change_set(cfn: Any, artifact: PlanArtifact) -> dict[str, Any]:
    details = artifact.details
    stack_name = details.get("stackName")
    change_set_id = details.get("changeSetId")
    if not artifact.has_changes:
        logger.info("Change set for %s has no changes; nothing to execute", stack_name)
        return {"status": "NO_CHANGES", "stackName": stack_name}
    if not change_set_id or not stack_name:
        raise ApplyError("Plan artifact does not reference a change set")
    previewed = previewed_change_set(artifact)
    if previewed.get("ChangeSetId") != change_set_id or previewed.get("StackName") != stack_name:
        raise ApplyError(
            f"Manifest change set {change_set_id} on {stack_name} does not match the previewed "
            f"{previewed.get('ChangeSetId')} on {previewed.get('StackName')} in {artifact.content.name}"
        )

    try:
        current = cfn.describe_change_set(ChangeSetName=change_set_id)
    except ClientError as exc:
        raise ApplyError(f"Change set {change_set_id} is no longer available: {exc}") from exc
    if current.get("ExecutionStatus") != "AVAILABLE":
        raise ApplyError(
            f"Change set {change_set_id} cannot be executed (execution status {current.get('ExecutionStatus')})",
            partial={"changeSetStatus": current.get("Status"), "executionStatus": current.get("ExecutionStatus")},
        )

    started = datetime.now(timezone.utc)
    try:
        cfn.execute_change_set(ChangeSetName=change_set_id)
    except ClientError as exc:
        raise ApplyError(f"ExecuteChangeSet failed: {exc}") from exc
    logger.info("Executing change set %s on stack %s", change_set_id, stack_name)

    waiter_name = "stack_create_complete" if details.get("changeSetType") == "CREATE" else "stack_update_complete"
    try:
        cfn.get_waiter(waiter_name).wait(StackName=stack_name, WaiterConfig=EXECUTE_WAIT)
    except WaiterError as exc:
        raise ApplyError(f"Stack {stack_name} did not complete: {exc}", partial=stack_progress(cfn, stack_name, started)) from exc

    return {
        "status": stack_status(cfn, stack_name),
        "stackName": stack_name,
        "changeSetId": change_set_id,
    }


def stack_progress(cfn: Any, stack_name: str, since: datetime) -> dict[str, Any]:
    """Report stack status and per-resource events recorded since ``since``."""
    try:
        status = stack_status(cfn, stack_name)
        events: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"StackName": stack_name}
        while True:
            page = cfn.describe_stack_events(**kwargs)
            batch = page.get("StackEvents") or []
            recent = [event for event in batch if event.get("Timestamp") and event["Timestamp"] >= since]
            events.extend(recent)
            token = page.get("NextToken")
            if not token or len(recent) < len(batch):
                break
            kwargs["NextToken"] = token
    except ClientError as exc:
        return {"stackStatus": None, "error": str(exc)}

    failed = []
    completed = []
    for event in events:
        logical_id = event.get("LogicalResourceId")
        state = event.get("ResourceStatus", "")
        if logical_id == stack_name:
            continue
        if state.endswith("_FAILED"):
            failed.append({"logicalId": logical_id, "status": state, "reason": event.get("ResourceStatusReason", "")})
        elif state.endswith("_COMPLETE") and logical_id not in completed:
            completed.append(logical_id)
    return {"stackStatus": status, "failedResources": failed, "completedResources": completed}


__all__ = [
    "CHANGE_SET_DOCUMENT",
    "change_set_artifact",
    "change_set_type",
    "describe_change_set",
    "execute_change_set",
    "previewed_change_set",
    "stack_progress",
    "stack_status",
    "summarize_changes",
    "wait_for_change_set",
]
