"""Rendering of run outcomes for the iacgate CLI."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel

SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"
STATUS_BADGES = {
    "succeeded": "✅",
    "blocked": "⏸️",
    "failed": "❌",
}


def emit(data: Any, fmt: str, output_path: Path | None = None) -> None:
    """Render a model or plain mapping to ``output_path``, or stdout when none is given."""
    renderer = RENDERERS.get(fmt)
    if renderer is None:
        raise ValueError(f"Unsupported format: {fmt}")
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    rendered = renderer(data).rstrip("\n") + "\n"

    if output_path is None:
        sys.stdout.write(rendered)
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(rendered, encoding="utf-8")


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _is_outcome(data: Any) -> bool:
    return isinstance(data, dict) and "status" in data and "stage" in data


def _summary_rows(data: dict[str, Any]) -> list[tuple[str, Any]]:
    artifact = data.get("artifact") or {}
    gate = data.get("gate") or {}
    rows = [
        ("Status", data.get("status")),
        ("Stage", data.get("stage")),
        ("Tool", data.get("tool") or "-"),
        ("Environment", data.get("environment") or "-"),
        ("Run", data.get("run_id") or "-"),
        ("Reason", data.get("reason") or "-"),
        ("Gate", f"{gate.get('state')} ({gate.get('reason')})" if gate else "-"),
    ]
    if artifact:
        rows.append(("Plan", artifact.get("summary") or "-"))
        rows.append(("Artifact", artifact.get("content")))
        rows.append(("sha256", artifact.get("checksum")))
    return rows


def _to_markdown(data: Any) -> str:
    if _is_outcome(data):
        badge = STATUS_BADGES.get(str(data.get("status")), "")
        lines = [f"{badge} **iacgate {data.get('status')}** at stage `{data.get('stage')}`", "", "| Key | Value |", "| --- | --- |"]
        lines += [f"| {key} | {value} |" for key, value in _summary_rows(data)]
        changes = ((data.get("artifact") or {}).get("details") or {}).get("changes") or []
        if changes:
            lines += ["", "| Action | Logical ID | Type | Replacement |", "| --- | --- | --- | --- |"]
            lines += [f"| {row.get('action')} | {row.get('logicalId')} | {row.get('type')} | {row.get('replacement') or '-'} |" for row in changes]
        if data.get("violations"):
            lines += ["", "**Violations**", ""] + [f"- {item}" for item in data["violations"]]
        if data.get("partial"):
            lines += ["", "**Partial progress reported by the tool**", "", "```json", json.dumps(data["partial"], indent=2), "```"]
        return "\n".join(lines)
    if isinstance(data, dict):
        lines = ["| Key | Value |", "| --- | --- |"]
        lines += [f"| {key} | {value} |" for key, value in data.items()]
        return "\n".join(lines)
    return str(data)


def _to_table(data: Any) -> str:
    if _is_outcome(data):
        rows = _summary_rows(data)
        rows += [("Violation", item) for item in data.get("violations") or []]
    elif isinstance(data, dict):
        rows = list(data.items())
    else:
        return str(data)
    width = max((len(str(key)) for key, _ in rows), default=0)
    return "\n".join(f"{str(key).ljust(width)} : {value}" for key, value in rows)


def _to_sarif(data: Any) -> str:
    results: list[dict[str, Any]] = []
    if _is_outcome(data):
        tool = data.get("tool") or "iacgate"
        for violation in data.get("violations") or []:
            results.append({"ruleId": f"{tool}-lint", "level": "error", "message": {"text": violation}})
        if data.get("status") == "failed" and not data.get("violations"):
            results.append({"ruleId": f"{tool}-{data.get('stage')}", "level": "error", "message": {"text": data.get("reason") or "failed"}})
        elif data.get("status") == "blocked":
            results.append({"ruleId": "gate-blocked", "level": "note", "message": {"text": data.get("reason") or "blocked"}})
    sarif = {
        "version": "2.1.0",
        "$schema": SARIF_SCHEMA,
        "runs": [
            {
                "tool": {"driver": {"name": "iacgate"}},
                "results": results,
            }
        ],
    }
    return json.dumps(sarif, indent=2)


RENDERERS = {
    "json": _to_json,
    "md": _to_markdown,
    "table": _to_table,
    "sarif": _to_sarif,
}
FORMATS = tuple(RENDERERS)

__all__ = ["emit", "FORMATS"]
