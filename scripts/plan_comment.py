#!/usr/bin/env python3
"""Generate Markdown and SARIF summaries of a published plan artifact for PR review."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List

from core.constants import MANIFEST_FILE

SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"
# GitHub rejects comments above 65536 characters.
COMMENT_LIMIT = 60000
CHANGE_LEVEL = {
    "Remove": "warning",
    "Add": "note",
    "Modify": "note",
    "Dynamic": "note",
}


def load_manifest(artifacts_dir: Path) -> Dict[str, Any]:
    return json.loads((artifacts_dir / MANIFEST_FILE).read_text(encoding="utf-8"))


def plan_text(artifacts_dir: Path, manifest: Dict[str, Any]) -> str:
    files = manifest.get("artifact", {}).get("details", {}).get("files") or []
    readable = [name for name in files if name.endswith(".txt") or name.endswith(".log")]
    if readable:
        return (artifacts_dir / readable[0]).read_text(encoding="utf-8")
    return (artifacts_dir / manifest["artifact"]["content"]).read_text(encoding="utf-8")


def classify_changes(manifest: Dict[str, Any]) -> List[Dict[str, Any]]:
    findings = []
    for change in manifest.get("artifact", {}).get("details", {}).get("changes") or []:
        replacement = change.get("replacement") == "True"
        level = "warning" if replacement else CHANGE_LEVEL.get(change.get("action", ""), "note")
        findings.append({**change, "level": level})
    findings.sort(key=lambda item: (item["level"] != "warning", item.get("logicalId", "")))
    return findings


def write_sarif(findings: List[Dict[str, Any]], sarif_path: Path) -> None:
    results = []
    for item in findings:
        verb = "Replace" if item.get("replacement") == "True" else item.get("action")
        results.append(
            {
                "ruleId": f"change-{str(verb).lower()}",
                "level": item["level"],
                "message": {"text": f"{verb} {item.get('logicalId')} ({item.get('type')})"},
                "properties": {key: item.get(key) for key in ("action", "logicalId", "type", "replacement")},
            }
        )
    sarif = {
        "version": "2.1.0",
        "$schema": SARIF_SCHEMA,
        "runs": [
            {
                "tool": {"driver": {"name": "iacgate-plan"}},
                "results": results,
            }
        ],
    }
    sarif_path.write_text(json.dumps(sarif, indent=2), encoding="utf-8")


def build_markdown(manifest: Dict[str, Any], findings: List[Dict[str, Any]], text: str, top: int) -> str:
    artifact = manifest.get("artifact", {})
    request = manifest.get("request", {})
    header = (
        f"📋 **{artifact.get('tool')} plan for `{request.get('environmentName')}`**: {artifact.get('summary') or 'no summary'}\n\n"
        f"Run `{artifact.get('runId')}` · sha256 `{artifact.get('checksum', '')[:12]}`"
    )
    sections = [header]
    if findings:
        rows = [
            f"| {item.get('action')} | {item.get('logicalId')} | {item.get('type')} | {item.get('replacement') or '-'} |"
            for item in findings[:top]
        ]
        table = "| Action | Logical ID | Type | Replacement |\n| --- | --- | --- | --- |\n" + "\n".join(rows)
        sections.append(table)
    room = COMMENT_LIMIT - sum(len(section) for section in sections) - 100
    body = text if len(text) <= room else text[: max(room, 0)] + "\n... (truncated)"
    sections.append(f"<details><summary>Plan output</summary>\n\n```\n{body.rstrip()}\n```\n</details>")
    return "\n\n".join(sections)


def main() -> None:
    parser = argparse.ArgumentParser(description="Summarize a plan artifact for a pull request comment")
    parser.add_argument("--artifacts-dir", required=True, type=Path, help="Run directory holding manifest.json")
    parser.add_argument("--sarif", type=Path, help="Optional SARIF output path")
    parser.add_argument("--top", type=int, default=25, help="Top N resource changes for the comment table")
    parser.add_argument("--output", type=Path, help="Optional markdown output path")
    args = parser.parse_args()

    manifest = load_manifest(args.artifacts_dir)
    findings = classify_changes(manifest)
    if args.sarif:
        write_sarif(findings, args.sarif)

    markdown = build_markdown(manifest, findings, plan_text(args.artifacts_dir, manifest), args.top)
    if args.output:
        args.output.write_text(markdown, encoding="utf-8")
    else:
        print(markdown)


if __name__ == "__main__":
    main()
