import json
import os
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]


def _write_run(run_dir: Path) -> None:
    run_dir.mkdir()
    (run_dir / "changeset.json").write_text("{}\n", encoding="utf-8")
    (run_dir / "sam-deploy.log").write_text("Changeset created successfully.\n", encoding="utf-8")
    manifest = {
        "artifact": {
            "runId": "sam-20260101T000000Z-abcdef12",
            "tool": "sam",
            "content": "changeset.json",
            "checksum": "f" * 64,
            "summary": "1 to add, 1 to modify, 1 to remove (1 replacement)",
            "details": {
                "files": ["sam-deploy.log"],
                "changes": [
                    {"action": "Add", "logicalId": "Queue", "type": "AWS::SQS::Queue", "replacement": ""},
                    {"action": "Modify", "logicalId": "Api", "type": "AWS::Serverless::Api", "replacement": "True"},
                    {"action": "Remove", "logicalId": "Topic", "type": "AWS::SNS::Topic", "replacement": ""},
                ],
            },
        },
        "request": {"tool": "sam", "environmentName": "prod"},
    }
    (run_dir / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")


def test_plan_comment_outputs(tmp_path: Path) -> None:
    run_dir = tmp_path / "run"
    _write_run(run_dir)
    sarif_path = tmp_path / "plan.sarif"
    comment_path = tmp_path / "comment.md"

    subprocess.run(
        [
            sys.executable,
            str(REPO_ROOT / "scripts/plan_comment.py"),
            "--artifacts-dir",
            str(run_dir),
            "--sarif",
            str(sarif_path),
            "--top",
            "10",
            "--output",
            str(comment_path),
        ],
        check=True,
        env={**os.environ, "PYTHONPATH": str(REPO_ROOT)},
    )

    comment = comment_path.read_text(encoding="utf-8")
    assert comment.startswith("📋 **sam plan for `prod`**: 1 to add, 1 to modify, 1 to remove (1 replacement)")
    assert "sha256 `ffffffffffff`" in comment
    assert "| Modify | Api | AWS::Serverless::Api | True |" in comment
    assert "Changeset created successfully." in comment

    sarif = json.loads(sarif_path.read_text(encoding="utf-8"))
    results = sarif["runs"][0]["results"]
    assert [r["ruleId"] for r in results] == ["change-replace", "change-remove", "change-add"]
    assert [r["level"] for r in results] == ["warning", "warning", "note"]
