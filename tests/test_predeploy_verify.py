import os
import subprocess
import sys
from pathlib import Path

from core.artifacts import ArtifactStore, build_artifact
from core.models import RunRequest, ToolKind

REPO_ROOT = Path(__file__).resolve().parents[1]
HOOK = REPO_ROOT / "pipeline/hooks/predeploy_verify.py"


def _publish(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("GITHUB_SHA", "abc123")
    store = ArtifactStore(tmp_path / "artifacts")
    run_dir = store.run_dir("terraform-run")
    (run_dir / "tfplan").write_bytes(b"plan")
    (run_dir / "tfplan.txt").write_text("No changes.\n", encoding="utf-8")
    artifact = build_artifact(
        "terraform-run", ToolKind.TERRAFORM, run_dir / "tfplan", "No changes.", {"hasChanges": False, "files": ["tfplan.txt"]}
    )
    store.publish(artifact, RunRequest(tool=ToolKind.TERRAFORM, working_directory=tmp_path))
    return run_dir


def _run_hook(run_dir: Path, *extra: str, sha: str | None = None) -> subprocess.CompletedProcess:
    env = {key: value for key, value in os.environ.items() if key not in ("GITHUB_SHA", "CODEBUILD_RESOLVED_SOURCE_VERSION")}
    env["PYTHONPATH"] = str(REPO_ROOT)
    if sha:
        env["GITHUB_SHA"] = sha
    return subprocess.run(
        [sys.executable, str(HOOK), "--artifacts-dir", str(run_dir), *extra],
        capture_output=True,
        text=True,
        env=env,
    )


def test_hook_passes_for_untouched_run(tmp_path: Path, monkeypatch) -> None:
    run_dir = _publish(tmp_path, monkeypatch)
    result = _run_hook(run_dir, sha="abc123")
    assert result.returncode == 0, result.stderr
    assert "Pre-apply verification passed for run terraform-run." in result.stdout


def test_hook_fails_on_tampered_file(tmp_path: Path, monkeypatch) -> None:
    run_dir = _publish(tmp_path, monkeypatch)
    (run_dir / "tfplan.txt").write_text("1 to add\n", encoding="utf-8")
    result = _run_hook(run_dir)
    assert result.returncode == 1
    assert "tfplan.txt mismatch" in result.stderr


def test_hook_fails_on_commit_mismatch(tmp_path: Path, monkeypatch) -> None:
    run_dir = _publish(tmp_path, monkeypatch)
    result = _run_hook(run_dir, "--commit", "def456")
    assert result.returncode == 1
    assert "Commit mismatch" in result.stderr


def test_hook_requires_checksums(tmp_path: Path) -> None:
    result = _run_hook(tmp_path)
    assert result.returncode == 1
    assert "checksums.txt missing" in result.stderr
