"""CLI entry point tests."""

import json
import logging
import signal

import pytest

from cli import main as cli_main
from cli.main import app as cli_app
from core.adapters import adapter_for
from core.approval import ApprovalProvider, StaticApprovalProvider
from core.artifacts import ArtifactStore, build_artifact
from core.models import RunRequest, ToolKind
from core.pipeline import Pipeline

from fakes import FakeBroker, FakeRunner


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_pipeline(monkeypatch, tmp_path, session):
    runner = FakeRunner()

    def build(settings, approved=False):
        return Pipeline(
            ArtifactStore(tmp_path / "artifacts"),
            StaticApprovalProvider(approved=["*"] if approved else []),
            FakeBroker(session),
            runner_factory=lambda **kwargs: runner,
            adapter_factory=adapter_for,
            session_factory=lambda region: session,
        )

    monkeypatch.setattr(cli_main, "_build_pipeline", build)
    return runner


def test_unsupported_tool_exits_2(tmp_path, capsys):
    code = cli_app(
        [
            "--config", str(tmp_path / "missing.yml"),
            "--artifact-dir", str(tmp_path / "artifacts"),
            "run", "--tool", "pulumi", "--working-directory", str(tmp_path),
        ]
    )
    assert code == 2
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "failed"
    assert payload["stage"] == "config"
    assert "pulumi" in payload["reason"]


def test_missing_tool_exits_2(tmp_path, capsys):
    code = cli_app(["--config", str(tmp_path / "missing.yml"), "run"])
    assert code == 2
    assert "--tool is required" in capsys.readouterr().err


@pytest.mark.parametrize("approved, expected", [(False, 3), (True, 0)])
def test_apply_needs_approval(tmp_path, template_dir, cfn, fake_pipeline, approved, expected):
    argv = [
        "--config", str(tmp_path / "missing.yml"),
        "--output", str(tmp_path / "outcome.json"),
        "run",
        "--tool", "cloudformation",
        "--working-directory", str(template_dir),
        "--stack-name", "demo",
        "--apply",
        "--environment-name", "prod",
    ]
    if approved:
        argv.append("--approved")

    assert cli_app(argv) == expected

    outcome = json.loads((tmp_path / "outcome.json").read_text(encoding="utf-8"))
    assert outcome["exit_code"] == expected
    assert ("execute_change_set" in cfn.names()) is approved


def test_run_from_request_file(tmp_path, template_dir, cfn, fake_pipeline):
    request_path = template_dir / "iacgate-request.yml"
    request_path.write_text("tool: cloudformation\nworkingDirectory: .\ntoolParameters:\n  stackName: demo\n", encoding="utf-8")

    code = cli_app(
        [
            "--config", str(tmp_path / "missing.yml"),
            "--format", "md",
            "--output", str(tmp_path / "outcome.md"),
            "run", "--request", str(request_path), "--region", "eu-west-1",
        ]
    )

    assert code == 0
    rendered = (tmp_path / "outcome.md").read_text(encoding="utf-8")
    assert "**iacgate succeeded** at stage `plan`" in rendered
    assert "| Add | Bucket | AWS::S3::Bucket | - |" in rendered
    assert fake_pipeline.calls[0][0] == "cfn-lint"


def test_invalid_request_file_exits_2(tmp_path, capsys, fake_pipeline):
    request_path = tmp_path / "request.yml"
    request_path.write_text("tool: terraform\nworkingDirectory: nowhere\n", encoding="utf-8")
    code = cli_app(["--config", str(tmp_path / "missing.yml"), "run", "--request", str(request_path)])
    assert code == 2
    assert json.loads(capsys.readouterr().out)["stage"] == "config"
    assert fake_pipeline.calls == []


def _published_run(tmp_path):
    store = ArtifactStore(tmp_path / "artifacts")
    run_dir = store.run_dir("terraform-run")
    (run_dir / "tfplan").write_bytes(b"plan")
    artifact = build_artifact("terraform-run", ToolKind.TERRAFORM, run_dir / "tfplan", "No changes.", {"hasChanges": False})
    store.publish(artifact, RunRequest(tool=ToolKind.TERRAFORM, working_directory=tmp_path))
    return run_dir


def test_verify_command(tmp_path, capsys):
    run_dir = _published_run(tmp_path)
    code = cli_app(["--config", str(tmp_path / "missing.yml"), "verify", "--artifacts-dir", str(run_dir)])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["verified"] is True
    assert payload["file:tfplan"] == "ok"

    (run_dir / "tfplan").write_bytes(b"tampered")
    assert cli_app(["--config", str(tmp_path / "missing.yml"), "verify", "--artifacts-dir", str(run_dir)]) == 1


def test_settings_file_sets_default_format(tmp_path, capsys):
    settings_path = tmp_path / "iacgate.yml"
    settings_path.write_text("default_format: table\nlog_level: WARNING\n", encoding="utf-8")
    run_dir = _published_run(tmp_path)

    assert cli_app(["--config", str(settings_path), "verify", "--artifacts-dir", str(run_dir)]) == 0
    out = capsys.readouterr().out
    assert "verified" in out
    assert ": True" in out


def test_package_entry_points_forward_to_cli():
    import iacgate
    from iacgate.cli import app, build_parser

    assert app is cli_app
    assert build_parser().prog == "iacgate"
    assert iacgate.core.ToolKind is ToolKind
    assert isinstance(iacgate.__version__, str)


def test_unknown_default_format_fails_before_running(tmp_path, capsys, template_dir, cfn, fake_pipeline):
    settings_path = tmp_path / "iacgate.yml"
    settings_path.write_text("default_format: xml\n", encoding="utf-8")

    code = cli_app(
        [
            "--config", str(settings_path),
            "run",
            "--tool", "cloudformation",
            "--working-directory", str(template_dir),
            "--stack-name", "demo",
            "--apply",
            "--environment-name", "prod",
            "--approved",
        ]
    )

    assert code == 2
    assert "default_format 'xml'" in capsys.readouterr().err
    assert fake_pipeline.calls == []
    assert cfn.calls == []


class InterruptedApproval(ApprovalProvider):
    def status(self, environment):
        raise KeyboardInterrupt


def test_interrupt_after_plan_skips_apply(monkeypatch, tmp_path, capsys, template_dir, cfn, session):
    monkeypatch.setattr(
        cli_main,
        "_build_pipeline",
        lambda settings, approved=False: Pipeline(
            ArtifactStore(tmp_path / "artifacts"),
            InterruptedApproval(),
            FakeBroker(session),
            runner_factory=lambda **kwargs: FakeRunner(),
            adapter_factory=adapter_for,
            session_factory=lambda region: session,
        ),
    )

    code = cli_app(
        [
            "--config", str(tmp_path / "missing.yml"),
            "run",
            "--tool", "cloudformation",
            "--working-directory", str(template_dir),
            "--stack-name", "demo",
            "--apply",
            "--environment-name", "prod",
        ]
    )

    assert code == 130
    assert "Interrupted" in capsys.readouterr().err
    assert "create_change_set" in cfn.names()
    assert "execute_change_set" not in cfn.names()
    assert any((tmp_path / "artifacts").rglob("manifest.json"))


def test_sigterm_becomes_keyboard_interrupt():
    with pytest.raises(KeyboardInterrupt):
        cli_main._interrupt_on_sigterm(signal.SIGTERM, None)
