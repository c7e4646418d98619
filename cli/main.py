"""Command line interface for approval-gated IaC plan/apply runs."""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import Any

from cli import config, output
from core.approval import EnvironmentApprovalProvider, StaticApprovalProvider
from core.artifacts import ArtifactStore, verify_directory
from core.constants import EXIT_FAILED, EXIT_INVALID, EXIT_OK
from core.credentials import CredentialBroker
from core.errors import InvalidConfig
from core.loader import load_request_file
from core.logging_utils import configure_logging
from core.models import RunOutcome, RunStatus, ToolKind
from core.pipeline import Pipeline

EXIT_INTERRUPTED = 130

# argparse dest -> RunRequest key
REQUEST_FLAGS = {
    "tool": "tool",
    "working_directory": "workingDirectory",
    "region": "region",
    "role_identity": "roleIdentity",
    "apply": "apply",
    "environment_name": "environmentName",
}

# argparse dest -> tool parameter key
PARAMETER_FLAGS = {
    "terraform_version": "terraformVersion",
    "tf_backend_bucket": "tfBackendBucket",
    "tf_backend_key": "tfBackendKey",
    "tf_backend_use_lockfile": "tfBackendUseLockfile",
    "tf_workspace": "tfWorkspace",
    "var_files": "varFiles",
    "tflint": "tflint",
    "template_path": "templatePath",
    "stack_name": "stackName",
    "capabilities": "capabilities",
    "parameter_overrides": "parameterOverrides",
    "sam_config_path": "samConfigPath",
    "s3_bucket": "s3Bucket",
}


class CLIError(Exception):
    def __init__(self, message: str, exit_code: int = EXIT_INVALID) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="iacgate", description="Approval-gated plan/apply for CloudFormation, SAM and Terraform")
    parser.add_argument("--config", type=Path, default=Path("iacgate.yml"), help="Path to CLI settings file")
    parser.add_argument("--format", choices=output.FORMATS, help="Output format override")
    parser.add_argument("--output", type=Path, help="Write the rendered result to this file")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")
    parser.add_argument("--artifact-dir", help="Directory receiving plan artifacts")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -------------------------------------------------------------------
    run_cmd = subparsers.add_parser("run", help="Lint, plan and (when approved) apply")
    run_cmd.add_argument("--request", type=Path, help="YAML/JSON run request; flags override its values")
    run_cmd.add_argument("--tool", help=f"One of: {', '.join(kind.value for kind in ToolKind)}")
    run_cmd.add_argument("--working-directory")
    run_cmd.add_argument("--region")
    run_cmd.add_argument("--role-identity", help="IAM role ARN assumed with the CI identity token")
    run_cmd.add_argument("--apply", action=argparse.BooleanOptionalAction, default=None)
    run_cmd.add_argument("--environment-name")
    run_cmd.add_argument("--approved", action="store_true", help="Assert that the environment approval has cleared")

    tf = run_cmd.add_argument_group("terraform")
    tf.add_argument("--terraform-version")
    tf.add_argument("--tf-backend-bucket")
    tf.add_argument("--tf-backend-key")
    tf.add_argument("--tf-backend-use-lockfile", action=argparse.BooleanOptionalAction, default=None)
    tf.add_argument("--tf-workspace")
    tf.add_argument("--var-file", dest="var_files", action="append")
    tf.add_argument("--tflint", action=argparse.BooleanOptionalAction, default=None)

    cfn = run_cmd.add_argument_group("cloudformation / sam")
    cfn.add_argument("--template-path")
    cfn.add_argument("--stack-name")
    cfn.add_argument("--capabilities")
    cfn.add_argument("--parameter-overrides", help="Space-separated KEY=VALUE pairs")
    cfn.add_argument("--sam-config-path")
    cfn.add_argument("--s3-bucket")

    # apply -----------------------------------------------------------------
    apply_cmd = subparsers.add_parser("apply", help="Apply a published plan artifact")
    apply_cmd.add_argument("--manifest", type=Path, required=True, help="manifest.json of a plan run")
    apply_cmd.add_argument("--working-directory")
    apply_cmd.add_argument("--region")
    apply_cmd.add_argument("--role-identity")
    apply_cmd.add_argument("--environment-name")
    apply_cmd.add_argument("--approved", action="store_true", help="Assert that the environment approval has cleared")

    # verify ----------------------------------------------------------------
    verify_cmd = subparsers.add_parser("verify", help="Check a plan artifact directory against its checksums")
    verify_cmd.add_argument("--artifacts-dir", type=Path, required=True)

    return parser


def app(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = config.load_settings(args.config).merge_cli(
            format_override=args.format,
            artifact_dir=args.artifact_dir,
            log_level=args.log_level,
        )
        if settings.default_format not in output.FORMATS:
            raise CLIError(
                f"Unsupported default_format {settings.default_format!r} in {args.config} "
                f"(expected one of: {', '.join(output.FORMATS)})"
            )
        configure_logging(settings.log_level, settings.log_file)

        if args.command == "run":
            return _cmd_run(args, settings)
        if args.command == "apply":
            return _cmd_apply(args, settings)
        if args.command == "verify":
            return _cmd_verify(args, settings)
    except (CLIError, InvalidConfig) as exc:
        print(exc, file=sys.stderr)
        return exc.exit_code
    except KeyboardInterrupt:
        print("Interrupted; no further stages were started.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as exc:  # pragma: no cover - unexpected errors bubble up
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


# ---------------------------------------------------------------------------
# Command implementations


def _cmd_run(args: argparse.Namespace, settings: config.Settings) -> int:
    overrides = _request_overrides(args)
    pipeline = _build_pipeline(settings, approved=args.approved)

    if args.request:
        try:
            request = load_request_file(args.request, overrides)
        except InvalidConfig as exc:
            outcome = RunOutcome(status=RunStatus.FAILED, stage=exc.stage, reason=str(exc), invalid_config=True)
        else:
            outcome = pipeline.run(request)
    else:
        if "tool" not in overrides:
            raise CLIError("--tool is required when --request is not provided")
        outcome = pipeline.execute(overrides)

    output.emit(outcome, settings.default_format, output_path=args.output)
    return outcome.exit_code


def _cmd_apply(args: argparse.Namespace, settings: config.Settings) -> int:
    overrides = _request_overrides(args)
    pipeline = _build_pipeline(settings, approved=args.approved)
    outcome = pipeline.apply_published(args.manifest, overrides)
    output.emit(outcome, settings.default_format, output_path=args.output)
    return outcome.exit_code


def _cmd_verify(args: argparse.Namespace, settings: config.Settings) -> int:
    results = verify_directory(args.artifacts_dir)
    verified = bool(results) and all(state == "ok" for state in results.values())
    payload = {"artifactsDir": str(args.artifacts_dir), "verified": verified, **{f"file:{name}": state for name, state in results.items()}}
    output.emit(payload, settings.default_format, output_path=args.output)
    return EXIT_OK if verified else EXIT_FAILED


# ---------------------------------------------------------------------------
# Helpers


def _request_overrides(args: argparse.Namespace) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for dest, key in REQUEST_FLAGS.items():
        value = getattr(args, dest, None)
        if value is not None:
            data[key] = value
    params = {key: getattr(args, dest) for dest, key in PARAMETER_FLAGS.items() if getattr(args, dest, None) is not None}
    if params:
        data["toolParameters"] = params
    return data


def _build_pipeline(settings: config.Settings, approved: bool = False) -> Pipeline:
    static = list(settings.approved_environments)
    if approved:
        static.append("*")
    approvals = EnvironmentApprovalProvider(fallback=StaticApprovalProvider(approved=static))
    store = ArtifactStore(Path(settings.artifact_dir), bucket=settings.artifact_bucket, prefix=settings.artifact_prefix)
    broker = CredentialBroker(duration_seconds=settings.session_duration)
    return Pipeline(store, approvals, broker, command_timeout=settings.command_timeout)


def _interrupt_on_sigterm(signum: int, frame: Any) -> None:
    # CI runners cancel jobs with SIGTERM; treat it like Ctrl-C
    raise KeyboardInterrupt


def main() -> None:
    signal.signal(signal.SIGTERM, _interrupt_on_sigterm)
    raise SystemExit(app())


if __name__ == "__main__":
    main()
