"""Durable storage for plan artifacts with a sha256 manifest."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from core.checksums import compute_sha256, load_checksums, write_checksums
from core.constants import CHECKSUMS_FILE, COMPLIANCE_TAGS, MANIFEST_FILE
from core.errors import ApplyError, InvalidConfig, PlanError
from core.models import PlanArtifact, RunRequest, ToolKind

logger = logging.getLogger(__name__)


def new_run_id(tool: ToolKind) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{tool.value}-{stamp}-{uuid4().hex[:8]}"


def build_artifact(run_id: str, tool: ToolKind, content: Path, summary: str, details: dict[str, Any]) -> PlanArtifact:
    """Seal a freshly written plan file into an artifact record."""
    return PlanArtifact(
        run_id=run_id,
        tool=tool,
        produced_at=datetime.now(timezone.utc),
        content=content,
        checksum=compute_sha256(content),
        summary=summary,
        details=details,
    )


class ArtifactStore:
    """One directory per run under ``base_dir``, optionally mirrored to S3.

    Each run directory holds the plan file, any companion files listed in
    ``details["files"]``, ``checksums.txt`` (``sha256sum`` format) and
    ``manifest.json`` describing the request and the artifact.
    """

    def __init__(self, base_dir: Path, bucket: str | None = None, prefix: str = "", s3_client: Any | None = None) -> None:
        self.base_dir = Path(base_dir)
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._s3 = s3_client

    def run_dir(self, run_id: str) -> Path:
        path = (self.base_dir / run_id).resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def publish(self, artifact: PlanArtifact, request: RunRequest, s3_client: Any | None = None) -> Path:
        run_dir = artifact.content.parent
        names = [artifact.content.name, *artifact.details.get("files", [])]
        checksums = {name: compute_sha256(run_dir / name) for name in names}
        write_checksums(run_dir / CHECKSUMS_FILE, checksums)

        payload = artifact.model_dump(mode="json", by_alias=True)
        payload["content"] = artifact.content.name
        manifest = {
            "artifact": payload,
            "request": request.model_dump(mode="json", by_alias=True),
            "commit": os.getenv("GITHUB_SHA") or os.getenv("CODEBUILD_RESOLVED_SOURCE_VERSION"),
            "files": checksums,
            "compliance": COMPLIANCE_TAGS,
        }
        manifest_path = run_dir / MANIFEST_FILE
        manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
        logger.info("Published plan artifact %s (sha256=%s)", artifact.content, artifact.checksum)

        if self.bucket:
            self._upload(run_dir, [*names, CHECKSUMS_FILE, MANIFEST_FILE], checksums, artifact.run_id, s3_client)
        return manifest_path

    def _upload(self, run_dir: Path, names: list[str], checksums: dict[str, str], run_id: str, s3_client: Any | None) -> None:
        client = s3_client or self._s3
        if client is None:
            client = boto3.client("s3")
        for name in names:
            key = "/".join(part for part in (self.prefix, run_id, name) if part)
            extra = {"Metadata": {"sha256": checksums[name]}} if name in checksums else {}
            try:
                client.upload_file(str(run_dir / name), self.bucket, key, ExtraArgs=extra)
            except (ClientError, BotoCoreError) as exc:
                raise PlanError(f"Uploading {name} to s3://{self.bucket}/{key} failed: {exc}") from exc
        logger.info("Uploaded %d artifact file(s) to s3://%s/%s", len(names), self.bucket, "/".join(p for p in (self.prefix, run_id) if p))

    @staticmethod
    def load(manifest_path: Path) -> tuple[PlanArtifact, dict[str, Any]]:
        """Return the artifact and the raw request mapping from a manifest."""
        if not manifest_path.exists():
            raise InvalidConfig(f"Artifact manifest {manifest_path} not found")
        try:
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            payload = dict(manifest["artifact"])
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidConfig(f"Artifact manifest {manifest_path} is malformed: {exc}") from exc
        payload["content"] = manifest_path.parent / payload["content"]
        return PlanArtifact.model_validate(payload), dict(manifest.get("request") or {})

    @staticmethod
    def verify(artifact: PlanArtifact, expected_run_id: str | None = None) -> None:
        """Fail unless the plan file on disk is bit-for-bit what was published."""
        if expected_run_id is not None and artifact.run_id != expected_run_id:
            raise ApplyError(f"Plan artifact belongs to run {artifact.run_id}, expected {expected_run_id}")
        content = artifact.content
        if not content.is_file():
            raise ApplyError(f"Plan artifact {content} is missing")
        actual = compute_sha256(content)
        if actual != artifact.checksum:
            raise ApplyError(f"Plan artifact checksum mismatch: expected {artifact.checksum}, got {actual}")
        checksum_file = content.parent / CHECKSUMS_FILE
        if not checksum_file.exists():
            raise ApplyError(f"{CHECKSUMS_FILE} missing beside {content.name}; artifact was never published")
        recorded = load_checksums(checksum_file).get(content.name)
        if recorded != actual:
            raise ApplyError(f"{CHECKSUMS_FILE} does not match plan artifact {content.name}")


def verify_directory(run_dir: Path) -> dict[str, str]:
    """Check every entry of a run directory's checksums file.

    Returns a mapping of file name to ``ok``, ``missing`` or ``mismatch``.
    """
    checksum_file = run_dir / CHECKSUMS_FILE
    if not checksum_file.exists():
        raise InvalidConfig(f"{CHECKSUMS_FILE} missing in {run_dir}")
    results: dict[str, str] = {}
    for name, expected in load_checksums(checksum_file).items():
        path = run_dir / name
        if not path.is_file():
            results[name] = "missing"
        elif compute_sha256(path) != expected:
            results[name] = "mismatch"
        else:
            results[name] = "ok"
    return results


__all__ = ["ArtifactStore", "build_artifact", "new_run_id", "verify_directory"]
