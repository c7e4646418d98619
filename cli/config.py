"""Settings file loader for the iacgate CLI."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULTS = {
    "default_format": "json",
    "artifact_dir": "iacgate-artifacts",
    "artifact_bucket": None,
    "artifact_prefix": "",
    "log_level": "INFO",
    "log_file": None,
    "command_timeout": None,
    "session_duration": 3600,
    "approved_environments": [],
}


@dataclass(slots=True)
class Settings:
    default_format: str = DEFAULTS["default_format"]
    artifact_dir: str = DEFAULTS["artifact_dir"]
    artifact_bucket: str | None = DEFAULTS["artifact_bucket"]
    artifact_prefix: str = DEFAULTS["artifact_prefix"]
    log_level: str = DEFAULTS["log_level"]
    log_file: str | None = DEFAULTS["log_file"]
    command_timeout: float | None = DEFAULTS["command_timeout"]
    session_duration: int = DEFAULTS["session_duration"]
    approved_environments: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "Settings":
        timeout = data.get("command_timeout", DEFAULTS["command_timeout"])
        approved = data.get("approved_environments") or []
        if isinstance(approved, str):
            approved = [item.strip() for item in approved.split(",") if item.strip()]
        return cls(
            default_format=data.get("default_format", DEFAULTS["default_format"]),
            artifact_dir=str(data.get("artifact_dir", DEFAULTS["artifact_dir"])),
            artifact_bucket=data.get("artifact_bucket", DEFAULTS["artifact_bucket"]),
            artifact_prefix=data.get("artifact_prefix", DEFAULTS["artifact_prefix"]) or "",
            log_level=str(data.get("log_level", DEFAULTS["log_level"])),
            log_file=data.get("log_file", DEFAULTS["log_file"]),
            command_timeout=float(timeout) if timeout is not None else None,
            session_duration=int(data.get("session_duration", DEFAULTS["session_duration"])),
            approved_environments=list(approved),
        )

    def merge_cli(
        self,
        format_override: str | None = None,
        artifact_dir: str | None = None,
        log_level: str | None = None,
    ) -> "Settings":
        return replace(
            self,
            default_format=format_override or self.default_format,
            artifact_dir=artifact_dir or self.artifact_dir,
            log_level=log_level or self.log_level,
            approved_environments=list(self.approved_environments),
        )


def load_settings(path: Path) -> Settings:
    if not path.exists():
        return Settings()

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ValueError("Configuration file must be a mapping of keys to values.")

    return Settings.from_mapping(data)


__all__ = ["Settings", "load_settings"]
