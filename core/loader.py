"""Build and validate a RunRequest from a mapping or a request file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from core.errors import InvalidConfig
from core.models import PARAMETER_MODELS, RunRequest, ToolKind

SUPPORTED_TOOLS = ", ".join(kind.value for kind in ToolKind)


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "request"
        problems.append(f"{location}: {error.get('msg')}")
    return "; ".join(problems)


def parse_tool(value: Any) -> ToolKind:
    if isinstance(value, ToolKind):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfig(f"tool is required (one of: {SUPPORTED_TOOLS})")
    try:
        return ToolKind(value.strip().lower())
    except ValueError:
        raise InvalidConfig(f"Unsupported tool {value!r} (expected one of: {SUPPORTED_TOOLS})") from None


def load_request(data: Mapping[str, Any]) -> RunRequest:
    """Validate ``data`` into a RunRequest without touching anything remote.

    ``tool`` is checked first so an unsupported backend is rejected before any
    other field is even looked at.
    """
    if not isinstance(data, Mapping):
        raise InvalidConfig("Run request must be a mapping of keys to values.")

    payload = dict(data)
    payload["tool"] = parse_tool(payload.get("tool"))

    try:
        request = RunRequest.model_validate(payload)
    except ValidationError as exc:
        raise InvalidConfig(_format_validation_error(exc)) from exc

    if not request.working_directory.is_dir():
        raise InvalidConfig(f"workingDirectory {request.working_directory} does not exist or is not a directory")

    try:
        PARAMETER_MODELS[request.tool].model_validate(request.tool_parameters)
    except ValidationError as exc:
        raise InvalidConfig(f"{request.tool.value} parameters: {_format_validation_error(exc)}") from exc

    return request


def load_request_file(path: Path, overrides: Mapping[str, Any] | None = None) -> RunRequest:
    """Read a YAML or JSON request file; ``overrides`` win over file values."""
    if not path.exists():
        raise InvalidConfig(f"Request file {path} not found")

    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise InvalidConfig(f"Request file {path} is not valid: {exc}") from exc

    data = data or {}
    if not isinstance(data, dict):
        raise InvalidConfig("Request file must be a mapping of keys to values.")

    # relative paths in the file are relative to the file; overrides keep the caller's cwd
    merged = merge_request_data(_anchor_working_directory(data, path.parent), overrides or {})
    return load_request(merged)


def _anchor_working_directory(data: Mapping[str, Any], base_dir: Path) -> dict[str, Any]:
    anchored = _camel_keys(data)
    raw = anchored.get("workingDirectory")
    if raw is not None and not Path(raw).is_absolute():
        anchored["workingDirectory"] = base_dir / raw
    return anchored


def _camel_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    normalized = dict(data)
    for name, field in RunRequest.model_fields.items():
        if field.alias and name in normalized:
            normalized.setdefault(field.alias, normalized.pop(name))
    return normalized


def merge_request_data(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = _camel_keys(base)
    for key, value in _camel_keys(overrides).items():
        if key == "toolParameters":
            params = dict(merged.get("toolParameters") or {})
            params.update(value or {})
            merged["toolParameters"] = params
        else:
            merged[key] = value
    return merged


__all__ = ["load_request", "load_request_file", "merge_request_data", "parse_tool"]
