"""sha256 helpers compatible with ``sha256sum`` output."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Mapping


def compute_sha256(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def load_checksums(path: Path) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        parts = line.split("  ", 1)
        if len(parts) != 2:
            continue
        mapping[parts[1].strip()] = parts[0].strip()
    return mapping


def write_checksums(path: Path, checksums: Mapping[str, str]) -> None:
    lines = [f"{digest}  {name}" for name, digest in sorted(checksums.items())]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


__all__ = ["compute_sha256", "load_checksums", "write_checksums"]
