"""Blocking external-process execution for tool adapters."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124

# Ambient profile settings would shadow the exchanged session credentials.
_SHADOWING_VARS = ("AWS_PROFILE", "AWS_DEFAULT_PROFILE")


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def lines(self) -> list[str]:
        return [line.rstrip() for line in self.output.splitlines() if line.strip()]


class CommandRunner:
    """Run one command at a time with the pipeline's environment.

    Missing executables and timeouts come back as results with the shell's
    conventional exit codes so adapters report them like any tool failure.
    """

    def __init__(self, env: Mapping[str, str] | None = None, timeout: float | None = None) -> None:
        self._env = dict(env or {})
        self._timeout = timeout

    def _environment(self) -> dict[str, str]:
        merged = dict(os.environ)
        if "AWS_ACCESS_KEY_ID" in self._env:
            for name in _SHADOWING_VARS:
                merged.pop(name, None)
        merged.update(self._env)
        return merged

    def run(self, args: Sequence[str], cwd: Path) -> CommandResult:
        command = tuple(str(arg) for arg in args)
        if shutil.which(command[0]) is None:
            logger.error("Executable not found: %s", command[0])
            return CommandResult(command, EXIT_NOT_FOUND, stderr=f"{command[0]}: command not found")

        logger.info("$ %s  (cwd=%s)", " ".join(command), cwd)
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd),
                env=self._environment(),
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.error("Command timed out after %ss: %s", self._timeout, command[0])
            return CommandResult(command, EXIT_TIMEOUT, stderr=f"{command[0]} timed out after {self._timeout}s")

        if completed.returncode != 0:
            logger.warning("%s exited with %s", command[0], completed.returncode)
        return CommandResult(command, completed.returncode, completed.stdout or "", completed.stderr or "")


__all__ = ["CommandResult", "CommandRunner", "EXIT_NOT_FOUND", "EXIT_TIMEOUT"]
