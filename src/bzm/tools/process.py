"""Blocking subprocess execution with merged output capture."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Sequence

import logging
import os
import shutil
import subprocess
import sys

from ..errors import CommandLaunchError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandResult:
    """Outcome of a completed external command."""

    args: tuple[str, ...]
    cwd: Path | None
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def describe(self) -> str:
        return f"{' '.join(self.args)} (exit {self.exit_code})"


def _merge_env(extra: Mapping[str, str] | None) -> Dict[str, str] | None:
    """Overlay ``extra`` on the current process environment."""
    if not extra:
        return None
    env: Dict[str, str] = os.environ.copy()
    env.update({str(key): str(value) for key, value in extra.items()})
    return env


def require_executable(name: str) -> str:
    """Resolve ``name`` on ``PATH`` or raise :class:`CommandLaunchError`."""

    resolved = shutil.which(name)
    if resolved is None:
        raise CommandLaunchError(f"Executable not available: {name}")
    return resolved


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    stream: bool = False,
) -> CommandResult:
    """Run ``args`` to completion and return the combined stdout/stderr.

    A non-zero exit status is reported through :attr:`CommandResult.exit_code`.
    Only failures to start the process raise, as :class:`CommandLaunchError`.
    With ``stream`` the output is echoed to this process's stdout while it is
    being captured. No timeout is applied.
    """

    command = [str(arg) for arg in args]
    if not command:
        raise CommandLaunchError("Empty command")
    workdir = Path(cwd) if cwd is not None else None
    LOGGER.debug("Running %s (cwd=%s)", " ".join(command), workdir or ".")

    try:
        process = subprocess.Popen(  # noqa: S603  # arguments are built by the caller, never via a shell
            command,
            cwd=workdir,
            env=_merge_env(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as error:
        raise CommandLaunchError(f"Failed to launch {command[0]}: {error}") from error

    chunks: list[bytes] = []
    assert process.stdout is not None
    with process.stdout:
        for line in iter(process.stdout.readline, b""):
            chunks.append(line)
            if stream:
                sys.stdout.write(line.decode("utf-8", errors="replace"))
                sys.stdout.flush()
    exit_code = process.wait()

    output = b"".join(chunks).decode("utf-8", errors="replace")
    return CommandResult(args=tuple(command), cwd=workdir, exit_code=exit_code, output=output)


__all__ = ["CommandResult", "require_executable", "run_command"]
