"""Exception hierarchy shared by the migrator modules.

Build failures are not exceptions: they are reported as
:class:`bzm.tools.bazel.BuildOutcome` values and drive the retry loop. The
classes below cover the conditions that abort a run.
"""

from __future__ import annotations


class MigratorError(RuntimeError):
    """Base class for fatal migrator errors."""


class ConfigError(MigratorError):
    """Raised when the run configuration cannot be loaded or validated."""


class CredentialsError(MigratorError):
    """Raised when repository credentials are required but not available."""


class TargetParseError(MigratorError, ValueError):
    """Raised for Bazel labels that cannot be split into package and name."""


class WorkspaceError(MigratorError):
    """Raised when the workspace cannot be prepared for a target."""


class CommandLaunchError(MigratorError):
    """Raised when an external tool cannot be located or started."""


class PatchInvocationError(MigratorError):
    """Raised when the assistant exits non-zero and the policy is to abort."""

    def __init__(self, message: str, *, exit_code: int | None = None, output: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


__all__ = [
    "CommandLaunchError",
    "ConfigError",
    "CredentialsError",
    "MigratorError",
    "PatchInvocationError",
    "TargetParseError",
    "WorkspaceError",
]
