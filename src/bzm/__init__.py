"""Drive an AI coding assistant to migrate a repository to Bazel target by target."""

from .config import RunConfig, load_config
from .errors import (
    CommandLaunchError,
    ConfigError,
    CredentialsError,
    MigratorError,
    PatchInvocationError,
    TargetParseError,
    WorkspaceError,
)
from .loop import BuildEditLoop, LoopResult
from .migrator import MigrationReport, Migrator, TargetReport, TargetStatus, migrate_repository
from .recorder import ChangeRecorder, RecordResult
from .targets import BuildTarget, parse_target, parse_targets

__all__ = [
    "BuildEditLoop",
    "BuildTarget",
    "ChangeRecorder",
    "CommandLaunchError",
    "ConfigError",
    "CredentialsError",
    "LoopResult",
    "MigrationReport",
    "Migrator",
    "MigratorError",
    "PatchInvocationError",
    "RecordResult",
    "RunConfig",
    "TargetParseError",
    "TargetReport",
    "TargetStatus",
    "WorkspaceError",
    "load_config",
    "migrate_repository",
    "parse_target",
    "parse_targets",
]
