"""Tool integrations: git, Bazel, aider and the process runner beneath them."""

from .aider import AiderInvoker, PatchResult, build_patch_prompt
from .bazel import BazelProbe, BuildOutcome
from .process import CommandResult, require_executable, run_command
from .vcs import GitError, GitRepository
from .workspace import EphemeralWorkspace, RepositorySource, authenticated_source, ensure_build_file

__all__ = [
    "AiderInvoker",
    "BazelProbe",
    "BuildOutcome",
    "CommandResult",
    "EphemeralWorkspace",
    "GitError",
    "GitRepository",
    "PatchResult",
    "RepositorySource",
    "authenticated_source",
    "build_patch_prompt",
    "ensure_build_file",
    "require_executable",
    "run_command",
]
