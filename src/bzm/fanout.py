"""Run the migration once per model, each in its own branch and worktree.

Starting from the branch checked out in ``repo_root``, every model gets a
branch ``<branch>-<model with '/' and ':' replaced>`` and a persistent
worktree under ``fanout.worktree_root``. Both are reused when they already
exist, so an interrupted fan-out can be resumed. A failing target never
stops the fan-out; failures are aggregated per model.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable

import logging

from .config import RunConfig, apply_overrides
from .migrator import MigrationReport, Migrator
from .tools.process import require_executable
from .tools.vcs import GitError, GitRepository
from .utils.slug import model_branch_name

LOGGER = logging.getLogger(__name__)


def fan_out(
    config: RunConfig,
    models: Iterable[str] | None = None,
    *,
    repo_root: Path | None = None,
) -> Dict[str, MigrationReport]:
    for executable in ("git", config.build.executable, config.assistant.executable):
        require_executable(executable)

    repo = GitRepository.discover(repo_root)
    branch = repo.current_branch()
    if branch is None:
        raise GitError(f"Cannot fan out from a detached HEAD in {repo.root}")
    LOGGER.info("Current git branch: %s", branch)

    worktree_root = config.fanout.worktree_root.expanduser()
    targets = config.build_targets
    reports: Dict[str, MigrationReport] = {}
    for model in models or config.fanout.models:
        model_branch = model_branch_name(branch, model)
        repo.ensure_branch(model_branch)
        worktree = repo.ensure_worktree(worktree_root / model_branch, model_branch)

        model_config = apply_overrides(config, model=model)
        migrator = Migrator.from_config(
            model_config,
            worktree,
            repository=repo.root.as_posix(),
            on_exhaustion="continue",
        )
        report = migrator.run(targets, branch=model_branch)
        reports[model] = report
        LOGGER.info(
            "Model %s: %d/%d targets build",
            model,
            len(report.targets) - len(report.failed_targets),
            len(report.targets),
        )
    return reports


__all__ = ["fan_out"]
