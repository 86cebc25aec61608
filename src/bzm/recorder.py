"""Commit and report what a build-edit loop changed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import logging

from .targets import BuildTarget
from .tools.aider import AiderInvoker
from .tools.vcs import GitError, GitRepository

LOGGER = logging.getLogger(__name__)


def commit_message(model: str, target: BuildTarget) -> str:
    return f"aider: model {model} target {target.label}"


@dataclass(slots=True)
class RecordResult:
    """Revisions around a target's loop and the commit created, if any."""

    baseline: str
    head: str
    commit: str | None
    diff: str

    @property
    def changed(self) -> bool:
        return self.baseline != self.head


class ChangeRecorder:
    """Stage and commit outstanding changes, then log the diff since a baseline."""

    def __init__(
        self,
        repo: GitRepository,
        model: str,
        *,
        commit_with: Literal["git", "assistant"] = "git",
        invoker: AiderInvoker | None = None,
    ) -> None:
        if commit_with == "assistant" and invoker is None:
            raise ValueError("commit_with='assistant' requires an AiderInvoker")
        self.repo = repo
        self.model = model
        self.commit_with = commit_with
        self.invoker = invoker

    def record(self, target: BuildTarget, baseline: str) -> RecordResult:
        commit = self._commit(target)
        head = self.repo.short_head()
        diff = ""
        if head == baseline:
            LOGGER.info("Build-edit loop made no changes for %s", target.label)
        else:
            diff = self.repo.diff(baseline, head)
            LOGGER.info("Changes made in the build-edit loop for %s:\n%s", target.label, diff)
        return RecordResult(baseline=baseline, head=head, commit=commit, diff=diff)

    def _commit(self, target: BuildTarget) -> str | None:
        if self.commit_with == "assistant":
            return self._commit_with_assistant()

        self.repo.stage_all()
        if self.repo.is_clean():
            LOGGER.info("No changes to commit in %s for %s", self.repo.root, target.label)
            return None
        sha = self.repo.commit(commit_message(self.model, target))
        LOGGER.info("Committed %s in %s", sha, self.repo.root)
        return sha

    def _commit_with_assistant(self) -> str | None:
        assert self.invoker is not None
        if self.repo.is_clean():
            return None
        result = self.invoker.commit()
        if not result.ok:
            raise GitError(f"Could not commit with aider: {result.output.strip() or result.describe()}")
        return self.repo.short_head()


__all__ = ["ChangeRecorder", "RecordResult", "commit_message"]
