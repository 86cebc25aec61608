"""Minimal git helpers
The helpers below cover what a migration run needs: clone a repository into
a workspace, manage per-model branches and worktrees, record revisions, and
commit or diff the changes an assistant leaves behind.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence

import logging

from .process import CommandResult, run_command

LOGGER = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


def _redact(text: str, secrets: Iterable[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        # ``.git`` is a file inside linked worktrees.
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Locate the nearest git repository starting from ``start``."""

        path = Path(start or Path.cwd()).resolve()
        for candidate in (path, *path.parents):
            if (candidate / ".git").exists():
                return cls(candidate)
        raise GitError(f"Unable to locate a git repository from {path}")

    @classmethod
    def clone(
        cls,
        url: str,
        dest: Path | str,
        *,
        depth: int | None = 1,
        single_branch: bool = True,
        secrets: Sequence[str] = (),
    ) -> "GitRepository":
        """Clone ``url`` into ``dest`` and return the new repository.

        ``secrets`` are masked in log lines and error messages, which matters
        when credentials are embedded in the URL.
        """

        destination = Path(dest)
        args: List[str] = ["git", "clone"]
        if depth:
            args.extend(["--depth", str(depth)])
        if single_branch:
            args.append("--single-branch")
        args.extend([url, destination.as_posix()])

        shown_url = _redact(url, secrets)
        LOGGER.info("Cloning %s into %s", shown_url, destination)
        result = run_command(args)
        if not result.ok:
            message = _redact(result.output.strip() or "unknown git error", secrets)
            raise GitError(f"git clone {shown_url} failed: {message}")
        LOGGER.info("Cloned %s", shown_url)
        return cls(destination)

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> CommandResult:
        result = run_command(["git", *args], cwd=self.root)
        if check and not result.ok:
            message = result.output.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    def git(self, *args: str, check: bool = True) -> CommandResult:
        """Execute ``git`` with ``args`` relative to the repository root."""

        return self._run_git(list(args), check=check)

    # -------------------------------------------------------------- branches
    def current_branch(self) -> str | None:
        """Return the current branch name or ``None`` when detached."""

        result = self._run_git(["rev-parse", "--abbrev-ref", "HEAD"], check=False)
        if not result.ok:
            return None
        branch = result.output.strip()
        if not branch or branch == "HEAD":
            return None
        return branch

    def branch_exists(self, name: str) -> bool:
        """Return ``True`` when ``refs/heads/<name>`` exists."""

        result = self._run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"], check=False)
        if result.ok:
            return True
        if result.exit_code == 1:
            return False
        message = result.output.strip() or f"exit code {result.exit_code}"
        raise GitError(f"Failed to check whether branch {name} exists: {message}")

    def create_branch(self, name: str) -> None:
        self._run_git(["branch", name])

    def ensure_branch(self, name: str) -> bool:
        """Create ``name`` unless it exists; return ``True`` when created."""

        if self.branch_exists(name):
            LOGGER.info("Branch %s already exists.", name)
            return False
        LOGGER.info("Branch %s does not exist, creating...", name)
        self.create_branch(name)
        LOGGER.info("Branch %s created.", name)
        return True

    def checkout_new_branch(self, name: str) -> None:
        """Create ``name`` from ``HEAD`` and switch to it."""

        self._run_git(["checkout", "-b", name])
        LOGGER.info("Checked out branch %s", name)

    # ------------------------------------------------------------- worktrees
    def ensure_worktree(self, path: Path | str, branch: str) -> "GitRepository":
        """Return the worktree at ``path``, adding it for ``branch`` if missing."""

        worktree = Path(path)
        if worktree.exists():
            LOGGER.info("Worktree already exists at: %s", worktree)
            return GitRepository(worktree)

        LOGGER.info("Worktree at %s does not exist, creating...", worktree)
        worktree.parent.mkdir(parents=True, exist_ok=True)
        self._run_git(["worktree", "add", worktree.as_posix(), branch])
        LOGGER.info("Worktree created at: %s", worktree)
        return GitRepository(worktree)

    # ------------------------------------------------------------------- stash
    def stash_push(
        self,
        *,
        message: str | None = None,
        include_untracked: bool = False,
    ) -> str | None:
        """Stash pending changes and return the created reference."""

        args: List[str] = ["stash", "push"]
        if include_untracked:
            args.append("-u")
        if message:
            args.extend(["-m", message])
        result = self._run_git(args, check=False)
        combined = result.output.strip()
        if not result.ok:
            if "No local changes to save" in combined:
                return None
            raise GitError(f"git {' '.join(args)} failed: {combined or 'unknown git error'}")
        LOGGER.info("git stash output in %s: %s", self.root, combined)
        if "No local changes to save" in combined:
            return None
        return "stash@{0}"

    # ------------------------------------------------------------- repo status
    def status_entries(self) -> List[tuple[str, Path]]:
        """Return porcelain status entries as ``(status, path)`` pairs."""

        result = self._run_git(["status", "--porcelain"])
        entries: List[tuple[str, Path]] = []
        for line in result.output.splitlines():
            if not line:
                continue
            status = line[:2]
            raw_path = line[3:]
            if status[0] in {"R", "C"} and " -> " in raw_path:
                raw_path = raw_path.split(" -> ", 1)[1]
            entries.append((status.strip() or status, Path(raw_path.strip())))
        return entries

    def is_clean(self) -> bool:
        """Return ``True`` when ``git status --porcelain`` reports nothing."""

        return not self.status_entries()

    # ----------------------------------------------------------- revisions
    def short_head(self) -> str:
        """Return the abbreviated hash of ``HEAD``."""

        return self._run_git(["rev-parse", "--short", "HEAD"]).output.strip()

    def diff(self, left: str, right: str | None = None) -> str:
        """Return the unified diff between two revisions (or ``left`` and the tree)."""

        args: List[str] = ["diff", left]
        if right:
            args.append(right)
        return self._run_git(args).output

    # -------------------------------------------------------------- commits
    def stage_all(self) -> None:
        self._run_git(["add", "-A"])

    def commit(self, message: str) -> str:
        """Commit the staged changes and return the new short hash."""

        self._run_git(["commit", "-m", message])
        return self.short_head()


__all__ = ["GitError", "GitRepository"]
