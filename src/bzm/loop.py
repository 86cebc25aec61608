"""Build-edit retry loop.

The loop alternates between probing a target and asking the assistant to
patch its build file:

1. Probe once. If the target already builds, stop without patching.
2. For each of ``attempts`` rounds, patch with the latest diagnostics, then
   probe again unless this was the last round.
3. After the last patch, probe one final time to decide the outcome.

So a target costs at most ``attempts`` patch invocations and
``attempts + 1`` probes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Literal, Protocol

import logging

from .errors import PatchInvocationError
from .targets import BuildTarget
from .tools.aider import PatchResult
from .tools.bazel import BuildOutcome
from .tools.vcs import GitRepository
from .tools.workspace import ensure_build_file

LOGGER = logging.getLogger(__name__)

RESET_STASH_MESSAGE = "bzm-temp-stash"


class Probe(Protocol):
    def probe(self, target: BuildTarget) -> BuildOutcome: ...


class Patcher(Protocol):
    def invoke(self, target: BuildTarget, build_file: str, diagnostics: str) -> PatchResult: ...


@dataclass(slots=True)
class LoopResult:
    """Summary of one target's pass through the loop."""

    target: BuildTarget
    succeeded: bool
    probes: int
    patch_invocations: int
    patch_failures: int
    last_outcome: BuildOutcome

    @property
    def fast_path(self) -> bool:
        """``True`` when the target built before any patching."""
        return self.succeeded and self.patch_invocations == 0


class BuildEditLoop:
    """Drive probe/patch rounds for one target at a time."""

    def __init__(
        self,
        probe: Probe,
        patcher: Patcher,
        repo: GitRepository | None = None,
        *,
        attempts: int = 3,
        patch_failure: Literal["retry", "abort"] = "retry",
        reset_on_failure: bool = False,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        if patch_failure not in {"retry", "abort"}:
            raise ValueError(f"Unknown patch failure policy: {patch_failure}")
        if reset_on_failure and repo is None:
            raise ValueError("reset_on_failure requires a repository")
        self.probe = probe
        self.patcher = patcher
        self.repo = repo
        self.attempts = attempts
        self.patch_failure = patch_failure
        self.reset_on_failure = reset_on_failure

    def run(self, target: BuildTarget, build_file: str) -> LoopResult:
        probes = 0
        patches = 0
        failures = 0

        outcome = self.probe.probe(target)
        probes += 1
        if outcome.succeeded:
            LOGGER.info("%s already builds; skipping the assistant", target.label)
            return LoopResult(target, True, probes, patches, failures, outcome)

        for attempt in range(1, self.attempts + 1):
            LOGGER.info(
                "%s did not build, invoking the assistant (attempt %d/%d)",
                target.label,
                attempt,
                self.attempts,
            )
            patches += 1
            if not self._patch(target, build_file, outcome, attempt):
                failures += 1

            if attempt == self.attempts:
                break
            outcome = self.probe.probe(target)
            probes += 1
            if outcome.succeeded:
                LOGGER.info("%s builds after attempt %d", target.label, attempt)
                return LoopResult(target, True, probes, patches, failures, outcome)
            if self.reset_on_failure:
                self._reset(target, build_file, attempt)

        outcome = self.probe.probe(target)
        probes += 1
        if outcome.succeeded:
            LOGGER.info("%s builds after the final attempt", target.label)
        else:
            LOGGER.info(
                "Maximum attempts (%d) reached for %s; last output:\n%s",
                self.attempts,
                target.label,
                outcome.output,
            )
        return LoopResult(target, outcome.succeeded, probes, patches, failures, outcome)

    def _patch(self, target: BuildTarget, build_file: str, outcome: BuildOutcome, attempt: int) -> bool:
        before = self.repo.short_head() if self.repo is not None else None
        result = self.patcher.invoke(target, build_file, outcome.diagnostics)
        if not result.ok:
            message = f"Assistant failed for {target.label} (exit {result.exit_code})"
            if self.patch_failure == "abort":
                raise PatchInvocationError(message, exit_code=result.exit_code, output=result.output)
            LOGGER.warning("%s on attempt %d; retrying:\n%s", message, attempt, result.output)
            return False

        if self.repo is None or before is None:
            return True
        after = self.repo.short_head()
        LOGGER.info("Assistant finished attempt %d for %s, sha %s", attempt, target.label, after)
        if before == after:
            LOGGER.info("Assistant committed no changes")
        else:
            LOGGER.info("Changes made by the assistant:\n%s", self.repo.diff(before, after))
        return True

    def _reset(self, target: BuildTarget, build_file: str, attempt: int) -> None:
        assert self.repo is not None
        self.repo.stash_push(message=RESET_STASH_MESSAGE, include_untracked=True)
        # An uncommitted placeholder is stashed along with the leftovers.
        ensure_build_file(self.repo.root, target, PurePosixPath(build_file).name)
        LOGGER.info("Stashed leftovers before re-invoking the assistant for %s (attempt %d)", target.label, attempt)


__all__ = ["BuildEditLoop", "LoopResult", "Patcher", "Probe"]
