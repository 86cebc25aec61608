"""Build probes that ask Bazel whether a target currently builds."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Sequence, Tuple

import logging

from ..targets import BuildTarget
from .process import CommandResult, run_command

LOGGER = logging.getLogger(__name__)

ProbeStage = Literal["query", "build"]


@dataclass(slots=True)
class BuildOutcome:
    """Result of one probe: success, or failure with diagnostic text."""

    target: BuildTarget
    succeeded: bool
    stage: ProbeStage
    command: Tuple[str, ...]
    exit_code: int
    output: str

    @property
    def diagnostics(self) -> str:
        return "" if self.succeeded else self.output

    @classmethod
    def from_result(cls, target: BuildTarget, stage: ProbeStage, result: CommandResult) -> "BuildOutcome":
        return cls(
            target=target,
            succeeded=result.ok,
            stage=stage,
            command=result.args,
            exit_code=result.exit_code,
            output=result.output,
        )


@dataclass(slots=True)
class BazelProbe:
    """Run ``bazel build`` (optionally preceded by ``bazel query``) for a target."""

    root: Path
    executable: str = "bazel"
    use_query: bool = False
    extra_args: Sequence[str] = ()
    calls: int = field(default=0, init=False)

    def build_command(self, target: BuildTarget) -> list[str]:
        return [self.executable, "build", *self.extra_args, target.label]

    def probe(self, target: BuildTarget) -> BuildOutcome:
        self.calls += 1
        if self.use_query:
            query = run_command([self.executable, "query", target.label], cwd=self.root)
            if not query.ok:
                LOGGER.info(
                    "bazel query %s failed (exit %s):\n%s", target.label, query.exit_code, query.output
                )
                return BuildOutcome.from_result(target, "query", query)

        result = run_command(self.build_command(target), cwd=self.root)
        outcome = BuildOutcome.from_result(target, "build", result)
        if outcome.succeeded:
            LOGGER.info("bazel build %s succeeded", target.label)
        else:
            LOGGER.info("bazel build %s failed (exit %s):\n%s", target.label, result.exit_code, result.output)
        return outcome


__all__ = ["BazelProbe", "BuildOutcome", "ProbeStage"]
