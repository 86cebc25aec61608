"""Patch invocations of the aider coding assistant."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

import logging
import shlex
import textwrap

from ..targets import BuildTarget
from .process import CommandResult, run_command

LOGGER = logging.getLogger(__name__)

_PROMPT_TEMPLATE = textwrap.dedent(
    """\
    I would like to migrate this repo to build with Bazel.
    I am working target-by-target.
    Right now I am trying to get the {label!r} target to build.
    Can you make the minimal changes to {build_file!r} necessary to get this target to build?
    Do not touch non-Bazel files.
    Here is the output from the latest '{build_command}':

    {diagnostics}"""
)


def build_patch_prompt(target: BuildTarget, build_file: str, diagnostics: str, build_command: str) -> str:
    """Compose the instruction sent to the assistant for one attempt."""

    return _PROMPT_TEMPLATE.format(
        label=target.label,
        build_file=build_file,
        build_command=build_command,
        diagnostics=diagnostics.rstrip(),
    )


@dataclass(slots=True)
class PatchResult:
    """Whether the assistant process itself ran cleanly.

    A successful invocation does not mean the target builds; the next probe
    decides that.
    """

    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(slots=True)
class AiderInvoker:
    """Run aider non-interactively against a single build file."""

    root: Path
    model: str
    home: Path | None = None
    executable: str = "aider"
    edit_format: str = "diff"
    read_files: Sequence[str] = ("MODULE.bazel",)
    auto_test: bool = False
    build_executable: str = "bazel"
    extra_args: Sequence[str] = ()
    stream: bool = True
    calls: int = field(default=0, init=False)

    def _env(self) -> dict[str, str] | None:
        if self.home is None:
            return None
        return {"HOME": str(self.home)}

    def build_command_text(self, target: BuildTarget) -> str:
        return shlex.join([self.build_executable, "build", target.label])

    def command(self, target: BuildTarget, build_file: str, prompt: str) -> List[str]:
        args: List[str] = [
            self.executable,
            "--no-check-update",
            "--no-show-release-notes",
            "--model",
            self.model,
            "--edit-format",
            self.edit_format,
            "--yes-always",
            "--disable-playwright",
            "--file",
            build_file,
        ]
        for path in self.read_files:
            if (self.root / path).exists():
                args.extend(["--read", path])
        if self.auto_test:
            args.extend(["--auto-test", "--test-cmd", self.build_command_text(target)])
        args.extend(self.extra_args)
        args.extend(["--message", prompt])
        return args

    def invoke(self, target: BuildTarget, build_file: str, diagnostics: str) -> PatchResult:
        """Ask aider to fix ``build_file`` given the latest build ``diagnostics``."""

        self.calls += 1
        prompt = build_patch_prompt(target, build_file, diagnostics, self.build_command_text(target))
        LOGGER.info("Running aider with model %s for %s", self.model, target.label)
        result = run_command(
            self.command(target, build_file, prompt),
            cwd=self.root,
            env=self._env(),
            stream=self.stream,
        )
        return PatchResult(exit_code=result.exit_code, output=result.output)

    def commit(self) -> CommandResult:
        """Let aider author a commit for the outstanding changes."""

        LOGGER.info("Committing code using aider and model %s", self.model)
        return run_command(
            [self.executable, "--commit", "--model", self.model],
            cwd=self.root,
            env=self._env(),
        )


__all__ = ["AiderInvoker", "PatchResult", "build_patch_prompt"]
