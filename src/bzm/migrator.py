"""Target-by-target migration driver."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

import logging

from pydantic import BaseModel, ConfigDict, Field

from .config import RunConfig
from .loop import BuildEditLoop
from .recorder import ChangeRecorder
from .targets import BuildTarget
from .tools.aider import AiderInvoker
from .tools.bazel import BazelProbe
from .tools.process import require_executable
from .tools.vcs import GitRepository
from .tools.workspace import (
    EphemeralWorkspace,
    RepositorySource,
    authenticated_source,
    ensure_build_file,
)
from .utils.slug import run_branch_name

LOGGER = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid")


class TargetStatus(str, Enum):
    """Outcome of a single target."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    NOT_RUN = "NOT_RUN"


class TargetReport(RecordModel):
    label: str
    status: TargetStatus
    build_file: Optional[str] = None
    probes: int = 0
    patch_invocations: int = 0
    patch_failures: int = 0
    baseline: Optional[str] = None
    head: Optional[str] = None
    commit: Optional[str] = None


class MigrationReport(RecordModel):
    """Aggregated outcome of a run over the target list."""

    model: str
    repository: str
    branch: Optional[str] = None
    targets: List[TargetReport] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return all(report.status == TargetStatus.SUCCEEDED for report in self.targets)

    @property
    def failed_targets(self) -> List[str]:
        return [report.label for report in self.targets if report.status == TargetStatus.FAILED]


class Migrator:
    """Run the build-edit loop and record changes for each target in order."""

    def __init__(
        self,
        repo: GitRepository,
        loop: BuildEditLoop,
        recorder: ChangeRecorder,
        *,
        model: str,
        repository: str = "",
        build_file_name: str = "BUILD.bazel",
        on_exhaustion: str = "stop",
    ) -> None:
        self.repo = repo
        self.loop = loop
        self.recorder = recorder
        self.model = model
        self.repository = repository
        self.build_file_name = build_file_name
        self.on_exhaustion = on_exhaustion

    @classmethod
    def from_config(
        cls,
        config: RunConfig,
        repo: GitRepository,
        *,
        assistant_home: Path | None = None,
        repository: str | None = None,
        on_exhaustion: str | None = None,
    ) -> "Migrator":
        """Wire the Bazel probe, aider invoker, loop and recorder for ``repo``."""
        probe = BazelProbe(
            root=repo.root,
            executable=config.build.executable,
            use_query=config.build.use_query,
            extra_args=tuple(config.build.extra_args),
        )
        invoker = AiderInvoker(
            root=repo.root,
            model=config.model,
            home=assistant_home,
            executable=config.assistant.executable,
            edit_format=config.assistant.edit_format,
            read_files=tuple(config.assistant.read_files),
            auto_test=config.assistant.auto_test,
            build_executable=config.build.executable,
            extra_args=tuple(config.assistant.extra_args),
        )
        loop = BuildEditLoop(
            probe,
            invoker,
            repo,
            attempts=config.attempts,
            patch_failure=config.patch_failure,
            reset_on_failure=config.workspace.reset_on_failure,
        )
        recorder = ChangeRecorder(
            repo,
            config.model,
            commit_with=config.assistant.commit_with,
            invoker=invoker,
        )
        return cls(
            repo,
            loop,
            recorder,
            model=config.model,
            repository=repository if repository is not None else config.repository.url,
            build_file_name=config.build.build_file,
            on_exhaustion=on_exhaustion or config.on_exhaustion,
        )

    def run(self, targets: Iterable[BuildTarget], *, branch: str | None = None) -> MigrationReport:
        report = MigrationReport(model=self.model, repository=self.repository, branch=branch)
        pending = list(targets)
        for index, target in enumerate(pending):
            LOGGER.info("Migrating %s in %s with model %s", target.label, self.repository, self.model)
            target_report = self._migrate_target(target)
            report.targets.append(target_report)
            if target_report.status == TargetStatus.FAILED and self.on_exhaustion == "stop":
                LOGGER.error("Could not build %s successfully; stopping", target.label)
                report.targets.extend(
                    TargetReport(label=rest.label, status=TargetStatus.NOT_RUN) for rest in pending[index + 1 :]
                )
                break
            if target_report.status == TargetStatus.FAILED:
                LOGGER.warning("Could not build %s successfully; moving on", target.label)
        report.finished_at = utc_now()
        return report

    def _migrate_target(self, target: BuildTarget) -> TargetReport:
        baseline = self.repo.short_head()
        build_file = ensure_build_file(self.repo.root, target, self.build_file_name)
        result = self.loop.run(target, build_file)
        record = self.recorder.record(target, baseline)
        return TargetReport(
            label=target.label,
            status=TargetStatus.SUCCEEDED if result.succeeded else TargetStatus.FAILED,
            build_file=build_file,
            probes=result.probes,
            patch_invocations=result.patch_invocations,
            patch_failures=result.patch_failures,
            baseline=record.baseline,
            head=record.head,
            commit=record.commit,
        )


def _source_for(config: RunConfig, env: Mapping[str, str] | None) -> RepositorySource:
    if config.repository.use_github_credentials:
        return authenticated_source(config.repository.url, env)
    return RepositorySource(url=config.repository.url)


def migrate_repository(config: RunConfig, *, env: Mapping[str, str] | None = None) -> MigrationReport:
    """Clone the configured repository into a fresh workspace and migrate it.

    The workspace and the assistant home are deleted when this returns or
    raises, unless ``workspace.keep`` is set.
    """
    for executable in ("git", config.build.executable, config.assistant.executable):
        require_executable(executable)
    targets = config.build_targets
    source = _source_for(config, env)

    with EphemeralWorkspace(
        label=config.repository.url,
        base_dir=config.workspace.root,
        keep=config.workspace.keep,
    ) as workspace:
        repo = GitRepository.clone(
            source.url,
            workspace.clone_dir,
            depth=config.repository.depth,
            secrets=source.secrets,
        )
        branch = None
        if config.repository.create_branch:
            branch = run_branch_name(config.model)
            repo.checkout_new_branch(branch)
        migrator = Migrator.from_config(
            config,
            repo,
            assistant_home=workspace.assistant_home,
            repository=source.display_url,
        )
        return migrator.run(targets, branch=branch)


__all__ = [
    "MigrationReport",
    "Migrator",
    "TargetReport",
    "TargetStatus",
    "migrate_repository",
]
