from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import pytest

from bzm.config import RunConfig, build_config
from bzm.errors import CommandLaunchError, CredentialsError, PatchInvocationError, WorkspaceError
from bzm.migrator import MigrationReport, TargetStatus, migrate_repository
from bzm.tools.workspace import PLACEHOLDER_MARKER
from conftest import FakeTools, run_git

MATCHER = "//crates/matcher:grep_matcher"
ROOT_BINARY = "//:ripgrep"


def _config(upstream: Path, workspace_root: Path, targets: List[str], **extra: Any) -> RunConfig:
    data: Dict[str, Any] = {
        "repository": {"url": upstream.as_uri()},
        "targets": targets,
        "workspace": {"root": str(workspace_root)},
    }
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key].update(value)
        else:
            data[key] = value
    return build_config(data)


def _kept_clone(workspace_root: Path) -> Path:
    clones = list(workspace_root.glob("*/repo"))
    assert len(clones) == 1
    return clones[0]


def test_target_fixed_on_first_attempt_is_committed(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools
) -> None:
    workspace_root = tmp_path / "ws"
    config = _config(upstream_repo, workspace_root, [MATCHER], workspace={"keep": True})

    report = migrate_repository(config)

    assert report.succeeded
    [target] = report.targets
    assert target.status == TargetStatus.SUCCEEDED
    assert target.build_file == "crates/matcher/BUILD.bazel"
    assert (target.probes, target.patch_invocations, target.patch_failures) == (2, 1, 0)
    assert target.commit is not None and target.commit == target.head
    assert report.branch is not None and report.branch.startswith("openrouter-openai-gpt-5-mini-")

    clone = _kept_clone(workspace_root)
    content = (clone / "crates" / "matcher" / "BUILD.bazel").read_text(encoding="utf-8")
    assert content.startswith(PLACEHOLDER_MARKER)
    assert "FIXED" in content
    assert run_git(clone, "log", "-1", "--format=%s").strip() == (
        f"aider: model openrouter/openai/gpt-5-mini target {MATCHER}"
    )
    assert run_git(clone, "rev-parse", "--abbrev-ref", "HEAD").strip() == report.branch


def test_target_that_already_builds_takes_the_fast_path(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools
) -> None:
    (upstream_repo / "crates" / "matcher" / "BUILD.bazel").write_text("# FIXED\n", encoding="utf-8")
    run_git(upstream_repo, "add", ".")
    run_git(upstream_repo, "commit", "-m", "Add build file")
    workspace_root = tmp_path / "ws"

    report = migrate_repository(_config(upstream_repo, workspace_root, [MATCHER]))

    [target] = report.targets
    assert target.status == TargetStatus.SUCCEEDED
    assert (target.probes, target.patch_invocations) == (1, 0)
    assert target.commit is None
    assert target.head == target.baseline
    assert fake_tools.calls("aider") == []
    assert len(fake_tools.calls("bazel build")) == 1


def test_exhausted_target_fails_and_workspace_is_removed(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_AIDER_FIX", "0")
    workspace_root = tmp_path / "ws"

    report = migrate_repository(_config(upstream_repo, workspace_root, [MATCHER], attempts=3))

    assert not report.succeeded
    assert report.failed_targets == [MATCHER]
    [target] = report.targets
    assert (target.probes, target.patch_invocations) == (4, 3)
    assert len(fake_tools.calls("aider")) == 3
    assert len(fake_tools.calls("bazel build")) == 4
    assert list(workspace_root.iterdir()) == []


def test_assistant_runs_with_ephemeral_home(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools
) -> None:
    workspace_root = tmp_path / "ws"

    migrate_repository(_config(upstream_repo, workspace_root, [MATCHER]))

    homes = fake_tools.homes()
    assert homes
    assert len(set(homes)) == 1
    home = Path(homes[0])
    assert home.parent == workspace_root.resolve() or home.parent == workspace_root
    assert home.name.startswith("aider-home-")
    assert not home.exists()


def test_failed_patch_aborts_when_configured(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_AIDER_EXIT", "3")
    workspace_root = tmp_path / "ws"
    config = _config(upstream_repo, workspace_root, [MATCHER], patch_failure="abort")

    with pytest.raises(PatchInvocationError) as excinfo:
        migrate_repository(config)

    assert excinfo.value.exit_code == 3
    assert len(fake_tools.calls("aider")) == 1
    assert list(workspace_root.iterdir()) == []


def test_failed_patch_is_retried_by_default(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_AIDER_EXIT", "3")

    report = migrate_repository(_config(upstream_repo, tmp_path / "ws", [MATCHER], attempts=2))

    [target] = report.targets
    assert target.status == TargetStatus.FAILED
    assert (target.patch_invocations, target.patch_failures) == (2, 2)


def test_missing_package_directory_is_fatal(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools
) -> None:
    workspace_root = tmp_path / "ws"

    with pytest.raises(WorkspaceError, match="crates/missing"):
        migrate_repository(_config(upstream_repo, workspace_root, ["//crates/missing:thing"]))

    assert fake_tools.calls("bazel") == []
    assert list(workspace_root.iterdir()) == []


def test_stop_marks_remaining_targets_not_run(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_AIDER_FIX", "0")

    report = migrate_repository(_config(upstream_repo, tmp_path / "ws", [MATCHER, ROOT_BINARY], attempts=1))

    assert [target.status for target in report.targets] == [TargetStatus.FAILED, TargetStatus.NOT_RUN]
    assert report.targets[1].probes == 0
    assert len(fake_tools.calls("aider")) == 1


def test_continue_aggregates_failures(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_AIDER_FIX", "0")
    config = _config(
        upstream_repo, tmp_path / "ws", [MATCHER, ROOT_BINARY], attempts=1, on_exhaustion="continue"
    )

    report = migrate_repository(config)

    assert [target.status for target in report.targets] == [TargetStatus.FAILED, TargetStatus.FAILED]
    assert report.failed_targets == [MATCHER, ROOT_BINARY]
    assert len(fake_tools.calls("aider")) == 2


def test_report_serialises_to_json(upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools) -> None:
    report = migrate_repository(_config(upstream_repo, tmp_path / "ws", [MATCHER]))

    payload = json.loads(report.model_dump_json())

    assert payload["targets"][0]["status"] == "SUCCEEDED"
    assert payload["repository"] == upstream_repo.as_uri()
    assert MigrationReport.model_validate(payload).targets[0].label == MATCHER


def test_github_credentials_are_required_when_enabled(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools
) -> None:
    workspace_root = tmp_path / "ws"
    config = _config(
        upstream_repo, workspace_root, [MATCHER], repository={"use_github_credentials": True}
    )

    with pytest.raises(CredentialsError, match="GITHUB_USERNAME"):
        migrate_repository(config, env={})

    assert not workspace_root.exists()


def test_missing_executable_fails_before_cloning(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools
) -> None:
    workspace_root = tmp_path / "ws"
    config = _config(
        upstream_repo, workspace_root, [MATCHER], assistant={"executable": "no-such-aider-binary"}
    )

    with pytest.raises(CommandLaunchError, match="no-such-aider-binary"):
        migrate_repository(config)

    assert not workspace_root.exists()


def test_reset_on_failure_keeps_a_build_file_for_every_attempt(
    upstream_repo: Path, tmp_path: Path, fake_tools: FakeTools, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_AIDER_FIX", "0")
    workspace_root = tmp_path / "ws"
    config = _config(
        upstream_repo,
        workspace_root,
        [MATCHER],
        attempts=3,
        workspace={"keep": True, "reset_on_failure": True},
    )

    report = migrate_repository(config)

    [target] = report.targets
    assert target.status == TargetStatus.FAILED
    assert (target.probes, target.patch_invocations) == (4, 3)
    clone = _kept_clone(workspace_root)
    assert (clone / "crates" / "matcher" / "BUILD.bazel").read_text(encoding="utf-8") == PLACEHOLDER_MARKER
    stashes = run_git(clone, "stash", "list").splitlines()
    assert len(stashes) == 2
    assert all("bzm-temp-stash" in line for line in stashes)
