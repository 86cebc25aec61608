from __future__ import annotations

import os
import stat
import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


FAKE_BAZEL = textwrap.dedent(
    """\
    #!/bin/sh
    # Fake bazel: a target builds once its BUILD.bazel contains FIXED.
    for arg; do label="$arg"; done
    echo "CALL bazel $1 $label" >> "$BZM_FAKE_LOG"
    pkg="${label#//}"
    pkg="${pkg%%:*}"
    file="${pkg:+$pkg/}BUILD.bazel"
    if [ "$1" = "query" ] && [ "${FAKE_QUERY_FAIL:-0}" = "1" ]; then
        echo "ERROR: no such target '$label'"
        exit 7
    fi
    if grep -q FIXED "$file" 2>/dev/null; then
        echo "Build completed successfully"
        exit 0
    fi
    echo "ERROR: $file: no such target '$label'"
    exit 1
    """
)

FAKE_AIDER = textwrap.dedent(
    """\
    #!/bin/sh
    # Fake aider: appends FIXED to the --file it was given.
    echo "CALL aider $1" >> "$BZM_FAKE_LOG"
    echo "HOME $HOME" >> "$BZM_FAKE_LOG"
    if [ "${FAKE_AIDER_EXIT:-0}" != "0" ]; then
        echo "aider: unknown model"
        exit "$FAKE_AIDER_EXIT"
    fi
    if [ "$1" = "--commit" ]; then
        git add -A && git commit -q -m "aider authored commit"
        exit $?
    fi
    file=""
    prev=""
    for arg; do
        if [ "$prev" = "--file" ]; then file="$arg"; fi
        prev="$arg"
    done
    if [ "${FAKE_AIDER_FIX:-1}" = "1" ]; then
        echo "# FIXED" >> "$file"
        echo "Applied edit to $file"
    else
        echo "No changes made to $file"
    fi
    """
)


@dataclass(slots=True)
class FakeTools:
    """Shell stand-ins for bazel and aider placed at the front of ``PATH``."""

    bin_dir: Path
    log_path: Path

    def lines(self) -> list[str]:
        if not self.log_path.exists():
            return []
        return self.log_path.read_text(encoding="utf-8").splitlines()

    def calls(self, prefix: str) -> list[str]:
        return [line for line in self.lines() if line.startswith(f"CALL {prefix}")]

    def homes(self) -> list[str]:
        return [line[len("HOME ") :] for line in self.lines() if line.startswith("HOME ")]


def _write_script(path: Path, body: str) -> None:
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture(autouse=True)
def git_identity(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give git commits a deterministic identity regardless of host config."""

    monkeypatch.setenv("GIT_AUTHOR_NAME", "Bazel Migrator")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "migrator@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Bazel Migrator")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "migrator@example.com")


@pytest.fixture()
def fake_tools(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeTools:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    _write_script(bin_dir / "bazel", FAKE_BAZEL)
    _write_script(bin_dir / "aider", FAKE_AIDER)
    log_path = tmp_path / "calls.log"
    monkeypatch.setenv("BZM_FAKE_LOG", str(log_path))
    monkeypatch.setenv("PATH", os.pathsep.join([str(bin_dir), os.environ.get("PATH", "")]))
    return FakeTools(bin_dir=bin_dir, log_path=log_path)


def run_git(root: Path, *args: str) -> str:
    process = subprocess.run(
        ["git", *args],
        cwd=root,
        check=True,
        capture_output=True,
        text=True,
    )
    return process.stdout


@pytest.fixture()
def upstream_repo(tmp_path: Path) -> Path:
    """A small Rust-like repository with one crate and no Bazel files yet."""

    root = tmp_path / "upstream"
    root.mkdir()
    run_git(root, "init")
    (root / "MODULE.bazel").write_text('module(name = "demo")\n', encoding="utf-8")
    crate = root / "crates" / "matcher"
    (crate / "src").mkdir(parents=True)
    (crate / "Cargo.toml").write_text('[package]\nname = "grep-matcher"\n', encoding="utf-8")
    (crate / "src" / "lib.rs").write_text("pub fn is_match() -> bool { true }\n", encoding="utf-8")
    (root / "Cargo.toml").write_text('[workspace]\nmembers = ["crates/*"]\n', encoding="utf-8")
    run_git(root, "add", ".")
    run_git(root, "commit", "-m", "Initial upstream state")
    return root
