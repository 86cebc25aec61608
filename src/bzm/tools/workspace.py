"""Ephemeral workspaces for migration runs.

A run owns two temporary directories: the clone being migrated and a fake
``HOME`` for the assistant so its configuration and caches never leak
between runs. Both are removed when the context manager exits, whatever the
outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

import logging
import os
import shutil
import tempfile

from ..errors import CredentialsError, WorkspaceError
from ..targets import DEFAULT_BUILD_FILE, BuildTarget
from ..utils.slug import slugify

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "# created by bazel-migrator\n"


@dataclass(slots=True)
class RepositorySource:
    """Clone URL plus any secrets embedded in it."""

    url: str
    secrets: Tuple[str, ...] = ()

    @property
    def display_url(self) -> str:
        text = self.url
        for secret in self.secrets:
            text = text.replace(secret, "***")
        return text


def authenticated_source(url: str, env: Mapping[str, str] | None = None) -> RepositorySource:
    """Embed ``GITHUB_USERNAME``/``GITHUB_TOKEN`` from ``env`` into ``url``."""

    environ = os.environ if env is None else env
    username = environ.get("GITHUB_USERNAME")
    if username is None:
        raise CredentialsError("Did not find GITHUB_USERNAME in env")
    token = environ.get("GITHUB_TOKEN")
    if token is None:
        raise CredentialsError("Did not find GITHUB_TOKEN in env")

    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        raise CredentialsError(f"Could not parse url {url!r}")
    encoded_user = quote(username, safe="")
    encoded_token = quote(token, safe="")
    netloc = f"{encoded_user}:{encoded_token}@{parts.hostname}"
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    authed = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    secrets = tuple(secret for secret in {token, encoded_token} if secret)
    return RepositorySource(url=authed, secrets=secrets)


def ensure_build_file(root: Path, target: BuildTarget, filename: str = DEFAULT_BUILD_FILE) -> str:
    """Make sure ``target``'s package has a build file and return its relative path.

    A missing file is created with a marker comment so the assistant has a
    concrete file to edit. A missing package directory is fatal.
    """

    package_dir = root / target.package_dir
    if not package_dir.is_dir():
        raise WorkspaceError(
            f"Directory {target.package_dir.as_posix()} for target {target.label!r} does not exist"
        )

    relative = target.build_file(filename)
    build_path = root / relative
    if build_path.exists():
        return relative

    build_path.write_text(PLACEHOLDER_MARKER, encoding="utf-8")
    LOGGER.info("Created placeholder %s for target %s", relative, target.label)
    return relative


@dataclass(slots=True)
class EphemeralWorkspace:
    """Context manager owning the clone directory and the assistant home."""

    label: str
    base_dir: Path | None = None
    keep: bool = False
    repo_dir: Path | None = field(default=None, init=False)
    assistant_home: Path | None = field(default=None, init=False)

    def __enter__(self) -> "EphemeralWorkspace":
        base = str(self.base_dir) if self.base_dir is not None else None
        if self.base_dir is not None:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        try:
            self.assistant_home = Path(tempfile.mkdtemp(prefix="aider-home-", dir=base))
            prefix = f"{slugify(self.label, fallback='repo', max_length=60)}-"
            self.repo_dir = Path(tempfile.mkdtemp(prefix=prefix, dir=base))
        except OSError as error:
            self.cleanup()
            raise WorkspaceError(f"Failed to create temporary workspace: {error}") from error
        LOGGER.info("Workspace %s, assistant home %s", self.repo_dir, self.assistant_home)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def clone_dir(self) -> Path:
        """Destination for ``git clone`` (must not exist before cloning)."""
        if self.repo_dir is None:
            raise WorkspaceError("Workspace has not been entered")
        return self.repo_dir / "repo"

    def cleanup(self) -> None:
        for path in (self.repo_dir, self.assistant_home):
            if path is None:
                continue
            if self.keep:
                LOGGER.info("Keeping %s", path)
                continue
            shutil.rmtree(path, ignore_errors=True)
            LOGGER.debug("Removed %s", path)


__all__ = [
    "EphemeralWorkspace",
    "PLACEHOLDER_MARKER",
    "RepositorySource",
    "authenticated_source",
    "ensure_build_file",
]
