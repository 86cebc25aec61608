"""Bazel label parsing.

Labels follow ``//<package>:<name>``. The package may be empty for targets
defined at the repository root (``//:ripgrep``), and ``//crates/grep`` is
shorthand for ``//crates/grep:grep``. External repository labels (``@repo``)
and relative labels are rejected because the migrator only edits build files
inside the checked out workspace.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, List

from .errors import TargetParseError

DEFAULT_BUILD_FILE = "BUILD.bazel"


@dataclass(frozen=True, slots=True)
class BuildTarget:
    """A buildable unit identified by package path and unit name."""

    package: str
    name: str

    @property
    def label(self) -> str:
        return f"//{self.package}:{self.name}"

    @property
    def package_dir(self) -> PurePosixPath:
        """Package directory relative to the workspace root."""
        return PurePosixPath(self.package) if self.package else PurePosixPath(".")

    def build_file(self, filename: str = DEFAULT_BUILD_FILE) -> str:
        """Repository-relative path of the build descriptor for this target."""
        if not self.package:
            return filename
        return (PurePosixPath(self.package) / filename).as_posix()

    @property
    def slug(self) -> str:
        return self.label.replace("/", "-").replace(":", "-").strip("-")

    def __str__(self) -> str:
        return self.label


def parse_target(label: str) -> BuildTarget:
    """Split ``label`` into a :class:`BuildTarget`.

    Raises :class:`TargetParseError` for anything that is not an absolute,
    in-repository label.
    """

    if not isinstance(label, str):
        raise TargetParseError(f"Target label must be a string, got {type(label).__name__}")
    text = label.strip()
    if not text.startswith("//"):
        raise TargetParseError(f"Target {label!r} must start with '//'")

    body = text[2:]
    if body.count(":") > 1:
        raise TargetParseError(f"Target {label!r} contains more than one ':'")

    if ":" in body:
        package, name = body.split(":", 1)
        if not name:
            raise TargetParseError(f"Target {label!r} has an empty name after ':'")
    else:
        package = body
        if not package:
            raise TargetParseError(f"Target {label!r} names neither a package nor a unit")
        name = package.rsplit("/", 1)[-1]

    if package:
        segments = package.split("/")
        if any(segment in {"", ".", ".."} for segment in segments):
            raise TargetParseError(f"Target {label!r} has an invalid package path {package!r}")

    return BuildTarget(package=package, name=name)


def parse_targets(labels: Iterable[str]) -> List[BuildTarget]:
    """Parse every label, preserving order."""
    return [parse_target(label) for label in labels]


__all__ = ["BuildTarget", "DEFAULT_BUILD_FILE", "parse_target", "parse_targets"]
