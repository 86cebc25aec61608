"""Run configuration for migration runs.

Configuration lives in a YAML file (``bzm.yaml`` by default). Every section
is optional; missing values fall back to the ripgrep migration defaults
below. The file is validated with Pydantic so typos surface as errors
instead of being silently ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .targets import DEFAULT_BUILD_FILE, BuildTarget, parse_target, parse_targets

DEFAULT_CONFIG_NAME = "bzm.yaml"
DEFAULT_MODEL = "openrouter/openai/gpt-5-mini"
DEFAULT_REPOSITORY_URL = "https://github.com/dan-stowell/ripgrep"
DEFAULT_TARGETS: tuple[str, ...] = (
    "//crates/matcher:grep_matcher",
    "//crates/matcher:integration_test",
    "//crates/globset:globset",
    "//crates/cli:grep_cli",
    "//crates/regex:grep_regex",
    "//crates/searcher:grep_searcher",
    "//crates/pcre2:grep_pcre2",
    "//crates/ignore:ignore",
    "//crates/printer:grep_printer",
    "//crates/grep:grep",
    "//:ripgrep",
    "//:integration_test",
)
# OpenRouter weekly top programming models as of 2025-09-08.
DEFAULT_FANOUT_MODELS: tuple[str, ...] = (
    "openrouter/x-ai/grok-code-fast-1",
    "openrouter/anthropic/claude-sonnet-4",
    "openrouter/google/gemini-2.5-flash",
    "openrouter/openai/gpt-4.1-mini",
    "openrouter/google/gemini-2.5-pro",
    "openrouter/openai/gpt-5",
    "openrouter/qwen/qwen3-coder",
    "openrouter/openrouter/sonoma-sky-alpha",
    "openrouter/deepseek/deepseek-chat-v3.1",
    "openrouter/x-ai/grok-4",
)

PatchFailurePolicy = Literal["retry", "abort"]
ExhaustionPolicy = Literal["stop", "continue"]
CommitMode = Literal["git", "assistant"]


class ConfigSection(BaseModel):
    """Base model rejecting unknown keys."""

    model_config = ConfigDict(extra="forbid")


class RepositoryConfig(ConfigSection):
    url: str = DEFAULT_REPOSITORY_URL
    use_github_credentials: bool = False
    create_branch: bool = True
    depth: Optional[int] = Field(default=1, ge=1)


class BuildConfig(ConfigSection):
    executable: str = "bazel"
    use_query: bool = False
    build_file: str = DEFAULT_BUILD_FILE
    extra_args: List[str] = Field(default_factory=list)


class AssistantConfig(ConfigSection):
    executable: str = "aider"
    edit_format: str = "diff"
    read_files: List[str] = Field(default_factory=lambda: ["MODULE.bazel"])
    auto_test: bool = False
    commit_with: CommitMode = "git"
    extra_args: List[str] = Field(default_factory=list)


class WorkspaceConfig(ConfigSection):
    root: Optional[Path] = None
    keep: bool = False
    reset_on_failure: bool = False


class FanoutConfig(ConfigSection):
    models: List[str] = Field(default_factory=lambda: list(DEFAULT_FANOUT_MODELS))
    worktree_root: Path = Path("~/worktree")


class RunConfig(ConfigSection):
    """Complete description of a migration run."""

    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    targets: List[str] = Field(default_factory=lambda: list(DEFAULT_TARGETS))
    model: str = DEFAULT_MODEL
    attempts: int = Field(default=3, ge=1)
    patch_failure: PatchFailurePolicy = "retry"
    on_exhaustion: ExhaustionPolicy = "stop"
    build: BuildConfig = Field(default_factory=BuildConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    fanout: FanoutConfig = Field(default_factory=FanoutConfig)

    @field_validator("targets")
    @classmethod
    def _labels_parse(cls, value: List[str]) -> List[str]:
        for label in value:
            parse_target(label)
        return value

    @field_validator("model")
    @classmethod
    def _model_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model must be non-empty")
        return value.strip()

    @property
    def build_targets(self) -> List[BuildTarget]:
        return parse_targets(self.targets)


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "(root)"
        lines.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(lines)


def build_config(data: Dict[str, Any]) -> RunConfig:
    """Validate a raw mapping into a :class:`RunConfig`."""
    try:
        return RunConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration: {_format_validation_error(error)}") from error


def load_config(config_path: Path | None) -> RunConfig:
    """Load ``config_path``; a missing file yields the defaults."""
    if config_path is None or not config_path.exists():
        return RunConfig()

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {config_path}: {error}") from error
    except OSError as error:
        raise ConfigError(f"Failed to read config {config_path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    return build_config(data)


def apply_overrides(config: RunConfig, **overrides: Any) -> RunConfig:
    """Return a re-validated copy of ``config`` with non-``None`` overrides applied.

    Dotted keys address nested sections, e.g. ``{"workspace.keep": True}``.
    """
    data = config.model_dump()
    for key, value in overrides.items():
        if value is None:
            continue
        section = data
        *parents, leaf = key.split(".")
        for parent in parents:
            section = section.setdefault(parent, {})
        section[leaf] = value
    return build_config(data)


def default_config_data() -> Dict[str, Any]:
    """Return the defaults as plain YAML-serialisable data."""
    return RunConfig().model_dump(mode="json")


def write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


__all__ = [
    "AssistantConfig",
    "BuildConfig",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_MODEL",
    "DEFAULT_TARGETS",
    "FanoutConfig",
    "RepositoryConfig",
    "RunConfig",
    "WorkspaceConfig",
    "apply_overrides",
    "build_config",
    "default_config_data",
    "load_config",
    "write_config",
]
