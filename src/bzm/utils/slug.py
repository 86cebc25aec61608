"""Name helpers for branches, worktrees and temporary directories."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Pattern

_UNSAFE_PATTERN: Pattern[str] = re.compile(r"[^A-Za-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")

BRANCH_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%SZ"


def sanitize_path(value: str) -> str:
    """Replace path separators and label colons with hyphens.

    ``openrouter/openai/gpt-5`` becomes ``openrouter-openai-gpt-5``.
    """
    return value.replace("/", "-").replace(":", "-")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 80) -> str:
    """Collapse ``value`` into a filesystem-friendly token."""
    slug = _HYPHEN_COLLAPSE.sub("-", _UNSAFE_PATTERN.sub("-", (value or "").strip())).strip("-")
    if not slug:
        slug = fallback
    if len(slug) <= max_length:
        return slug

    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


def run_branch_name(model: str, *, now: datetime | None = None) -> str:
    """Branch isolating one run: ``<model>-<UTC timestamp>``."""
    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).strftime(BRANCH_TIMESTAMP_FORMAT)
    return f"{slugify(sanitize_path(model), fallback='model')}-{stamp}"


def model_branch_name(base_branch: str, model: str) -> str:
    """Per-model branch derived from the branch the fan-out starts from."""
    return f"{base_branch}-{sanitize_path(model)}"


__all__ = ["model_branch_name", "run_branch_name", "sanitize_path", "slugify"]
