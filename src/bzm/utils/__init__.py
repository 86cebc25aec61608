"""Utility helpers."""

from .slug import model_branch_name, run_branch_name, sanitize_path, slugify

__all__ = ["model_branch_name", "run_branch_name", "sanitize_path", "slugify"]
