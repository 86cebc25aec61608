"""CLI commands for migrating repositories to Bazel with an AI assistant."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    RunConfig,
    apply_overrides,
    default_config_data,
    load_config,
    write_config,
)
from .errors import MigratorError
from .fanout import fan_out
from .migrator import MigrationReport, TargetStatus, migrate_repository
from .tools.vcs import GitError

APP_HELP = "Migrate a repository to Bazel one target at a time using aider."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
EXIT_TARGET_FAILED = 1
EXIT_ENVIRONMENT = 2

app = typer.Typer(help=APP_HELP)


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}", param_hint="--log-level")
    logging.basicConfig(level=numeric, format=LOG_FORMAT)


def _load(config: str, **overrides: object) -> RunConfig:
    try:
        return apply_overrides(load_config(Path(config)), **overrides)
    except MigratorError as error:
        typer.echo(f"Configuration error: {error}")
        raise typer.Exit(code=EXIT_ENVIRONMENT) from error


def _render_report(report: MigrationReport) -> None:
    """Pretty-print a migration report."""
    typer.echo(f"Model: {report.model}")
    typer.echo(f"Repository: {report.repository}")
    if report.branch:
        typer.echo(f"Branch: {report.branch}")
    for target in report.targets:
        line = f"- {target.label}: {target.status.value}"
        if target.status != TargetStatus.NOT_RUN:
            line += f" (probes {target.probes}, patches {target.patch_invocations}"
            if target.patch_failures:
                line += f", failed patches {target.patch_failures}"
            line += ")"
        if target.commit:
            line += f" commit {target.commit}"
        typer.echo(line)
    outcome = "success" if report.succeeded else "failure"
    typer.echo(f"Outcome: {outcome}")


@app.command()
def run(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the run configuration file (defaults apply when missing).",
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Assistant model identifier, e.g. openrouter/openai/gpt-5-mini.",
    ),
    attempts: Optional[int] = typer.Option(
        None,
        "--attempts",
        "-n",
        min=1,
        help="Number of patch attempts per target.",
    ),
    target: List[str] = typer.Option(
        None,
        "--target",
        "-t",
        help="Bazel label to migrate (repeatable, replaces the configured list).",
    ),
    continue_on_failure: bool = typer.Option(
        False,
        "--continue-on-failure",
        help="Keep going after a target exhausts its attempts.",
    ),
    keep_workspace: bool = typer.Option(
        False,
        "--keep-workspace",
        help="Do not delete the temporary clone and assistant home.",
    ),
    report_path: Optional[Path] = typer.Option(
        None,
        "--report",
        help="Write the JSON migration report to this path.",
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Clone the repository and run the build-edit loop for every target."""
    _configure_logging(log_level)
    run_config = _load(
        config,
        model=model,
        attempts=attempts,
        targets=list(target) if target else None,
        on_exhaustion="continue" if continue_on_failure else None,
        **{"workspace.keep": True if keep_workspace else None},
    )

    try:
        report = migrate_repository(run_config)
    except (MigratorError, GitError) as error:
        typer.echo(f"Run aborted: {error}")
        raise typer.Exit(code=EXIT_ENVIRONMENT) from error

    _render_report(report)
    if report_path is not None:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        typer.echo(f"Report written to {report_path}")
    if not report.succeeded:
        raise typer.Exit(code=EXIT_TARGET_FAILED)


@app.command()
def fanout(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the run configuration file (defaults apply when missing).",
    ),
    model: List[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to run (repeatable, replaces fanout.models).",
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Migrate the current checkout once per model in dedicated worktrees."""
    _configure_logging(log_level)
    run_config = _load(config)

    try:
        reports: Dict[str, MigrationReport] = fan_out(run_config, list(model) if model else None)
    except (MigratorError, GitError) as error:
        typer.echo(f"Fan-out aborted: {error}")
        raise typer.Exit(code=EXIT_ENVIRONMENT) from error

    for report in reports.values():
        _render_report(report)
    if not all(report.succeeded for report in reports.values()):
        raise typer.Exit(code=EXIT_TARGET_FAILED)


@app.command()
def targets(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the run configuration file (defaults apply when missing).",
    ),
) -> None:
    """List the configured targets and the build file each one edits."""
    run_config = _load(config)
    typer.echo(f"Repository: {run_config.repository.url}")
    for build_target in run_config.build_targets:
        typer.echo(f"- {build_target.label} -> {build_target.build_file(run_config.build.build_file)}")


@app.command("init-config")
def init_config(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Where to write the configuration file.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write the default configuration so it can be edited."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"{config_path} already exists; pass --force to overwrite.")
        raise typer.Exit(code=1)
    write_config(config_path, default_config_data())
    typer.echo(f"Created configuration at {config_path}.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
