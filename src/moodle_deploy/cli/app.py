"""
Root Typer application for the moodle-deploy CLI.

Global options live on the root callback, which resolves the
``DeploySettings`` for the invocation, configures logging, and hands the
settings to every command through ``ctx.obj``.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from moodle_deploy.cli import stack
from moodle_deploy.core.config.settings import get_settings
from moodle_deploy.core.logging import configure_logging

app = Typer(
    name="moodle-deploy",
    help="moodle-deploy: run a Moodle + MySQL stack on a single Docker host.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("moodle-deploy")
        except PackageNotFoundError:
            from moodle_deploy import __version__ as v
        typer.echo(f"moodle-deploy {v}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    project_dir: Path | None = typer.Option(
        None, "--project-dir", "-C", help="Deployment directory (holds .env, db-data, backups).",
    ),
    env_file: Path | None = typer.Option(
        None, "--env-file", "-e", help="Configuration file, relative to the project directory.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON."),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """moodle-deploy CLI: install, reset and back up the Moodle stack."""
    updates: dict[str, object] = {}
    if project_dir is not None:
        updates["project_dir"] = project_dir
    if env_file is not None:
        updates["env_file"] = env_file
    if verbose:
        updates["log_level"] = "DEBUG"
    if log_json:
        updates["log_json"] = True

    settings = get_settings().model_copy(update=updates)
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    ctx.obj = settings


# ── Commands ─────────────────────────────────────────────────────────────

app.command("install")(stack.install)
app.command("reset")(stack.reset)
app.command("backup")(stack.backup)
app.command("status")(stack.status)
app.command("check")(stack.check)
app.command("compose")(stack.compose)


def run() -> None:
    app()
