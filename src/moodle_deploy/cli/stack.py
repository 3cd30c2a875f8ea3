"""
CLI: stack lifecycle commands.

Usage::

    moodle-deploy install            # load .env, preflight, deploy
    moodle-deploy reset              # wipe database files and redeploy (asks first)
    moodle-deploy reset --yes
    moodle-deploy backup             # backups/backup_<timestamp>/
    moodle-deploy status             # service table
    moodle-deploy check              # which tools / config are in place
    moodle-deploy compose -o docker-compose.yml
"""

from __future__ import annotations

import os
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from moodle_deploy.cli.utils import (
    console,
    err_console,
    fail,
    output_json,
    print_services,
    print_warnings,
)
from moodle_deploy.core.config.loader import load_environment, parse_env_file
from moodle_deploy.core.config.settings import DeploySettings
from moodle_deploy.core.errors import DeployError
from moodle_deploy.deploy import workflow
from moodle_deploy.deploy.config import StackConfig
from moodle_deploy.deploy.container import DockerOrchestrator
from moodle_deploy.deploy.preflight import check_dependencies, probe_tools, required_tools
from moodle_deploy.deploy.results import DeploymentResult
from moodle_deploy.deploy.topology import APP_SERVICE


def _settings(ctx: typer.Context) -> DeploySettings:
    return ctx.obj


def _load_stack(settings: DeploySettings) -> StackConfig:
    """Export the .env into the process and validate it."""
    load_environment(settings.env_path)
    return StackConfig.from_env(os.environ)


def _print_deployment(result: DeploymentResult, log_tail: int) -> None:
    if result.app_logs:
        console.print(f"[bold]Last {log_tail} lines of {APP_SERVICE.container_name} logs:[/]")
        console.print(result.app_logs.rstrip(), markup=False, highlight=False)
    print_warnings(result.warnings)
    print_services(result.services)


# ── install ──────────────────────────────────────────────────────────────


def install(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="Output the result as JSON."),
) -> None:
    """Load the .env, check tools, pull the image and (re)start the stack."""
    settings = _settings(ctx)
    try:
        config = _load_stack(settings)
        check_dependencies(required_tools(settings))
        if not json_out:
            console.print(f"[bold green]▲ install[/] image: {escape(config.moodle_image)}")
        orchestrator = DockerOrchestrator(settings, config.to_environment())
        result = workflow.deploy(config, orchestrator, settings)
    except DeployError as exc:
        fail(exc, json_out=json_out)

    if json_out:
        output_json(result)
        return
    _print_deployment(result, settings.log_tail)
    console.print(f"\n[bold]Moodle should be available at:[/] {result.url}")


# ── reset ────────────────────────────────────────────────────────────────


def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    json_out: bool = typer.Option(False, "--json", help="Output the result as JSON."),
) -> None:
    """Stop the stack, DELETE all database files, and install again."""
    settings = _settings(ctx)
    try:
        config = _load_stack(settings)
        check_dependencies(required_tools(settings))
    except DeployError as exc:
        fail(exc, json_out=json_out)

    if not yes:
        typer.confirm(
            f"This permanently deletes every file under {settings.db_data_path}. Continue?",
            abort=True,
        )

    if not json_out:
        console.print("[bold yellow]↻ reset[/]")
    try:
        orchestrator = DockerOrchestrator(settings, config.to_environment())
        result = workflow.reset(config, orchestrator, settings)
    except DeployError as exc:
        fail(exc, json_out=json_out)

    if json_out:
        output_json(result)
        return
    console.print(f"Removed {result.entries_removed} entries from {result.data_dir}")
    if result.deployment:
        _print_deployment(result.deployment, settings.log_tail)
        console.print(f"\n[bold]Moodle should be available at:[/] {result.deployment.url}")


# ── backup ───────────────────────────────────────────────────────────────


def backup(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="Output the manifest as JSON."),
) -> None:
    """Copy the database files and archive the Moodle volume."""
    settings = _settings(ctx)
    try:
        check_dependencies(required_tools(settings, compose=False))
        result = workflow.backup(DockerOrchestrator(settings), settings)
    except DeployError as exc:
        fail(exc, json_out=json_out)

    if json_out:
        output_json(result)
        return
    print_warnings(result.warnings)
    console.print(f"[green]✓ Backup complete:[/] {result.path}")


# ── status ───────────────────────────────────────────────────────────────


def status(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the state of the db and app services."""
    settings = _settings(ctx)
    environment: dict[str, str] = {}
    try:
        if settings.env_path.is_file():
            environment = parse_env_file(settings.env_path)
        check_dependencies(required_tools(settings))
        result = workflow.status(DockerOrchestrator(settings, environment), environment)
    except DeployError as exc:
        fail(exc, json_out=json_out)

    if json_out:
        output_json(result)
        return
    print_services(result.services)
    console.print(f"\n{result.summary}")


# ── check ────────────────────────────────────────────────────────────────


def check(ctx: typer.Context) -> None:
    """Report which tools and configuration are in place."""
    settings = _settings(ctx)

    table = Table(title="moodle-deploy check")
    table.add_column("Check", style="bold cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Details", style="dim")

    ok = True
    for probe in probe_tools(required_tools(settings)):
        ok = ok and probe.found
        table.add_row(
            probe.tool,
            "[green]OK[/]" if probe.found else "[red]MISSING[/]",
            probe.path or "not on PATH",
        )

    env_path = settings.env_path
    if not env_path.is_file():
        ok = False
        table.add_row(".env", "[red]MISSING[/]", str(env_path))
    else:
        try:
            config = StackConfig.from_env(parse_env_file(env_path))
        except DeployError as exc:
            ok = False
            table.add_row(".env", "[red]INVALID[/]", escape(exc.message))
        else:
            table.add_row(".env", "[green]OK[/]", f"{config.moodle_image} on port {config.moodle_port}")

    console.print(table)
    if not ok:
        raise typer.Exit(code=1)


# ── compose ──────────────────────────────────────────────────────────────


def compose(
    ctx: typer.Context,
    output: Path | None = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout."),
) -> None:
    """Render the compose file for the db + app topology."""
    settings = _settings(ctx)
    if output is None:
        typer.echo(workflow.render_topology(settings), nl=False)
        return
    path = workflow.write_topology(settings.model_copy(update={"compose_file": output.resolve()}))
    err_console.print(f"[green]✓ Wrote[/] {path}")
