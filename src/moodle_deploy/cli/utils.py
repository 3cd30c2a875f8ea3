"""
CLI utility helpers: output formatting and error reporting.
"""

from __future__ import annotations

import json
from typing import NoReturn

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from moodle_deploy.core.errors import DeployError
from moodle_deploy.deploy.results import ServiceStatus

console = Console()
err_console = Console(stderr=True)

_STATUS_STYLES = {
    "running": "green",
    "healthy": "green bold",
    "starting": "yellow",
    "unhealthy": "red",
    "exited": "red",
    "not_found": "dim",
}


def fail(error: DeployError, *, json_out: bool = False) -> NoReturn:
    """Report *error* and exit with its status.

    With *json_out* the error is written to stdout as ``{"error": {...}}``
    so a caller parsing ``--json`` output gets a document on failure too.
    """
    if json_out:
        typer.echo(json.dumps({"error": error.to_dict()}, indent=2))
        raise typer.Exit(code=error.exit_code)
    err_console.print(f"[bold red]✗ {type(error).__name__}:[/] {escape(error.message)}")
    raise typer.Exit(code=error.exit_code)


def output_json(model: BaseModel) -> None:
    typer.echo(model.model_dump_json(indent=2))


def print_services(services: list[ServiceStatus], *, title: str = "Services") -> None:
    """Render services as a Rich table."""
    table = Table(title=title)
    table.add_column("Service", style="bold")
    table.add_column("Status")
    table.add_column("Container")
    table.add_column("Image")
    table.add_column("Ports")

    for svc in services:
        style = _STATUS_STYLES.get(svc.status, "white")
        table.add_row(
            svc.name,
            f"[{style}]{svc.status}[/{style}]",
            svc.container_name or "—",
            svc.image or "—",
            svc.ports or "—",
        )

    console.print(table)


def print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        err_console.print(f"[yellow]⚠ {escape(warning)}[/]")
