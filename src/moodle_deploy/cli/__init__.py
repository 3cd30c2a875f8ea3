"""
CLI layer for moodle-deploy.

Provides a Typer application whose commands delegate to the drivers in
``moodle_deploy.deploy.workflow``. This package handles only terminal
transport: argument parsing, confirmation, coloured output, and tables.

Entry point::

    moodle-deploy --help
"""

from moodle_deploy.cli.app import app

__all__ = ["app"]
