"""Helpers shared by the CLI command modules."""

from __future__ import annotations

import sys

import click

from codecforge.core.config.loader import BuildConfig, load_config
from codecforge.core.models.diagnostic import Diagnostic


def fail(diagnostic: Diagnostic) -> None:
    """Print a rendered diagnostic on stderr and exit 1."""
    click.echo(diagnostic.render(), err=True)
    sys.exit(1)


def load_cli_config(ctx: click.Context) -> BuildConfig:
    """Load codecforge.yml (explicit --config, or discovered)."""
    return load_config(ctx.obj.get("config_path"))
