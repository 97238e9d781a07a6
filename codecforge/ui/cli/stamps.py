"""
CLI commands for build stamps.

Usage::

    codecforge stamps list linux-x64-glibc --tier gpl
    codecforge stamps clear linux-x64-glibc --tier gpl
"""

from __future__ import annotations

import json

import click

from codecforge.core.errors import CodecForgeError
from codecforge.ui.cli.common import fail, load_cli_config

_tier_option = click.option(
    "--tier", type=click.Choice(["free", "lgpl", "gpl"]), default="free", show_default=True,
    help="License tier of the build directory.",
)


@click.group()
def stamps() -> None:
    """Stamps — completion markers of built and verified targets."""


@stamps.command("list")
@click.argument("platform_id")
@_tier_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def stamps_list(ctx: click.Context, platform_id: str, tier: str, as_json: bool) -> None:
    """List the stamps of PLATFORM_ID's build directory."""
    from codecforge.core.use_cases.build import list_stamps

    try:
        found = list_stamps(platform_id, tier, load_cli_config(ctx))
    except CodecForgeError as e:
        fail(e.diagnostic)
        return

    if as_json:
        click.echo(json.dumps([s.model_dump(mode="json") for s in found], indent=2))
        return

    if not found:
        click.echo(f"No stamps for {platform_id}/{tier}.")
        return
    for stamp in found:
        click.echo(f"   • {stamp.dependency:<10} {stamp.ref:<42} {stamp.key[:12]}  {stamp.timestamp}")


@stamps.command("clear")
@click.argument("platform_id")
@_tier_option
@click.pass_context
def stamps_clear(ctx: click.Context, platform_id: str, tier: str) -> None:
    """Delete every stamp of PLATFORM_ID's build directory (forces a rebuild)."""
    from codecforge.core.use_cases.build import clear_stamps

    try:
        removed = clear_stamps(platform_id, tier, load_cli_config(ctx))
    except CodecForgeError as e:
        fail(e.diagnostic)
        return

    click.secho(f"🗑  Cleared {removed} stamp(s) for {platform_id}/{tier}", fg="yellow")
