"""
CLI commands for the version ledger.

Usage::

    codecforge ledger check
    codecforge ledger check --json
"""

from __future__ import annotations

import json

import click

from codecforge.core.errors import CodecForgeError
from codecforge.ui.cli.common import fail, load_cli_config


@click.group()
def ledger() -> None:
    """Version ledger — pinned refs and checksums."""


@ledger.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def ledger_check(ctx: click.Context, as_json: bool) -> None:
    """Validate every ref and report catalog entries with no pin."""
    from codecforge.core.use_cases.build import check_ledger

    try:
        result = check_ledger(load_cli_config(ctx))
    except CodecForgeError as e:
        fail(e.diagnostic)
        return

    pins = result.ledger.pins
    if as_json:
        click.echo(json.dumps({
            "ok": result.ok,
            "source": result.ledger.source,
            "cache_version": result.ledger.cache_version,
            "last_updated": result.ledger.last_updated,
            "pins": {key: pin.model_dump(mode="json") for key, pin in sorted(pins.items())},
            "missing": result.missing,
        }, indent=2))
    else:
        click.secho(f"\n📌 {result.ledger.source}", fg="cyan", bold=True)
        if result.ledger.last_updated:
            click.echo(f"   Last updated: {result.ledger.last_updated}")
        click.echo(f"   CACHE_VERSION: {result.ledger.cache_version or '(unset)'}")
        click.echo()
        for key, pin in sorted(pins.items()):
            checksum = "sha256" if pin.checksum else "no checksum"
            click.echo(f"   • {key:<10} {pin.ref:<42} {pin.source_kind:<8} {checksum}")
        if result.missing:
            click.echo()
            click.secho("❌ No pin for: " + ", ".join(result.missing), fg="red", bold=True)
        else:
            click.echo()
            click.secho("✅ All refs are immutable and every dependency is pinned", fg="green")
        click.echo()

    if not result.ok:
        raise SystemExit(1)
