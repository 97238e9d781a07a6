"""
codecforge — CLI entrypoint.

Usage:
    codecforge --help
    codecforge build linux-x64-glibc --tier gpl
    codecforge plan linux-arm64-musl --target dav1d
    codecforge platforms
    codecforge ledger check
    codecforge stamps list linux-x64-glibc
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from codecforge import __version__
from codecforge.core.errors import CodecForgeError
from codecforge.core.observability.logging_config import level_from_env, setup_logging
from codecforge.ui.cli.common import fail, load_cli_config

TIERS = ["free", "lgpl", "gpl"]


@click.group()
@click.version_option(version=__version__, prog_name="codecforge")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option("--verbose", "-v", is_flag=True, help="Log progress at INFO level.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to codecforge.yml (default: auto-detect).",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, verbose: bool, config_path: str | None) -> None:
    """codecforge — build static codec libraries and the program that links them."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    level = level_from_env(debug)
    if verbose and not debug:
        level = "INFO"
    setup_logging(level=level)


# ── build / plan ───────────────────────────────────────────────


def _target_options(func):
    func = click.option(
        "--target", "selection", default="all", show_default=True,
        help="all, codecs (dependencies only), or one dependency name.",
    )(func)
    func = click.option(
        "--tier", type=click.Choice(TIERS), default="free", show_default=True,
        help="License tier (cumulative).",
    )(func)
    func = click.argument("platform_id")(func)
    return func


@cli.command()
@_target_options
@click.option("--debug", "debug_flag", is_flag=True, help="Enable debug logging.")
@click.option("--jobs", "-j", type=click.IntRange(min=1), default=None, help="Parallel builds (default: cores).")
@click.option("--mode", type=click.Choice(["strict", "triage"]), default=None, help="Failure reporting mode.")
@click.option("--mock", is_flag=True, help="Use the mock adapter instead of real builds.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def build(
    ctx: click.Context,
    platform_id: str,
    tier: str,
    selection: str,
    debug_flag: bool,
    jobs: int | None,
    mode: str | None,
    mock: bool,
    as_json: bool,
) -> None:
    """Build every active dependency (and the consumer) for PLATFORM_ID."""
    from codecforge.core.use_cases.build import BuildRequest, run_build

    if debug_flag and not ctx.obj.get("debug"):
        setup_logging(level="DEBUG")

    request = BuildRequest(
        platform_id=platform_id, tier=tier, selection=selection, jobs=jobs, mode=mode, mock=mock,
    )
    try:
        report = run_build(request, load_cli_config(ctx))
    except CodecForgeError as e:
        fail(e.diagnostic)
        return

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)

    for warning in report.warnings:
        click.secho("⚠️  " + warning.diagnostic.what, fg="yellow", err=True)

    if not report.ok:
        if report.diagnostic is not None:
            fail(report.diagnostic)
        sys.exit(1)


def _print_report(report) -> None:
    click.secho(f"\n🔧 {report.platform} / {report.tier}  ({report.selection})", fg="cyan", bold=True)
    for target in report.targets:
        if target.stamp_hit:
            marker, color = "=", "white"
        elif target.state.value == "stamped":
            marker, color = "✓", "green"
        else:
            marker, color = "✗", "red"
        click.secho(f"   {marker} {target.name:<10} {target.pin.ref:<12} {target.state.value}", fg=color)
    if report.consumer_stamp_hit:
        click.secho("   = consumer binaries up to date (stamp hit)", fg="white")
    if report.binaries:
        click.echo()
        for binary in report.binaries:
            click.echo(f"   📦 {binary}")
    click.echo()
    status_color = "green" if report.ok else "red"
    click.secho(
        f"   {report.status}: {len(report.built)} built, {len(report.stamp_hits)} stamp hits, "
        f"{len(report.failed)} failed ({report.duration_ms} ms)",
        fg=status_color,
    )
    click.echo()


@cli.command()
@_target_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, platform_id: str, tier: str, selection: str, as_json: bool) -> None:
    """Show what a build of PLATFORM_ID would do, without building."""
    from codecforge.core.use_cases.build import BuildRequest, plan_build

    try:
        report = plan_build(
            BuildRequest(platform_id=platform_id, tier=tier, selection=selection),
            load_cli_config(ctx),
        )
    except CodecForgeError as e:
        fail(e.diagnostic)
        return

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    click.secho(f"\n📋 Plan: {report.platform} / {report.tier}  ({report.selection})", fg="cyan", bold=True)
    for i, target in enumerate(report.targets, 1):
        stamped = report.stamp_status.get(target.name)
        status = click.style("stamped", fg="green") if stamped else click.style("build", fg="yellow")
        click.echo(f"   {i:>2}. {target.name:<10} {target.pin.ref:<12} {status}")
    if report.consumer_flags:
        click.echo()
        click.secho("   Consumer flags:", fg="white", bold=True)
        for flag in report.consumer_flags:
            click.echo(f"     {flag}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def platforms(ctx: click.Context, as_json: bool) -> None:
    """List known platform descriptors."""
    from codecforge.core.use_cases.build import list_platforms

    try:
        descriptors = list_platforms(load_cli_config(ctx))
    except CodecForgeError as e:
        fail(e.diagnostic)
        return

    if as_json:
        click.echo(json.dumps([p.model_dump(mode="json") for p in descriptors], indent=2))
        return

    for p in descriptors:
        cross = f" cross={p.cross_prefix}" if p.is_cross else ""
        emulated = " (emulated)" if p.emulated else ""
        click.echo(f"   • {p.id:<20} {p.arch:<8} {p.linkage:<8}{cross}{emulated}")


# ── Register sub-command groups from codecforge/ui/cli/ ─────────

from codecforge.ui.cli.ledger import ledger  # noqa: E402
from codecforge.ui.cli.stamps import stamps  # noqa: E402

cli.add_command(ledger)
cli.add_command(stamps)


if __name__ == "__main__":
    cli()
