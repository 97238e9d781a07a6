"""
Build use case — from command-line intent to a PipelineReport.

Loads the config, the version ledger, the dependency catalog and the
platform descriptor, wires the adapter registry and the toolbox, and
hands everything to a Pipeline. Input errors (bad ledger refs, unknown
platform, invalid config) raise CodecForgeError before any work starts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from codecforge.adapters.mock import MockAdapter
from codecforge.adapters.registry import AdapterRegistry
from codecforge.adapters.source.fetch import SourceFetcher
from codecforge.core.catalog import DependencyRegistry
from codecforge.core.config.loader import BuildConfig, ConfigError, load_config
from codecforge.core.config.platform_loader import discover_platforms, load_platform
from codecforge.core.engine.pipeline import SELECT_ALL, BuildLayout, Pipeline, PipelineReport
from codecforge.core.ledger import VersionLedger
from codecforge.core.models.dependency import LicenseTier
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.stamp import Stamp
from codecforge.core.persistence.stamps import StampStore
from codecforge.core.verification.probes import Toolbox

logger = logging.getLogger(__name__)


@dataclass
class BuildRequest:
    """What the user asked for."""

    platform_id: str
    tier: str = LicenseTier.FREE.value
    selection: str = SELECT_ALL
    jobs: int | None = None
    mode: str | None = None          # None = config failure_mode
    mock: bool = False


def load_catalog(config: BuildConfig) -> DependencyRegistry:
    """The configured catalog file, or the built-in one."""
    path = config.catalog_path
    if path is not None:
        logger.info("Using dependency catalog %s", path)
        return DependencyRegistry.from_file(path)
    return DependencyRegistry.builtin()


def load_ledger(config: BuildConfig) -> VersionLedger:
    """Load the version ledger named by the config.

    Raises:
        ConfigError: If the ledger file does not exist.
        InvalidRefError: If any pin is a mutable ref.
    """
    path = config.versions_path
    if not path.is_file():
        raise ConfigError(
            f"Version ledger not found: {path}",
            fix=f"Create {path.name} or set 'versions_file' in codecforge.yml",
        )
    return VersionLedger.load(path)


def build_pipeline(
    request: BuildRequest,
    config: BuildConfig | None = None,
    adapters: AdapterRegistry | None = None,
    toolbox: Toolbox | None = None,
) -> Pipeline:
    """Assemble a Pipeline for ``request``.

    Args:
        request: Platform, tier, selection and overrides.
        config: Build config (default: discovered codecforge.yml).
        adapters: Pre-configured adapter registry (default: real adapters,
            or a mock registry when ``request.mock``).
        toolbox: Inspection tools (default: the real ones).
    """
    config = config or load_config()
    tier = LicenseTier.parse(request.tier)
    ledger = load_ledger(config)
    catalog = load_catalog(config)
    platform = load_platform(request.platform_id, config.platforms_path)

    if adapters is None:
        layout = BuildLayout(config.build_root_path, platform.id, tier)
        fetcher = SourceFetcher(
            layout.sources,
            retries=config.fetch_retries,
            backoff=config.fetch_backoff,
        )
        adapters = AdapterRegistry.default(fetcher)
        if request.mock:
            adapters.set_mock_mode(True, MockAdapter())

    return Pipeline(
        registry=catalog,
        ledger=ledger,
        platform=platform,
        tier=tier,
        adapters=adapters,
        toolbox=toolbox or Toolbox(),
        build_root=config.build_root_path,
        jobs=request.jobs or config.jobs,
        timeout=config.timeout,
        emulated_timeout_factor=config.emulated_timeout_factor,
        failure_mode=request.mode or config.failure_mode,
    )


def run_build(request: BuildRequest, config: BuildConfig | None = None, **kwargs) -> PipelineReport:
    """Build ``request.selection``; gate failures come back in the report."""
    pipeline = build_pipeline(request, config, **kwargs)
    report = pipeline.run(request.selection)
    if report.ok:
        logger.info(
            "Build %s/%s OK: %d built, %d stamp hits",
            report.platform, report.tier, len(report.built), len(report.stamp_hits),
        )
    return report


def plan_build(request: BuildRequest, config: BuildConfig | None = None, **kwargs) -> PipelineReport:
    """Dry run: resolve the ActiveSet, order, stamp status and flags."""
    return build_pipeline(request, config, **kwargs).plan(request.selection)


def list_platforms(config: BuildConfig | None = None) -> list[PlatformDescriptor]:
    """Every known platform (built-in plus overrides), by id."""
    config = config or load_config()
    platforms = discover_platforms(config.platforms_path)
    return [platforms[pid] for pid in sorted(platforms)]


def stamp_store(platform_id: str, tier: str, config: BuildConfig | None = None) -> StampStore:
    """The stamp store of one (platform, tier) build directory."""
    config = config or load_config()
    platform = load_platform(platform_id, config.platforms_path)
    layout = BuildLayout(config.build_root_path, platform.id, LicenseTier.parse(tier))
    return StampStore(layout.stamps)


def list_stamps(platform_id: str, tier: str, config: BuildConfig | None = None) -> list[Stamp]:
    return stamp_store(platform_id, tier, config).list()


def clear_stamps(platform_id: str, tier: str, config: BuildConfig | None = None) -> int:
    """Delete every stamp of a build directory; returns the count removed."""
    return stamp_store(platform_id, tier, config).clear()


@dataclass
class LedgerCheck:
    """Result of validating the ledger against the catalog."""

    ledger: VersionLedger
    missing: list[str]

    @property
    def ok(self) -> bool:
        return not self.missing


def check_ledger(config: BuildConfig | None = None) -> LedgerCheck:
    """Load the ledger (refs validated on load) and list unpinned catalog entries."""
    config = config or load_config()
    ledger = load_ledger(config)
    catalog = load_catalog(config)
    names = [*catalog.names(), catalog.consumer.ledger_name]
    missing = [name for name in names if name not in ledger]
    if missing:
        logger.warning("Ledger has no pin for: %s", ", ".join(missing))
    return LedgerCheck(ledger=ledger, missing=missing)
