"""
Pipeline — the central orchestration loop for one (platform, tier) build.

Stages:

    idle → resolving-active-set → building-dependencies → aggregate-verifying
         → building-consumer → final-verifying → done

``failed`` is reachable from every stage and carries the diagnostic of
the gate that stopped the run. The pipeline never raises a
CodecForgeError out of ``run``: the report holds the outcome, and every
run appends one RunRecord to the run ledger.

Flow:
    gate 1 → gate 2 → scheduler(build → gate 3 → stamp) → gate 4
           → consumer build → gate 5 → consumer stamp

A run whose inputs are all unchanged builds nothing: every target and
the consumer are stamp hits.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from codecforge.adapters.base import BuildContext, ConsumerContext
from codecforge.adapters.registry import AdapterRegistry
from codecforge.core.catalog import DependencyRegistry
from codecforge.core.errors import (
    ERROR_CLASSES,
    ArtifactVerificationError,
    BuildError,
    CodecForgeError,
    IsolationLeakWarning,
    MissingDependencyError,
    unknown_dependency,
)
from codecforge.core.engine.scheduler import DependencyScheduler
from codecforge.core.ledger import VersionLedger
from codecforge.core.licensing import LicenseResolver
from codecforge.core.models.dependency import LicenseTier
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.receipt import BuildReceipt
from codecforge.core.models.target import BuildTarget, TargetState
from codecforge.core.models.version import VersionPin
from codecforge.core.persistence.run_ledger import RunLedger, RunRecord
from codecforge.core.persistence.stamps import StampStore
from codecforge.core.verification.diagnostics import batch_diagnostic, receipt_diagnostic
from codecforge.core.verification.gates import (
    AggregateGate,
    ArtifactGate,
    FinalBinaryGate,
    ParseTimeGate,
    PreflightGate,
)
from codecforge.core.verification.probes import Toolbox

logger = logging.getLogger(__name__)

SELECT_ALL = "all"
SELECT_CODECS = "codecs"


class PipelineStage(str, Enum):
    IDLE = "idle"
    RESOLVING_ACTIVE_SET = "resolving-active-set"
    BUILDING_DEPENDENCIES = "building-dependencies"
    AGGREGATE_VERIFYING = "aggregate-verifying"
    BUILDING_CONSUMER = "building-consumer"
    FINAL_VERIFYING = "final-verifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BuildLayout:
    """Directory layout of one (platform, tier) build.

        <build_root>/<platform>-<tier>/{prefix,stamps,sources,logs}
    """

    build_root: Path
    platform_id: str
    tier: LicenseTier

    @property
    def root(self) -> Path:
        return self.build_root / f"{self.platform_id}-{self.tier.value}"

    @property
    def prefix(self) -> Path:
        return self.root / "prefix"

    @property
    def stamps(self) -> Path:
        return self.root / "stamps"

    @property
    def sources(self) -> Path:
        return self.root / "sources"

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    def ensure(self) -> None:
        for path in (self.prefix / "lib" / "pkgconfig", self.prefix / "include",
                     self.prefix / "bin", self.stamps, self.sources, self.logs):
            path.mkdir(parents=True, exist_ok=True)


@dataclass
class PipelineReport:
    """Outcome of a pipeline run (or plan)."""

    run_id: str = ""
    platform: str = ""
    tier: str = ""
    selection: str = SELECT_ALL
    mode: str = "strict"
    stage: PipelineStage = PipelineStage.IDLE
    failed_stage: PipelineStage | None = None

    targets: list[BuildTarget] = field(default_factory=list)
    stamp_status: dict[str, bool] = field(default_factory=dict)
    consumer_flags: list[str] = field(default_factory=list)
    consumer_receipt: BuildReceipt | None = None
    consumer_stamp_hit: bool = False
    binaries: list[str] = field(default_factory=list)
    warnings: list[IsolationLeakWarning] = field(default_factory=list)
    diagnostic: Diagnostic | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.stage == PipelineStage.DONE

    @property
    def order(self) -> list[str]:
        return [t.name for t in self.targets]

    @property
    def built(self) -> list[str]:
        return [t.name for t in self.targets if t.state == TargetState.STAMPED and not t.stamp_hit]

    @property
    def stamp_hits(self) -> list[str]:
        return [t.name for t in self.targets if t.stamp_hit]

    @property
    def failed(self) -> list[str]:
        return [t.name for t in self.targets if t.state == TargetState.FAILED]

    @property
    def status(self) -> str:
        return "ok" if self.ok else "failed"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "platform": self.platform,
            "tier": self.tier,
            "selection": self.selection,
            "mode": self.mode,
            "status": self.status,
            "stage": self.stage.value,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "targets": [
                {
                    "name": t.name,
                    "ref": t.pin.ref,
                    "state": t.state.value,
                    "stamp_hit": t.stamp_hit,
                    "stamped": self.stamp_status.get(t.name),
                    "diagnostic": t.diagnostic.model_dump(mode="json") if t.diagnostic else None,
                }
                for t in self.targets
            ],
            "built": self.built,
            "stamp_hits": self.stamp_hits,
            "failed": self.failed,
            "consumer_flags": self.consumer_flags,
            "consumer_stamp_hit": self.consumer_stamp_hit,
            "binaries": self.binaries,
            "warnings": [w.diagnostic.model_dump(mode="json") for w in self.warnings],
            "diagnostic": self.diagnostic.model_dump(mode="json") if self.diagnostic else None,
            "duration_ms": self.duration_ms,
        }


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


def error_for(diagnostic: Diagnostic) -> CodecForgeError:
    """Rebuild the typed error a diagnostic came from (BuildError if unknown)."""
    return ERROR_CLASSES.get(diagnostic.kind, BuildError)(diagnostic)


class Pipeline:
    """Drive the build of every active target and the consumer.

    Args:
        registry: Dependency catalog and consumer spec.
        ledger: Version pins.
        platform: Target platform descriptor.
        tier: License tier.
        adapters: Adapter registry (real or mock).
        toolbox: Inspection tools for the gates.
        build_root: Root of all build layouts.
        jobs: Worker threads (default: host core count).
        timeout: Time limit per target in seconds, shared by its steps.
        emulated_timeout_factor: Timeout multiplier for emulated platforms.
        failure_mode: "strict" or "triage".
        run_ledger: Where run records go (default: <build_root>/runs.ndjson).
    """

    def __init__(
        self,
        *,
        registry: DependencyRegistry,
        ledger: VersionLedger,
        platform: PlatformDescriptor,
        tier: LicenseTier | str,
        adapters: AdapterRegistry,
        toolbox: Toolbox,
        build_root: Path,
        jobs: int | None = None,
        timeout: float = 3600.0,
        emulated_timeout_factor: float = 4.0,
        failure_mode: str = "strict",
        run_ledger: RunLedger | None = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.platform = platform
        self.tier = LicenseTier.parse(tier)
        self.adapters = adapters
        self.toolbox = toolbox
        self.layout = BuildLayout(build_root, platform.id, self.tier)
        self.resolver = LicenseResolver(registry, ledger)
        self.stamps = StampStore(self.layout.stamps, cache_version=ledger.cache_version)
        self.scheduler = DependencyScheduler(jobs)
        self.jobs = self.scheduler.max_workers
        self.timeout = timeout * (emulated_timeout_factor if platform.emulated else 1.0)
        self.failure_mode = failure_mode
        self.run_ledger = run_ledger or RunLedger.for_build_root(build_root)

        self.parse_gate = ParseTimeGate()
        self.preflight_gate = PreflightGate(toolbox)
        self.artifact_gate = ArtifactGate(toolbox)
        self.aggregate_gate = AggregateGate(toolbox)
        self.final_gate = FinalBinaryGate(toolbox)

    # ── Selection ────────────────────────────────────────────────

    def select(self, selection: str = SELECT_ALL) -> list[BuildTarget]:
        """ActiveSet narrowed to ``selection``, in build order.

        Raises:
            UnknownDependencyError: If ``selection`` names a dependency that
                is not active for this tier and platform.
        """
        active = self.resolver.active_set(self.tier, self.platform)
        if selection in (SELECT_ALL, SELECT_CODECS):
            return active

        by_name = {t.name: t for t in active}
        if selection not in by_name:
            raise unknown_dependency(
                selection,
                [SELECT_ALL, SELECT_CODECS, *by_name],
                where=f"active set for {self.tier.value}/{self.platform.id}",
            )
        wanted: set[str] = set()
        pending = [selection]
        while pending:
            name = pending.pop()
            if name in wanted:
                continue
            wanted.add(name)
            pending.extend(by_name[name].prerequisites)
        return [t for t in active if t.name in wanted]

    def _includes_consumer(self, selection: str) -> bool:
        return selection == SELECT_ALL

    # ── Plan ─────────────────────────────────────────────────────

    def plan(self, selection: str = SELECT_ALL) -> PipelineReport:
        """Resolve the run without building anything.

        Raises:
            CodecForgeError: If gate 1 rejects the inputs.
        """
        report = self._new_report(selection, mode="plan")
        targets = self.select(selection)
        self.parse_gate.check(self.platform, targets)
        report.targets = targets
        report.stamp_status = {t.name: self.stamps.is_stamped(self.stamps.key_for(t)) for t in targets}
        if self._includes_consumer(selection):
            report.consumer_flags = self.resolver.consumer_flags(targets, self.platform, self.tier)
        return report

    # ── Run ──────────────────────────────────────────────────────

    def run(self, selection: str = SELECT_ALL) -> PipelineReport:
        """Build ``selection``; returns the report (never raises a gate error)."""
        start = time.monotonic()
        report = self._new_report(selection, mode=self.failure_mode)
        logger.info(
            "Pipeline %s: %s/%s target=%s mode=%s jobs=%d",
            report.run_id, self.platform.id, self.tier.value, selection, self.failure_mode, self.jobs,
        )
        try:
            self._run(report, selection)
            self._enter(report, PipelineStage.DONE)
        except CodecForgeError as e:
            self._fail(report, e.diagnostic)
        finally:
            report.duration_ms = int((time.monotonic() - start) * 1000)
            self._record(report)
        return report

    def _run(self, report: PipelineReport, selection: str) -> None:
        self._enter(report, PipelineStage.RESOLVING_ACTIVE_SET)
        targets = self.select(selection)
        report.targets = targets
        self.parse_gate.check(self.platform, targets)
        consumer_pin = None
        if self._includes_consumer(selection):
            consumer_pin = self.ledger.resolve(self.registry.consumer.ledger_name)
            self.parse_gate.check_pin(self.registry.consumer.ledger_name, consumer_pin.ref)
            report.consumer_flags = self.resolver.consumer_flags(targets, self.platform, self.tier)

        self.layout.ensure()
        report.warnings = self.preflight_gate.run(
            self.platform, self.layout.prefix, self.layout.sources / ".preflight",
        )

        self._enter(report, PipelineStage.BUILDING_DEPENDENCIES)
        self.scheduler.run(targets, self._build_one)
        failed = [t for t in targets if t.state == TargetState.FAILED]
        if failed:
            self._fail_targets(report, targets, failed)

        if consumer_pin is None:
            return

        self._enter(report, PipelineStage.AGGREGATE_VERIFYING)
        self.aggregate_gate.check(
            self.resolver.required_pkgconfig(targets),
            self.platform,
            self.layout.prefix,
            self._providers(),
        )

        self._enter(report, PipelineStage.BUILDING_CONSUMER)
        self._build_consumer(report, targets, consumer_pin)

    def _build_consumer(self, report: PipelineReport, targets: list[BuildTarget], consumer_pin: VersionPin) -> None:
        """Consumer stamp hit, or consumer build → gate 5 → consumer stamp."""
        spec = self.registry.consumer
        key = self.stamps.consumer_key(
            spec,
            consumer_pin,
            self.platform,
            report.consumer_flags,
            [self.stamps.key_for(t) for t in targets],
        )
        context = ConsumerContext(
            spec=spec,
            pin=consumer_pin,
            platform=self.platform,
            prefix=self.layout.prefix,
            sources_dir=self.layout.sources,
            log_dir=self.layout.logs,
            flags=report.consumer_flags,
            jobs=self.jobs,
            timeout=self.timeout,
        )
        with self.stamps.lock(key):
            if self.stamps.is_stamped(key) and all(p.is_file() for p in context.binary_paths):
                report.consumer_stamp_hit = True
                report.binaries = [str(p) for p in context.binary_paths]
                logger.info("= %s@%s (stamp hit)", spec.name, consumer_pin.ref)
                return

            receipt = self.adapters.build_consumer(context)
            report.consumer_receipt = receipt
            if not receipt.ok:
                raise error_for(receipt_diagnostic(receipt))
            report.binaries = [str(p) for p in context.binary_paths]

            self._enter(report, PipelineStage.FINAL_VERIFYING)
            self.final_gate.check(context.binary_paths, self.platform)
            self.stamps.record(key, spec.name, consumer_pin.ref, self.platform.id)

    def _fail_targets(self, report: PipelineReport, targets: list[BuildTarget], failed: list[BuildTarget]) -> None:
        failed_names = {t.name for t in failed}
        roots = [t for t in failed if not any(p in failed_names for p in t.prerequisites)]

        if self.failure_mode != "triage":
            raise error_for(roots[0].diagnostic)

        batch = batch_diagnostic([t.diagnostic for t in failed if t.diagnostic is not None])
        if self._includes_consumer(report.selection):
            try:
                self.aggregate_gate.check(
                    self.resolver.required_pkgconfig(targets),
                    self.platform,
                    self.layout.prefix,
                    self._providers(),
                )
            except MissingDependencyError as e:
                for check in e.diagnostic.failed_checks:
                    batch.failed(check.name, check.detail)
        raise error_for(batch)

    def _providers(self) -> dict[str, str]:
        return {pc: dep.name for pc, dep in self.registry.by_pkgconfig().items()}

    # ── One target ───────────────────────────────────────────────

    def _build_one(self, target: BuildTarget) -> None:
        """Stamp hit, or build → gate 3 → stamp. Leaves the target terminal."""
        prefix = self.layout.prefix
        key = self.stamps.key_for(target)
        with self.stamps.lock(key):
            if self.stamps.is_stamped(key):
                if target.library_path(prefix).is_file():
                    target.stamp_hit = True
                    target.transition(TargetState.STAMPED)
                    logger.info("= %s@%s (stamp hit)", target.name, target.pin.ref)
                    return
                logger.warning("%s is stamped but %s is missing, rebuilding", target.name, target.library_path(prefix))

            target.transition(TargetState.BUILDING)
            logger.info("Building %s@%s", target.name, target.pin.ref)
            context = BuildContext(
                target=target,
                prefix=prefix,
                sources_dir=self.layout.sources,
                log_dir=self.layout.logs,
                jobs=self.jobs,
                timeout=self.timeout,
            )
            receipt = self.adapters.build(context)
            if not receipt.ok:
                target.fail(receipt_diagnostic(receipt))
                return
            target.artifact = receipt.artifact
            target.transition(TargetState.BUILT)

            try:
                self.artifact_gate.check(target, prefix)
            except ArtifactVerificationError as e:
                e.diagnostic.log_path = e.diagnostic.log_path or receipt.log_path
                target.fail(e.diagnostic)
                return
            target.transition(TargetState.VERIFIED)

            self.stamps.stamp(key, target)
            target.transition(TargetState.STAMPED)

    # ── Bookkeeping ──────────────────────────────────────────────

    def _new_report(self, selection: str, mode: str) -> PipelineReport:
        return PipelineReport(
            run_id=generate_run_id(),
            platform=self.platform.id,
            tier=self.tier.value,
            selection=selection,
            mode=mode,
        )

    def _enter(self, report: PipelineReport, stage: PipelineStage) -> None:
        logger.info("Stage: %s", stage.value)
        report.stage = stage

    def _fail(self, report: PipelineReport, diagnostic: Diagnostic) -> None:
        logger.error("Pipeline failed during %s: %s", report.stage.value, diagnostic.what)
        report.failed_stage = report.stage
        report.stage = PipelineStage.FAILED
        report.diagnostic = diagnostic

    def _record(self, report: PipelineReport) -> None:
        self.run_ledger.write(RunRecord(
            run_id=report.run_id,
            platform=report.platform,
            tier=report.tier,
            selection=report.selection,
            mode=report.mode,
            status=report.status,
            stage=(report.failed_stage or report.stage).value,
            targets_total=len(report.targets),
            built=report.built,
            stamp_hits=report.stamp_hits,
            failed=report.failed,
            duration_ms=report.duration_ms,
            warnings=[w.diagnostic.what for w in report.warnings],
            error=report.diagnostic.what if report.diagnostic else None,
        ))

