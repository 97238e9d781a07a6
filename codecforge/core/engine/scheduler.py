"""
Dependency scheduler — run targets on a bounded pool in prerequisite order.

A target is submitted only once every prerequisite in the same run is
``stamped``. When a prerequisite fails, its dependents are failed with a
"blocked by" diagnostic and never start; unrelated branches keep going.

The work function owns the target lifecycle: it must leave the target
``stamped`` or ``failed``. Exceptions escaping it are turned into a
failed target so one broken worker cannot stall the run.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from codecforge.core.errors import CodecForgeError
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.target import BuildTarget, TargetState
from codecforge.core.verification.diagnostics import blocked_diagnostic

logger = logging.getLogger(__name__)


class DependencyScheduler:
    """Bounded thread pool that respects ``prerequisites`` edges."""

    def __init__(self, max_workers: int | None = None):
        self.max_workers = max_workers or os.cpu_count() or 1

    def ready(self, targets: list[BuildTarget]) -> list[BuildTarget]:
        """Pending targets whose in-run prerequisites are all stamped."""
        by_name = {t.name: t for t in targets}
        ready = []
        for target in targets:
            if target.state != TargetState.PENDING:
                continue
            prereqs = [by_name[p] for p in target.prerequisites if p in by_name]
            if all(p.state == TargetState.STAMPED for p in prereqs):
                ready.append(target)
        return ready

    def block_dependents(self, targets: list[BuildTarget]) -> list[BuildTarget]:
        """Fail every pending target with a failed prerequisite (transitively)."""
        by_name = {t.name: t for t in targets}
        blocked: list[BuildTarget] = []
        changed = True
        while changed:
            changed = False
            for target in targets:
                if target.state != TargetState.PENDING:
                    continue
                for name in target.prerequisites:
                    prereq = by_name.get(name)
                    if prereq is not None and prereq.state == TargetState.FAILED:
                        logger.warning("%s blocked by failed prerequisite %s", target.name, name)
                        target.fail(blocked_diagnostic(target.name, name))
                        blocked.append(target)
                        changed = True
                        break
        return blocked

    def run(self, targets: list[BuildTarget], work: Callable[[BuildTarget], None]) -> list[BuildTarget]:
        """Run ``work`` for every target; returns the targets in input order."""
        if not targets:
            return targets

        running: dict[Future, BuildTarget] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="cf-build") as pool:
            while True:
                self.block_dependents(targets)
                submitted = {t.name for t in running.values()}
                for target in self.ready(targets):
                    if target.name in submitted:
                        continue
                    logger.debug("Scheduling %s", target.name)
                    running[pool.submit(work, target)] = target

                if not running:
                    break

                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in done:
                    target = running.pop(future)
                    self._settle(target, future)

        for target in targets:
            if target.state == TargetState.PENDING:
                # Unreachable with a validated catalog (no cycles)
                target.fail(Diagnostic(
                    gate="build",
                    kind="BuildError",
                    what=f"{target.name} was never scheduled",
                    root_cause="its prerequisites never completed",
                    fix="Check the catalog for a prerequisite cycle",
                ))
        return targets

    def _settle(self, target: BuildTarget, future: Future) -> None:
        try:
            future.result()
        except CodecForgeError as e:
            if not target.done:
                target.fail(e.diagnostic)
        except Exception as e:
            logger.exception("Worker for %s raised", target.name)
            if not target.done:
                target.fail(Diagnostic(
                    gate="build",
                    kind="BuildError",
                    what=f"{target.name}: unexpected error",
                    root_cause=str(e) or type(e).__name__,
                    fix="Re-run with --debug and report the traceback",
                ))
        if not target.done:
            target.fail(Diagnostic(
                gate="build",
                kind="BuildError",
                what=f"{target.name} finished in state {target.state.value}",
                root_cause="the build step returned without stamping or failing the target",
                fix="Re-run with --debug",
            ))
        marker = "✓" if target.state == TargetState.STAMPED else "✗"
        logger.info("%s %s → %s", marker, target.name, target.state.value)
