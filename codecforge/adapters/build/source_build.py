"""
Shared build template for adapters that compile an upstream source tree.

    fetch + verify  →  steps()  →  ensure .pc  →  Artifact

Subclasses only describe their command steps. Fetching always completes
(including checksum verification) before the first step runs.
"""

from __future__ import annotations

import logging
import shutil
import time
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path

from codecforge.adapters.base import BuildAdapter, BuildContext
from codecforge.adapters.build.pkgconfig import ensure_pkgconfig
from codecforge.adapters.shell.command import CommandRunner, isolated_env
from codecforge.adapters.source.fetch import SourceFetcher
from codecforge.core.errors import CodecForgeError
from codecforge.core.models.receipt import BuildReceipt
from codecforge.core.models.target import Artifact

logger = logging.getLogger(__name__)


@dataclass
class BuildStep:
    """One command of a build (configure, build, install, ...)."""

    name: str
    cmd: list[str]
    cwd: Path


class SourceBuildAdapter(BuildAdapter):
    """Base for adapters that fetch a source tree and run commands in it."""

    def __init__(self, fetcher: SourceFetcher):
        self.fetcher = fetcher

    @abstractmethod
    def steps(self, context: BuildContext, source_dir: Path) -> list[BuildStep]:
        """The ordered commands that build and install ``context.target``."""

    def build(self, context: BuildContext) -> BuildReceipt:
        start = time.monotonic()
        is_valid, error = self.validate(context)
        if not is_valid:
            return BuildReceipt.failure(self.name, context.name, error=error, failed_step="validate")

        runner = CommandRunner.for_target(
            env=isolated_env(context.platform, context.prefix),
            log_path=context.log_path,
            time_limit=context.timeout,
        )

        try:
            source_dir = self.fetcher.fetch(context.pin, runner)
        except CodecForgeError as e:
            logger.error("%s: fetch failed: %s", context.name, e.diagnostic.what)
            return BuildReceipt.failure(
                self.name,
                context.name,
                error=e.diagnostic.what,
                error_kind=type(e).__name__,
                failed_step="fetch",
                log_path=str(context.log_path),
                metadata={"diagnostic": e.diagnostic.model_dump(mode="json")},
            )

        if context.dependency.source_subdir:
            source_dir = source_dir / context.dependency.source_subdir

        try:
            steps = self.steps(context, source_dir)
        except OSError as e:
            return BuildReceipt.failure(
                self.name,
                context.name,
                error=f"Cannot prepare build: {e}",
                failed_step="prepare",
                log_path=str(context.log_path),
            )

        for step in steps:
            logger.info("%s: %s", context.name, step.name)
            result = runner.run(step.cmd, cwd=step.cwd)
            if not result.ok:
                return BuildReceipt.failure(
                    self.name,
                    context.name,
                    error=result.describe(),
                    failed_step=step.name,
                    log_path=str(context.log_path),
                    duration_ms=int((time.monotonic() - start) * 1000),
                    metadata={"timed_out": result.timed_out, "output_tail": result.output[-2000:]},
                )

        return self.finish(context, start)

    def finish(self, context: BuildContext, start: float) -> BuildReceipt:
        """Guarantee the ``.pc`` file and describe what was installed."""
        pc_path, synthesized = ensure_pkgconfig(
            context.dependency, context.pin, context.platform, context.prefix,
        )
        artifact = Artifact(
            target=context.name,
            prefix=str(context.prefix),
            static_library=str(context.target.library_path(context.prefix)),
            pkgconfig_file=str(pc_path),
            version=context.pin.version,
            synthesized_pkgconfig=synthesized,
        )
        return BuildReceipt.success(
            self.name,
            context.name,
            artifact=artifact,
            log_path=str(context.log_path),
            duration_ms=int((time.monotonic() - start) * 1000),
        )


def fresh_dir(path: Path) -> Path:
    """Empty (or create) an out-of-tree build directory."""
    shutil.rmtree(path, ignore_errors=True)
    path.mkdir(parents=True)
    return path
