"""
Consumer adapter — configure and build FFmpeg against the isolated prefix.

The flag list arrives fully assembled (derived from the ActiveSet); this
adapter only adds the prefix wiring and the platform toolchain.
"""

from __future__ import annotations

import logging
import time

from codecforge.adapters.base import ConsumerContext
from codecforge.adapters.shell.command import CommandRunner, isolated_env
from codecforge.adapters.source.fetch import SourceFetcher
from codecforge.core.errors import CodecForgeError
from codecforge.core.models.receipt import BuildReceipt

logger = logging.getLogger(__name__)


class ConsumerAdapter:
    """Build the consumer program and install its binaries into the prefix."""

    name = "consumer"

    def __init__(self, fetcher: SourceFetcher):
        self.fetcher = fetcher

    def configure_command(self, context: ConsumerContext, configure: str) -> list[str]:
        platform = context.platform
        prefix = context.prefix
        cmd = [
            configure,
            f"--prefix={prefix}",
            "--pkg-config=pkg-config",
            "--pkg-config-flags=--static",
            f"--extra-cflags=-I{prefix / 'include'}",
            f"--extra-ldflags=-L{prefix / 'lib'}",
            f"--cc={platform.c_compiler}",
            f"--cxx={platform.cxx_compiler}",
            f"--ar={platform.archiver}",
        ]
        if platform.extra_link_libs:
            cmd.append(f"--extra-libs={' '.join(platform.extra_link_libs)}")
        cmd.extend(context.flags)
        return cmd

    def build(self, context: ConsumerContext) -> BuildReceipt:
        start = time.monotonic()
        runner = CommandRunner.for_target(
            env=isolated_env(context.platform, context.prefix),
            log_path=context.log_path,
            time_limit=context.timeout,
        )

        try:
            source_dir = self.fetcher.fetch(context.pin, runner)
        except CodecForgeError as e:
            return BuildReceipt.failure(
                self.name,
                context.name,
                error=e.diagnostic.what,
                error_kind=type(e).__name__,
                failed_step="fetch",
                log_path=str(context.log_path),
                metadata={"diagnostic": e.diagnostic.model_dump(mode="json")},
            )

        steps = [
            ("configure", self.configure_command(context, str(source_dir / "configure"))),
            ("build", ["make", f"-j{context.jobs}"]),
            ("install", ["make", "install"]),
        ]
        for step, cmd in steps:
            logger.info("%s: %s", context.name, step)
            result = runner.run(cmd, cwd=source_dir)
            if not result.ok:
                return BuildReceipt.failure(
                    self.name,
                    context.name,
                    error=result.describe(),
                    failed_step=step,
                    log_path=str(context.log_path),
                    duration_ms=int((time.monotonic() - start) * 1000),
                    metadata={"timed_out": result.timed_out, "output_tail": result.output[-2000:]},
                )

        missing = [str(p) for p in context.binary_paths if not p.is_file()]
        if missing:
            return BuildReceipt.failure(
                self.name,
                context.name,
                error=f"Install finished but did not produce: {', '.join(missing)}",
                failed_step="install",
                log_path=str(context.log_path),
            )

        return BuildReceipt.success(
            self.name,
            context.name,
            log_path=str(context.log_path),
            duration_ms=int((time.monotonic() - start) * 1000),
            metadata={"binaries": [str(p) for p in context.binary_paths]},
        )
