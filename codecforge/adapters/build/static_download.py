"""
Static-download adapter — unpack a prebuilt static archive into the prefix.

The pinned archive must contain ``lib/`` (and usually ``include/``); it is
verified like any source tarball, then merged into the prefix. No
compiler runs, so the artifact gate is the only arch check.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from codecforge.adapters.base import BuildContext
from codecforge.adapters.build.source_build import BuildStep, SourceBuildAdapter
from codecforge.core.errors import CodecForgeError
from codecforge.core.models.dependency import DependencyKind
from codecforge.core.models.receipt import BuildReceipt

logger = logging.getLogger(__name__)

_MERGED_DIRS = ("lib", "include", "bin", "share")


class StaticDownloadAdapter(SourceBuildAdapter):
    """Install a dependency from a prebuilt static archive."""

    kind = DependencyKind.STATIC_DOWNLOAD

    @property
    def name(self) -> str:
        return "static-download"

    def steps(self, context: BuildContext, source_dir: Path) -> list[BuildStep]:
        return []

    def build(self, context: BuildContext) -> BuildReceipt:
        start = time.monotonic()
        is_valid, error = self.validate(context)
        if not is_valid:
            return BuildReceipt.failure(self.name, context.name, error=error, failed_step="validate")

        try:
            source_dir = self.fetcher.fetch(context.pin)
        except CodecForgeError as e:
            return BuildReceipt.failure(
                self.name,
                context.name,
                error=e.diagnostic.what,
                error_kind=type(e).__name__,
                failed_step="fetch",
                metadata={"diagnostic": e.diagnostic.model_dump(mode="json")},
            )

        if context.dependency.source_subdir:
            source_dir = source_dir / context.dependency.source_subdir
        if not (source_dir / "lib").is_dir():
            return BuildReceipt.failure(
                self.name,
                context.name,
                error=f"Archive for {context.name} has no lib/ directory",
                failed_step="install",
            )

        try:
            for sub in _MERGED_DIRS:
                if (source_dir / sub).is_dir():
                    shutil.copytree(source_dir / sub, context.prefix / sub, dirs_exist_ok=True)
        except OSError as e:
            return BuildReceipt.failure(
                self.name, context.name, error=f"Cannot install into prefix: {e}", failed_step="install",
            )

        logger.info("%s: installed prebuilt archive into %s", context.name, context.prefix)
        return self.finish(context, start)
