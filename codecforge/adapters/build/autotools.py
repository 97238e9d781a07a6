"""
Autotools adapter — ``./configure && make && make install``.

Also covers projects with a hand-written configure script that follows
the autotools conventions (libvpx, x264); their quirks live in the
catalog's ``static_flags`` / ``cross_host_flag`` and the platform's
per-dependency args.
"""

from __future__ import annotations

from pathlib import Path

from codecforge.adapters.base import BuildContext
from codecforge.adapters.build.source_build import BuildStep, SourceBuildAdapter
from codecforge.core.models.dependency import DependencyKind

DEFAULT_STATIC_FLAGS = ["--enable-static", "--disable-shared", "--with-pic"]


class AutotoolsAdapter(SourceBuildAdapter):
    """Build a dependency with its configure script and make."""

    kind = DependencyKind.AUTOTOOLS

    @property
    def name(self) -> str:
        return "autotools"

    def configure_command(self, context: BuildContext, source_dir: Path) -> list[str]:
        dep = context.dependency
        platform = context.platform
        cmd = [str(source_dir / "configure"), f"--prefix={context.prefix}"]
        cmd.extend(DEFAULT_STATIC_FLAGS if dep.static_flags is None else dep.static_flags)
        if platform.is_cross and dep.cross_host_flag:
            cmd.append(f"--host={platform.host_triplet}")
        cmd.extend(dep.configure_args)
        cmd.extend(platform.args_for(dep.name))
        return cmd

    def steps(self, context: BuildContext, source_dir: Path) -> list[BuildStep]:
        steps: list[BuildStep] = []
        # Git checkouts ship configure.ac but no generated configure
        if not (source_dir / "configure").is_file():
            if (source_dir / "autogen.sh").is_file():
                steps.append(BuildStep("autogen", ["sh", "./autogen.sh"], source_dir))
            else:
                steps.append(BuildStep("autoreconf", ["autoreconf", "-fi"], source_dir))
        steps.append(BuildStep("configure", self.configure_command(context, source_dir), source_dir))
        steps.append(BuildStep("build", ["make", f"-j{context.jobs}"], source_dir))
        steps.append(BuildStep("install", ["make", "install"], source_dir))
        return steps
