"""
Meson adapter — machine file from the PlatformDescriptor, then
``meson setup``, ``meson compile``, ``meson install``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from codecforge.adapters.base import BuildContext
from codecforge.adapters.build.source_build import BuildStep, SourceBuildAdapter, fresh_dir
from codecforge.core.models.dependency import DependencyKind
from codecforge.core.models.platform import PlatformDescriptor

logger = logging.getLogger(__name__)

DEFAULT_STATIC_FLAGS = ["--default-library=static", "-Db_staticpic=true"]

_BIG_ENDIAN_ARCHES = {"ppc", "ppc64", "s390x", "mips"}


def _quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _array(values: list[str]) -> str:
    return "[" + ", ".join(_quote(v) for v in values) + "]"


def render_machine_file(platform: PlatformDescriptor) -> str:
    """Render a Meson cross file for ``platform``."""
    cpu_family = platform.meson_host_cpu_family
    lines = [
        "[binaries]",
        f"c = {_quote(platform.c_compiler)}",
        f"cpp = {_quote(platform.cxx_compiler)}",
        f"ar = {_quote(platform.archiver)}",
        f"strip = {_quote(platform.tool('strip'))}",
        "pkg-config = 'pkg-config'",
        "",
        "[host_machine]",
        f"system = {_quote(platform.meson_host_system)}",
        f"cpu_family = {_quote(cpu_family)}",
        f"cpu = {_quote(platform.arch)}",
        f"endian = {_quote('big' if cpu_family in _BIG_ENDIAN_ARCHES else 'little')}",
        "",
        "[built-in options]",
        f"c_args = {_array(platform.cflags)}",
        f"cpp_args = {_array(platform.cflags)}",
        f"c_link_args = {_array(platform.ldflags)}",
        f"cpp_link_args = {_array(platform.ldflags)}",
    ]
    return "\n".join(lines) + "\n"


class MesonAdapter(SourceBuildAdapter):
    """Build a dependency with Meson and Ninja."""

    kind = DependencyKind.MESON

    @property
    def name(self) -> str:
        return "meson"

    def setup_command(
        self,
        context: BuildContext,
        source_dir: Path,
        build_dir: Path,
        machine_file: Path | None,
    ) -> list[str]:
        dep = context.dependency
        cmd = [
            "meson", "setup", str(build_dir), str(source_dir),
            f"--prefix={context.prefix}",
            "--libdir=lib",
            "--buildtype=release",
        ]
        cmd.extend(DEFAULT_STATIC_FLAGS if dep.static_flags is None else dep.static_flags)
        if machine_file is not None:
            cmd.append(f"--cross-file={machine_file}")
        cmd.extend(dep.configure_args)
        cmd.extend(context.platform.args_for(dep.name))
        return cmd

    def steps(self, context: BuildContext, source_dir: Path) -> list[BuildStep]:
        build_dir = fresh_dir(context.build_dir)
        machine_file: Path | None = None
        if context.platform.is_cross:
            machine_file = build_dir.parent / f"{build_dir.name}.{context.platform.id}.ini"
            machine_file.write_text(render_machine_file(context.platform), encoding="utf-8")
            logger.debug("Wrote meson machine file %s", machine_file)
        return [
            BuildStep("configure", self.setup_command(context, source_dir, build_dir, machine_file), source_dir),
            BuildStep("build", ["meson", "compile", "-C", str(build_dir), "-j", str(context.jobs)], source_dir),
            BuildStep("install", ["meson", "install", "-C", str(build_dir)], source_dir),
        ]
