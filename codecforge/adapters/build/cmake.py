"""
CMake adapter — out-of-tree configure, ``cmake --build``, ``cmake --install``.
"""

from __future__ import annotations

from pathlib import Path

from codecforge.adapters.base import BuildContext
from codecforge.adapters.build.source_build import BuildStep, SourceBuildAdapter, fresh_dir
from codecforge.core.models.dependency import DependencyKind

DEFAULT_STATIC_FLAGS = ["-DBUILD_SHARED_LIBS=OFF", "-DCMAKE_POSITION_INDEPENDENT_CODE=ON"]


class CMakeAdapter(SourceBuildAdapter):
    """Build a dependency with CMake."""

    kind = DependencyKind.CMAKE

    @property
    def name(self) -> str:
        return "cmake"

    def configure_command(self, context: BuildContext, source_dir: Path, build_dir: Path) -> list[str]:
        dep = context.dependency
        platform = context.platform
        prefix = context.prefix
        cmd = [
            "cmake",
            "-S", str(source_dir),
            "-B", str(build_dir),
            f"-DCMAKE_INSTALL_PREFIX={prefix}",
            "-DCMAKE_INSTALL_LIBDIR=lib",
            f"-DCMAKE_PREFIX_PATH={prefix}",
            "-DCMAKE_BUILD_TYPE=Release",
            f"-DCMAKE_C_COMPILER={platform.c_compiler}",
            f"-DCMAKE_CXX_COMPILER={platform.cxx_compiler}",
            f"-DCMAKE_AR={platform.archiver}",
        ]
        cmd.extend(DEFAULT_STATIC_FLAGS if dep.static_flags is None else dep.static_flags)
        if platform.is_cross:
            cmd.extend(cross_options(context))
        cmd.extend(dep.configure_args)
        cmd.extend(platform.args_for(dep.name))
        return cmd

    def steps(self, context: BuildContext, source_dir: Path) -> list[BuildStep]:
        build_dir = fresh_dir(context.build_dir)
        return [
            BuildStep("configure", self.configure_command(context, source_dir, build_dir), build_dir),
            BuildStep("build", ["cmake", "--build", str(build_dir), "--parallel", str(context.jobs)], build_dir),
            BuildStep("install", ["cmake", "--install", str(build_dir)], build_dir),
        ]


def cross_options(context: BuildContext) -> list[str]:
    """CMake cross-compilation block; finds headers and libraries only in the prefix."""
    platform = context.platform
    return [
        f"-DCMAKE_SYSTEM_NAME={platform.cmake_system}",
        f"-DCMAKE_SYSTEM_PROCESSOR={platform.arch}",
        f"-DCMAKE_FIND_ROOT_PATH={context.prefix}",
        "-DCMAKE_FIND_ROOT_PATH_MODE_PROGRAM=NEVER",
        "-DCMAKE_FIND_ROOT_PATH_MODE_LIBRARY=ONLY",
        "-DCMAKE_FIND_ROOT_PATH_MODE_INCLUDE=ONLY",
        "-DCMAKE_FIND_ROOT_PATH_MODE_PACKAGE=ONLY",
    ]
