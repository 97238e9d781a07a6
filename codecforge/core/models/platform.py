"""
PlatformDescriptor — toolchain configuration for one build target platform.

One record per supported platform id (linux-x64-glibc, linux-arm64-musl,
darwin-arm64, ...). Read-only for the whole run: every adapter, gate and
stamp key derives its toolchain facts from here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

_CMAKE_SYSTEMS = {"linux": "Linux", "darwin": "Darwin", "windows": "Windows"}


class PlatformDescriptor(BaseModel):
    """Per-target toolchain configuration."""

    model_config = ConfigDict(frozen=True)

    # ── Identity ─────────────────────────────────────────────────
    id: str
    os: str                          # linux, darwin, windows
    arch: str                        # x86_64, aarch64, armv7, ...
    libc: str = ""                   # glibc, musl ("" for darwin/windows)
    description: str = ""

    # ── Toolchain ────────────────────────────────────────────────
    cross_prefix: str = ""           # e.g. aarch64-linux-gnu-
    cc: str = ""
    cxx: str = ""
    ar: str = ""
    cflags: list[str] = Field(default_factory=list)
    ldflags: list[str] = Field(default_factory=list)
    extra_link_libs: list[str] = Field(default_factory=list)
    emulated: bool = False           # built under qemu emulation

    # ── Verification ─────────────────────────────────────────────
    arch_verify_pattern: str = ""    # regex matched against `file` output
    linkage: Literal["dynamic", "static"] = "dynamic"
    allowed_dynamic_libs: list[str] = Field(default_factory=list)
    isolation_probe_package: str = "glib-2.0"

    # Exclusive pkg-config search directory; "{prefix}" is substituted
    pkg_config_search_dir: str = "{prefix}/lib/pkgconfig"

    # ── Consumer and adapter extras ──────────────────────────────
    consumer_flags: list[str] = Field(default_factory=list)
    dependency_args: dict[str, list[str]] = Field(default_factory=dict)
    cmake_system_name: str = ""
    meson_system: str = ""
    meson_cpu_family: str = ""

    @property
    def is_cross(self) -> bool:
        return bool(self.cross_prefix)

    @property
    def host_triplet(self) -> str:
        """Autotools host triplet (the cross prefix without its dash)."""
        return self.cross_prefix.rstrip("-")

    def tool(self, name: str) -> str:
        """Name of a binutils-style tool for this platform (ar, strip, ...)."""
        return f"{self.cross_prefix}{name}"

    @property
    def c_compiler(self) -> str:
        return self.cc or self.tool("gcc")

    @property
    def cxx_compiler(self) -> str:
        return self.cxx or self.tool("g++")

    @property
    def archiver(self) -> str:
        return self.ar or self.tool("ar")

    @property
    def cmake_system(self) -> str:
        return self.cmake_system_name or _CMAKE_SYSTEMS.get(self.os, self.os.capitalize())

    @property
    def meson_host_system(self) -> str:
        return self.meson_system or self.os

    @property
    def meson_host_cpu_family(self) -> str:
        return self.meson_cpu_family or self.arch

    def search_dir(self, prefix: Path) -> Path:
        """Resolve the isolated pkg-config directory for a prefix."""
        return Path(self.pkg_config_search_dir.replace("{prefix}", str(prefix)))

    def args_for(self, dependency_name: str) -> list[str]:
        """Platform-specific extra adapter arguments for a dependency."""
        return list(self.dependency_args.get(dependency_name, []))
