"""
pkg-config descriptor synthesis.

Some upstreams (lame, older x264 setups) install a static library but no
``.pc`` file. Every adapter calls ``ensure_pkgconfig`` after install so the
consumer can always resolve each dependency through pkg-config. The
generated text depends only on its inputs: no timestamps, no host paths
beyond the prefix.
"""

from __future__ import annotations

import logging
from pathlib import Path

from codecforge.core.models.dependency import Dependency
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.version import VersionPin

logger = logging.getLogger(__name__)


def render_pc(
    dependency: Dependency,
    version: str,
    prefix: Path,
) -> str:
    """Render a ``.pc`` file for a statically installed dependency."""
    libs = dependency.pkgconfig_libs or dependency.link_flag
    private = dependency.pkgconfig_libs_private
    lines = [
        f"prefix={prefix}",
        "exec_prefix=${prefix}",
        "libdir=${exec_prefix}/lib",
        "includedir=${prefix}/include",
        "",
        f"Name: {dependency.pkgconfig_name}",
        f"Description: {dependency.description or dependency.name}",
        f"Version: {version}",
        f"Libs: -L${{libdir}} {libs}",
    ]
    if private:
        lines.append(f"Libs.private: {private}")
    lines.append("Cflags: -I${includedir}")
    return "\n".join(lines) + "\n"


def ensure_pkgconfig(
    dependency: Dependency,
    pin: VersionPin,
    platform: PlatformDescriptor,
    prefix: Path,
) -> tuple[Path, bool]:
    """Make sure ``<search_dir>/<pkgconfig_name>.pc`` exists.

    Returns:
        (path, synthesized). ``synthesized`` is True when the file was
        generated here rather than installed by the upstream build.
    """
    pc_dir = platform.search_dir(prefix)
    pc_path = pc_dir / f"{dependency.pkgconfig_name}.pc"
    if pc_path.is_file():
        return pc_path, False

    pc_dir.mkdir(parents=True, exist_ok=True)
    pc_path.write_text(render_pc(dependency, pin.version, prefix), encoding="utf-8")
    logger.info("Synthesized %s for %s", pc_path.name, dependency.name)
    return pc_path, True
