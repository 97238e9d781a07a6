"""
Toolbox — the inspection tools the gates rely on.

Gates never spawn ``file``, ``pkg-config``, ``readelf``, ``otool``, ``ar``
or the compiler themselves; they ask a Toolbox. Tests substitute a fake
with canned answers, so every gate runs without a toolchain installed.
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from pathlib import Path

from codecforge.adapters.shell.command import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

_PROBE_SOURCE = "int main(void) { return 0; }\n"
_NEEDED_RE = re.compile(r"\(NEEDED\)\s+Shared library:\s+\[([^\]]+)\]")
_INTERP_RE = re.compile(r"Requesting program interpreter:\s*([^\]]+)\]")
_PROBE_TIMEOUT = 120.0


class Toolbox:
    """Real inspection tools, run through a CommandRunner.

    Args:
        runner: Runner for every probe command (default: inherit env,
            no log file).
    """

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner(timeout=_PROBE_TIMEOUT)

    def which(self, tool: str) -> bool:
        """Whether ``tool`` (a name or path) is executable."""
        return shutil.which(tool) is not None

    def file_type(self, path: Path) -> str:
        """``file -b`` description of ``path`` ("" if it cannot run)."""
        result = self.runner.run(["file", "-b", str(path)])
        return result.output.strip() if result.ok else ""

    def compile_probe(
        self,
        cc: str,
        cflags: list[str],
        ldflags: list[str],
        output: Path,
    ) -> CommandResult:
        """Compile a trivial C program to ``output``."""
        output.parent.mkdir(parents=True, exist_ok=True)
        source = output.with_suffix(".c")
        source.write_text(_PROBE_SOURCE, encoding="utf-8")
        return self.runner.run([cc, *cflags, str(source), "-o", str(output), *ldflags])

    def pkg_config_exists(self, name: str, search_dir: Path) -> bool:
        """Whether ``name`` resolves with pkg-config scoped to ``search_dir`` only."""
        result = self.runner.run(
            ["pkg-config", "--exists", name],
            env_overrides=_isolated_pkg_config_env(search_dir),
        )
        return result.ok

    def archive_member_type(self, archive: Path, archiver: str = "ar") -> str | None:
        """``file`` description of the first object in a static archive.

        Returns None when the archive cannot be listed or has no object.
        """
        listing = self.runner.run([archiver, "t", str(archive)], keep_output=True)
        if not listing.ok:
            return None
        members = [m for m in listing.output.splitlines() if m.endswith((".o", ".obj"))]
        if not members:
            return None
        with tempfile.TemporaryDirectory(prefix="cf-ar-") as tmp:
            extracted = self.runner.run([archiver, "x", str(archive.resolve()), members[0]], cwd=Path(tmp))
            if not extracted.ok:
                return None
            return self.file_type(Path(tmp) / Path(members[0]).name)

    def needed_libraries(self, binary: Path) -> list[str]:
        """DT_NEEDED entries of an ELF binary."""
        result = self.runner.run(["readelf", "-d", str(binary)], keep_output=True)
        return _NEEDED_RE.findall(result.output) if result.ok else []

    def interpreter(self, binary: Path) -> str | None:
        """The ELF program interpreter, or None for a fully static binary."""
        result = self.runner.run(["readelf", "-l", str(binary)], keep_output=True)
        if not result.ok:
            return None
        match = _INTERP_RE.search(result.output)
        return match.group(1).strip() if match else None

    def macho_libraries(self, binary: Path) -> list[str]:
        """Dylibs a Mach-O binary links (``otool -L``)."""
        result = self.runner.run(["otool", "-L", str(binary)], keep_output=True)
        if not result.ok:
            return []
        libs = []
        for line in result.output.splitlines()[1:]:
            line = line.strip()
            if line:
                libs.append(line.split(" (", 1)[0])
        return libs


def _isolated_pkg_config_env(search_dir: Path) -> dict[str, str]:
    return {
        "PKG_CONFIG_LIBDIR": str(search_dir),
        "PKG_CONFIG_PATH": "",
        "PKG_CONFIG_SYSROOT_DIR": "",
    }
