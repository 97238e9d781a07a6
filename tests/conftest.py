"""
Shared test fixtures and configuration.

Nothing here needs a compiler: builds go through the MockAdapter and the
gates inspect artifacts through FakeToolbox.
"""

import sys
from pathlib import Path

import pytest

from codecforge.adapters.build.source_build import BuildStep, SourceBuildAdapter
from codecforge.adapters.mock import MockAdapter
from codecforge.adapters.registry import AdapterRegistry
from codecforge.adapters.shell.command import CommandResult
from codecforge.core.catalog import DependencyRegistry
from codecforge.core.config.platform_loader import discover_platforms
from codecforge.core.engine.pipeline import Pipeline
from codecforge.core.ledger import VersionLedger
from codecforge.core.models.dependency import DependencyKind

X86_64_OBJECT = "ELF 64-bit LSB relocatable, x86-64, version 1 (SYSV), not stripped"
X86_64_EXEC = "ELF 64-bit LSB pie executable, x86-64, version 1 (SYSV), dynamically linked"
AARCH64_OBJECT = "ELF 64-bit LSB relocatable, ARM aarch64, version 1 (SYSV), not stripped"
AARCH64_EXEC = "ELF 64-bit LSB executable, ARM aarch64, version 1 (SYSV), statically linked"
ARMV7_OBJECT = "ELF 32-bit LSB relocatable, ARM, EABI5 version 1 (SYSV), not stripped"

LEDGER_TEXT = """\
# Last updated: 2026-10-01
CACHE_VERSION=1
FFMPEG_VERSION=n7.1
FFMPEG_URL=https://example.invalid/ffmpeg-{version}.tar.gz
LIBVPX_VERSION=v1.15.0
LIBVPX_URL=https://example.invalid/libvpx-{version}.tar.gz
AOM_VERSION=v3.12.0
AOM_URL=https://example.invalid/libaom-{version}.tar.gz
DAV1D_VERSION=1.5.0
DAV1D_URL=https://example.invalid/dav1d-{version}.tar.gz
SVTAV1_VERSION=v2.3.0
SVTAV1_URL=https://example.invalid/svt-av1-{version}.tar.gz
OPUS_VERSION=v1.5.2
OPUS_URL=https://example.invalid/opus-{version}.tar.gz
OGG_VERSION=v1.3.5
OGG_URL=https://example.invalid/ogg-{version}.tar.gz
VORBIS_VERSION=v1.3.7
VORBIS_URL=https://example.invalid/vorbis-{version}.tar.gz
LAME_VERSION=3.100
LAME_URL=https://example.invalid/lame-{version}.tar.gz
X264_VERSION=31e19f92f00c7003fa115047ce50978bc98c3a0d
X264_GIT_URL=https://example.invalid/x264.git
X265_VERSION=4.0
X265_URL=https://example.invalid/x265_{version}.tar.gz
"""


class FakeToolbox:
    """Toolbox with canned answers.

    ``pkg_config_exists`` is real enough to matter: a name resolves when
    its ``.pc`` file is in the search directory, or when it is listed in
    ``system_packages`` (a leak from outside the isolated path).
    """

    def __init__(
        self,
        object_output: str = X86_64_OBJECT,
        exec_output: str = X86_64_EXEC,
        available: bool = True,
        compile_ok: bool = True,
    ):
        self.object_output = object_output
        self.exec_output = exec_output
        self.available = available
        self.compile_ok = compile_ok
        self.system_packages: set[str] = set()
        self.member_overrides: dict[str, str] = {}
        self.file_overrides: dict[str, str] = {}
        self.needed: dict[str, list[str]] = {}
        self.interpreters: dict[str, str] = {}
        self.macho: dict[str, list[str]] = {}
        self.calls: list[tuple[str, str]] = []

    def which(self, tool: str) -> bool:
        self.calls.append(("which", tool))
        return self.available

    def file_type(self, path: Path) -> str:
        self.calls.append(("file", path.name))
        return self.file_overrides.get(path.name, self.exec_output)

    def compile_probe(self, cc, cflags, ldflags, output: Path) -> CommandResult:
        self.calls.append(("compile", cc))
        if not self.compile_ok:
            return CommandResult(cmd=[cc, "probe.c"], returncode=1, output="ld: cannot find crt1.o")
        return CommandResult(cmd=[cc, "probe.c", "-o", str(output)], returncode=0)

    def pkg_config_exists(self, name: str, search_dir: Path) -> bool:
        self.calls.append(("pkg-config", name))
        return name in self.system_packages or (search_dir / f"{name}.pc").is_file()

    def archive_member_type(self, archive: Path, archiver: str = "ar") -> str | None:
        self.calls.append(("ar", archive.name))
        return self.member_overrides.get(archive.name, self.object_output)

    def needed_libraries(self, binary: Path) -> list[str]:
        return list(self.needed.get(binary.name, []))

    def interpreter(self, binary: Path) -> str | None:
        return self.interpreters.get(binary.name)

    def macho_libraries(self, binary: Path) -> list[str]:
        return list(self.macho.get(binary.name, []))


class LocalFetcher:
    """Fetcher that hands out an existing directory as the source tree."""

    def __init__(self, source_dir: Path):
        self.source_dir = source_dir
        self.source_dir.mkdir(parents=True, exist_ok=True)

    def fetch(self, pin, runner=None) -> Path:
        return self.source_dir


class SleepingAdapter(SourceBuildAdapter):
    """Real source-build adapter whose configure, build and install each sleep."""

    def __init__(self, fetcher, seconds: float, kind: DependencyKind = DependencyKind.AUTOTOOLS):
        super().__init__(fetcher)
        self.seconds = seconds
        self.kind = kind

    @property
    def name(self) -> str:
        return "sleeping"

    def steps(self, context, source_dir: Path) -> list[BuildStep]:
        cmd = [sys.executable, "-c", f"import time; time.sleep({self.seconds})"]
        return [BuildStep(step, cmd, source_dir) for step in ("configure", "build", "install")]


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def platforms():
    """Built-in platform descriptors by id."""
    return discover_platforms()


@pytest.fixture
def linux_x64(platforms):
    return platforms["linux-x64-glibc"]


@pytest.fixture
def ledger() -> VersionLedger:
    return VersionLedger.parse(LEDGER_TEXT)


@pytest.fixture
def catalog() -> DependencyRegistry:
    return DependencyRegistry.builtin()


@pytest.fixture
def toolbox() -> FakeToolbox:
    return FakeToolbox()


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def adapters(mock_adapter: MockAdapter) -> AdapterRegistry:
    """Adapter registry routing every build to ``mock_adapter``."""
    registry = AdapterRegistry()
    registry.set_mock_mode(True, mock_adapter)
    return registry


@pytest.fixture
def build_root(tmp_path: Path) -> Path:
    root = tmp_path / "build"
    root.mkdir()
    return root


@pytest.fixture
def make_pipeline(catalog, ledger, adapters, toolbox, build_root, platforms):
    """Factory: a Pipeline wired to the mock adapter and the fake toolbox."""

    def _make(platform_id: str = "linux-x64-glibc", tier: str = "free", **kwargs) -> Pipeline:
        options = {
            "registry": catalog,
            "ledger": ledger,
            "platform": platforms[platform_id],
            "tier": tier,
            "adapters": adapters,
            "toolbox": toolbox,
            "build_root": build_root,
            "jobs": 4,
        }
        options.update(kwargs)
        return Pipeline(**options)

    return _make
