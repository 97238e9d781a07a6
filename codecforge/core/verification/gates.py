"""
Verification gates — five checkpoints, each as early as its facts exist.

    1. ParseTimeGate   ledger refs and descriptor fields, before any work
    2. PreflightGate   toolchain arch + pkg-config isolation, once per platform
    3. ArtifactGate    each target's library and .pc, right after its build
    4. AggregateGate   every pkg-config name the consumer needs, before linking
    5. FinalBinaryGate consumer binaries' arch and linkage

Every failure raises the gate's error class carrying a Diagnostic whose
checks list what passed before the failure, so the first [FAIL] line is
the root of the problem rather than a downstream symptom.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from codecforge.core.errors import (
    ArtifactVerificationError,
    IsolationLeakWarning,
    LinkageViolationError,
    MissingDependencyError,
    PlatformConfigError,
    PreflightError,
)
from codecforge.core.ledger import ledger_key, validate_ref
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.target import BuildTarget
from codecforge.core.verification.diagnostics import detect_arch
from codecforge.core.verification.probes import Toolbox

logger = logging.getLogger(__name__)


def _matches(pattern: str, text: str) -> bool:
    return bool(text) and re.search(pattern, text) is not None


def _sentence(text: str) -> str:
    return text[:1].upper() + text[1:]


# ── Gate 1 ──────────────────────────────────────────────────────


class ParseTimeGate:
    """Static checks on the inputs; no tool runs."""

    name = "parse-time"

    def check_platform(self, platform: PlatformDescriptor) -> None:
        """Required descriptor fields are present and coherent.

        Raises:
            PlatformConfigError: On the first missing or invalid field.
        """
        diag = Diagnostic(gate=self.name, what=f"Platform descriptor '{platform.id}' is incomplete")

        if not platform.arch:
            diag.failed("arch", "not set")
            diag.root_cause = "the descriptor does not say which architecture to build for"
            diag.fix = f"Set 'arch' in the '{platform.id}' descriptor"
            raise PlatformConfigError(diag)
        diag.passed("arch", platform.arch)

        if not platform.c_compiler:
            diag.failed("cc", "not set")
            diag.root_cause = "no C compiler is configured"
            diag.fix = f"Set 'cc' or 'cross_prefix' in the '{platform.id}' descriptor"
            raise PlatformConfigError(diag)
        diag.passed("cc", platform.c_compiler)

        if platform.is_cross and not Path(platform.c_compiler).name.startswith(platform.cross_prefix):
            diag.failed("cross compiler", f"cc '{platform.c_compiler}' lacks prefix '{platform.cross_prefix}'")
            diag.root_cause = "a cross platform is configured with a compiler that is not the cross compiler"
            diag.fix = f"Set cc to {platform.cross_prefix}gcc, or remove the explicit 'cc'"
            raise PlatformConfigError(diag)

        if not platform.arch_verify_pattern:
            diag.failed("arch_verify_pattern", "not set")
            diag.root_cause = "artifacts cannot be checked against the target architecture"
            diag.fix = f"Set 'arch_verify_pattern' (a regex over `file` output) for '{platform.id}'"
            raise PlatformConfigError(diag)
        try:
            re.compile(platform.arch_verify_pattern)
        except re.error as e:
            diag.failed("arch_verify_pattern", f"invalid regex: {e}")
            diag.root_cause = "the architecture pattern does not compile"
            diag.fix = "Fix the regular expression in 'arch_verify_pattern'"
            raise PlatformConfigError(diag) from e
        diag.passed("arch_verify_pattern", platform.arch_verify_pattern)

        if "{prefix}" not in platform.pkg_config_search_dir:
            diag.failed("pkg_config_search_dir", platform.pkg_config_search_dir)
            diag.root_cause = "the pkg-config search directory is not inside the isolated prefix"
            diag.fix = "Use a '{prefix}'-relative path such as '{prefix}/lib/pkgconfig'"
            raise PlatformConfigError(diag)

        for pattern in platform.allowed_dynamic_libs:
            try:
                re.compile(pattern)
            except re.error as e:
                diag.failed("allowed_dynamic_libs", f"invalid regex '{pattern}': {e}")
                diag.root_cause = "an allow-list entry does not compile"
                diag.fix = "Fix the regular expression in 'allowed_dynamic_libs'"
                raise PlatformConfigError(diag) from e

        logger.debug("Gate 1: platform %s OK", platform.id)

    def check_pins(self, targets: list[BuildTarget]) -> None:
        """Every pin is content-addressable (InvalidRefError otherwise)."""
        for target in targets:
            self.check_pin(target.name, target.pin.ref)

    def check_pin(self, name: str, ref: str) -> None:
        validate_ref(ledger_key(name), ref)

    def check(self, platform: PlatformDescriptor, targets: list[BuildTarget]) -> None:
        self.check_platform(platform)
        self.check_pins(targets)


# ── Gate 2 ──────────────────────────────────────────────────────


class PreflightGate:
    """Compile-and-inspect a probe before any expensive build."""

    name = "preflight"

    def __init__(self, toolbox: Toolbox):
        self.toolbox = toolbox

    def run(self, platform: PlatformDescriptor, prefix: Path, work_dir: Path) -> list[IsolationLeakWarning]:
        """Check the toolchain; return isolation warnings (never raised).

        Raises:
            PreflightError: If the compiler is missing, cannot link a
                trivial program, or emits the wrong architecture.
        """
        cc = platform.c_compiler
        diag = Diagnostic(gate=self.name, what=f"Preflight failed for {platform.id}")

        if not self.toolbox.which(cc):
            diag.failed("compiler present", f"'{cc}' not found on PATH")
            diag.root_cause = f"the {platform.id} toolchain is not installed"
            diag.fix = f"Install the toolchain providing '{cc}' or set 'cc' in the descriptor"
            raise PreflightError(diag)
        diag.passed("compiler present", cc)

        probe = work_dir / f"preflight-{platform.id}"
        result = self.toolbox.compile_probe(cc, platform.cflags, platform.ldflags, probe)
        if not result.ok:
            diag.failed("compile probe", result.describe())
            diag.root_cause = "the compiler cannot build a trivial C program with the platform flags"
            diag.fix = "Check cflags/ldflags in the descriptor and that the sysroot/libc is installed"
            raise PreflightError(diag)
        diag.passed("compile probe", str(probe))

        description = self.toolbox.file_type(probe)
        if not _matches(platform.arch_verify_pattern, description):
            actual = detect_arch(description)
            diag.what = (
                f"Toolchain produces {actual} binaries but platform {platform.id} expects {platform.arch}"
            )
            diag.failed(
                "probe architecture",
                f"expected {platform.arch} (/{platform.arch_verify_pattern}/), got {actual}: {description or 'no output'}",
            )
            if platform.is_cross:
                diag.root_cause = f"'{cc}' is not a {platform.arch} cross compiler (it targets {actual})"
                diag.fix = f"Install the {platform.cross_prefix}gcc toolchain and make sure cc resolves to it"
            else:
                diag.root_cause = f"the native compiler targets {actual}, not {platform.arch}"
                diag.fix = f"Run on a {platform.arch} host or describe this platform as a cross build"
            raise PreflightError(diag)
        diag.passed("probe architecture", detect_arch(description))

        if platform.linkage == "static":
            interpreter = self.toolbox.interpreter(probe)
            if interpreter:
                diag.what = f"Toolchain for static platform {platform.id} links dynamically"
                diag.failed("static probe", f"program interpreter {interpreter}")
                diag.root_cause = "the compiler/libc combination does not produce static executables"
                diag.fix = "Use a musl toolchain or add -static to the descriptor's ldflags"
                raise PreflightError(diag)
            diag.passed("static probe", "no program interpreter")

        logger.info("Gate 2: toolchain for %s OK", platform.id)
        return self.check_isolation(platform, prefix)

    def check_isolation(self, platform: PlatformDescriptor, prefix: Path) -> list[IsolationLeakWarning]:
        """The isolated pkg-config path must not see a system-only package."""
        search_dir = platform.search_dir(prefix)
        package = platform.isolation_probe_package
        if not self.toolbox.pkg_config_exists(package, search_dir):
            logger.debug("Isolation OK: %s not visible from %s", package, search_dir)
            return []

        diag = Diagnostic(
            gate=self.name,
            what=f"Isolated pkg-config path resolves system package '{package}'",
            root_cause=(
                f"pkg-config is reading directories outside {search_dir} "
                "(a pkg-config wrapper, a sysroot, or a compiled-in default path)"
            ),
            fix=f"Make pkg-config search only PKG_CONFIG_LIBDIR={search_dir}",
        )
        diag.passed("search dir", str(search_dir))
        diag.failed("isolation probe", f"'{package}' resolved but is never built into the prefix")
        leak = IsolationLeakWarning(diag)
        logger.warning("Isolation leak on %s: %s", platform.id, diag.what)
        return [leak]


# ── Gate 3 ──────────────────────────────────────────────────────


class ArtifactGate:
    """Verify one target's installed library and pkg-config descriptor."""

    name = "artifact"

    def __init__(self, toolbox: Toolbox):
        self.toolbox = toolbox

    def check(self, target: BuildTarget, prefix: Path) -> None:
        """Raises ArtifactVerificationError on the first failing check."""
        platform = target.platform
        dep = target.dependency
        diag = Diagnostic(
            gate=self.name,
            what=f"Artifact verification failed for {target.name}",
            target=target.name,
        )

        library = target.library_path(prefix)
        if not library.is_file():
            diag.failed("static library", f"{library} does not exist")
            diag.root_cause = f"the {dep.kind.value} install step did not install {library.name}"
            diag.fix = (
                f"Check the install step in the {target.name} log; if the library lands "
                "elsewhere (lib64/, another name) set static_library in the catalog"
            )
            raise ArtifactVerificationError(diag)
        diag.passed("static library", str(library))

        member = self.toolbox.archive_member_type(library, platform.archiver)
        if member is None:
            diag.failed("object architecture", f"no object member could be read from {library.name}")
            diag.root_cause = "the archive is empty or not a static library"
            diag.fix = f"Inspect {library} with '{platform.archiver} t'; rebuild {target.name}"
            raise ArtifactVerificationError(diag)
        if not _matches(platform.arch_verify_pattern, member):
            actual = detect_arch(member)
            diag.failed(
                "object architecture",
                f"{library.name}: expected {platform.arch} (/{platform.arch_verify_pattern}/), got {actual}",
            )
            diag.root_cause = f"{target.name} was compiled for {actual}; its build ignored the platform toolchain"
            diag.fix = f"Pass the cross toolchain to {target.name} (check dependency_args and cross_host_flag)"
            raise ArtifactVerificationError(diag)
        diag.passed("object architecture", detect_arch(member))

        pc_file = target.pkgconfig_path(prefix)
        if not pc_file.is_file():
            diag.failed("pkg-config file", f"{pc_file} does not exist")
            diag.root_cause = (
                f"the build reported success but installed no {pc_file.name} "
                "and none was synthesized"
            )
            diag.fix = (
                f"Check that pkgconfig_name '{dep.pkgconfig_name}' matches the upstream .pc name, "
                f"then rebuild {target.name}"
            )
            raise ArtifactVerificationError(diag)
        diag.passed("pkg-config file", str(pc_file))

        search_dir = platform.search_dir(prefix)
        if not self.toolbox.pkg_config_exists(dep.pkgconfig_name, search_dir):
            diag.failed("pkg-config resolve", f"'{dep.pkgconfig_name}' does not resolve in {search_dir}")
            diag.root_cause = f"{pc_file.name} exists but requires a package that is not in the isolated path"
            diag.fix = f"Check the Requires: lines of {pc_file} against the .pc files in {search_dir}"
            raise ArtifactVerificationError(diag)
        diag.passed("pkg-config resolve", dep.pkgconfig_name)

        logger.debug("Gate 3: %s OK", target.name)


# ── Gate 4 ──────────────────────────────────────────────────────


class AggregateGate:
    """Re-resolve every pkg-config name the consumer will ask for."""

    name = "aggregate"

    def __init__(self, toolbox: Toolbox):
        self.toolbox = toolbox

    def check(
        self,
        required: list[str],
        platform: PlatformDescriptor,
        prefix: Path,
        providers: dict[str, str] | None = None,
    ) -> None:
        """Raises MissingDependencyError listing missing names and present .pc files.

        Args:
            required: pkg-config names the consumer needs.
            providers: pkg-config name → catalog dependency that provides it.
        """
        providers = providers or {}
        search_dir = platform.search_dir(prefix)
        diag = Diagnostic(gate=self.name, what="")
        missing: list[str] = []
        for name in required:
            if self.toolbox.pkg_config_exists(name, search_dir):
                diag.passed(f"pkg-config {name}")
            else:
                diag.failed(f"pkg-config {name}", "not found in the isolated path")
                missing.append(name)

        if not missing:
            logger.info("Gate 4: %d pkg-config names resolve", len(required))
            return

        available = sorted(p.name for p in search_dir.glob("*.pc")) if search_dir.is_dir() else []
        diag.what = f"Consumer needs pkg-config package(s) missing from the prefix: {', '.join(missing)}"
        diag.failed("available .pc files", ", ".join(available) or "(none)")

        causes, fixes = [], []
        for name in missing:
            provider = providers.get(name)
            if provider is None:
                causes.append(f"'{name}' is not provided by any dependency in the catalog")
                fixes.append(f"add a catalog dependency with pkgconfig_name '{name}' or drop it from required_pkgconfig")
            else:
                causes.append(f"'{name}' should come from {provider} but is not installed in {search_dir}")
                fixes.append(f"rebuild {provider}")
        diag.root_cause = "; ".join(causes)
        diag.fix = _sentence("; ".join(fixes))
        raise MissingDependencyError(diag)


# ── Gate 5 ──────────────────────────────────────────────────────


class FinalBinaryGate:
    """Architecture and linkage policy for the consumer's binaries."""

    name = "final"

    def __init__(self, toolbox: Toolbox):
        self.toolbox = toolbox

    def check(self, binaries: list[Path], platform: PlatformDescriptor) -> None:
        """Raises LinkageViolationError if any binary breaks the policy."""
        diag = Diagnostic(gate=self.name, what="")
        causes: list[str] = []
        fixes: list[str] = []

        for binary in binaries:
            if not binary.is_file():
                diag.failed(f"{binary.name} exists", str(binary))
                causes.append(f"{binary.name} was not installed")
                fixes.append("check the consumer install step")
                continue

            description = self.toolbox.file_type(binary)
            if not _matches(platform.arch_verify_pattern, description):
                actual = detect_arch(description)
                diag.failed(f"{binary.name} architecture", f"expected {platform.arch}, got {actual}")
                causes.append(f"{binary.name} was linked for {actual}")
                fixes.append("pass the cross toolchain to the consumer configure")
                continue
            diag.passed(f"{binary.name} architecture", platform.arch)

            if platform.linkage == "static":
                self._check_static(binary, diag, causes, fixes)
            else:
                self._check_dynamic(binary, platform, diag, causes, fixes)

        if not diag.failed_checks:
            logger.info("Gate 5: %d binaries OK", len(binaries))
            return

        diag.what = f"Final binary verification failed for {platform.id} ({platform.linkage} linkage)"
        diag.root_cause = "; ".join(causes)
        diag.fix = _sentence("; ".join(dict.fromkeys(fixes)))
        raise LinkageViolationError(diag)

    def _check_static(self, binary: Path, diag: Diagnostic, causes: list[str], fixes: list[str]) -> None:
        interpreter = self.toolbox.interpreter(binary)
        needed = self.toolbox.needed_libraries(binary)
        if interpreter:
            diag.failed(f"{binary.name} program interpreter", interpreter)
            causes.append(
                f"{binary.name} requests the dynamic loader {interpreter}; it only runs "
                "where that loader exists"
            )
            fixes.append("link the consumer with -static (--extra-ldexeflags=-static)")
        else:
            diag.passed(f"{binary.name} program interpreter", "none")
        if needed:
            diag.failed(f"{binary.name} dynamic libraries", ", ".join(needed))
            causes.append(f"{binary.name} still needs shared libraries")
            fixes.append("make sure every dependency installs only static archives")

    def _check_dynamic(
        self,
        binary: Path,
        platform: PlatformDescriptor,
        diag: Diagnostic,
        causes: list[str],
        fixes: list[str],
    ) -> None:
        if platform.os == "darwin":
            libs = self.toolbox.macho_libraries(binary)
        else:
            libs = self.toolbox.needed_libraries(binary)
        allowed = [re.compile(p) for p in platform.allowed_dynamic_libs]
        rejected = [lib for lib in libs if not any(p.search(lib) for p in allowed)]
        if rejected:
            diag.failed(f"{binary.name} dynamic libraries", f"not allow-listed: {', '.join(rejected)}")
            causes.append(f"{binary.name} links non-system libraries {', '.join(rejected)} dynamically")
            fixes.append("build those libraries statically, or add system libraries to allowed_dynamic_libs")
        else:
            diag.passed(f"{binary.name} dynamic libraries", ", ".join(libs) or "none")
