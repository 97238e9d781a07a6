"""
Error taxonomy — every surfaced failure carries a Diagnostic.

    CodecForgeError
    ├── InvalidRefError            ledger, fatal, before any build
    ├── UnknownDependencyError     registry/ledger, fatal
    ├── PlatformConfigError        descriptor loading / parse-time gate
    ├── PreflightError             preflight gate, aborts the platform
    ├── SourceFetchError           network, retried before surfacing
    ├── SourceIntegrityError       checksum mismatch, before any compiler
    ├── BuildError                 adapter, fatal for that target
    ├── ArtifactVerificationError  artifact gate, fatal for that target
    ├── MissingDependencyError     aggregate gate, before the consumer build
    └── LinkageViolationError      final binary gate

IsolationLeakWarning is a warning, not an error: it is collected and
reported, never raised.
"""

from __future__ import annotations

from codecforge.core.models.diagnostic import Diagnostic


class CodecForgeError(Exception):
    """Base class: a failure with a structured diagnostic."""

    gate = ""

    def __init__(self, diagnostic: Diagnostic):
        if not diagnostic.kind:
            diagnostic.kind = type(self).__name__
        if not diagnostic.gate:
            diagnostic.gate = self.gate
        self.diagnostic = diagnostic
        super().__init__(diagnostic.render())


class InvalidRefError(CodecForgeError):
    gate = "parse-time"


class UnknownDependencyError(CodecForgeError):
    gate = "parse-time"


class PlatformConfigError(CodecForgeError):
    gate = "parse-time"


class PreflightError(CodecForgeError):
    gate = "preflight"


class SourceFetchError(CodecForgeError):
    gate = "build"


class SourceIntegrityError(CodecForgeError):
    gate = "build"


class BuildError(CodecForgeError):
    gate = "build"


class ArtifactVerificationError(CodecForgeError):
    gate = "artifact"


class MissingDependencyError(CodecForgeError):
    gate = "aggregate"


class LinkageViolationError(CodecForgeError):
    gate = "final"


class IsolationLeakWarning(UserWarning):
    """The isolated pkg-config path resolves a system-only package."""

    def __init__(self, diagnostic: Diagnostic):
        if not diagnostic.kind:
            diagnostic.kind = type(self).__name__
        diagnostic.gate = diagnostic.gate or "preflight"
        self.diagnostic = diagnostic
        super().__init__(diagnostic.render())


ERROR_CLASSES: dict[str, type[CodecForgeError]] = {
    cls.__name__: cls
    for cls in (
        InvalidRefError,
        UnknownDependencyError,
        PlatformConfigError,
        PreflightError,
        SourceFetchError,
        SourceIntegrityError,
        BuildError,
        ArtifactVerificationError,
        MissingDependencyError,
        LinkageViolationError,
    )
}


def unknown_dependency(name: str, known: list[str], where: str = "catalog") -> UnknownDependencyError:
    """Build the standard UnknownDependencyError for a missing name."""
    diag = Diagnostic(
        what=f"Unknown dependency '{name}'",
        root_cause=f"'{name}' is not declared in the {where}",
        fix=f"Use one of: {', '.join(sorted(known)) or '(none declared)'}",
    )
    diag.failed(f"lookup in {where}", f"'{name}' not found")
    return UnknownDependencyError(diag)
