"""
Version ledger — pinned refs, download locators and checksums.

The ledger source is a flat ``KEY=value`` file (``versions.properties``)
maintained by an external updater::

    # Last updated: 2026-10-01
    CACHE_VERSION=1
    OPUS_VERSION=v1.5.2
    OPUS_URL=https://downloads.xiph.org/releases/opus/opus-{version}.tar.gz
    OPUS_SHA256=65c1d2f7...
    X264_VERSION=31e19f92f00c7003fa115047ce50978bc98c3a0d
    X264_GIT_URL=https://code.videolan.org/videolan/x264.git

Keys group by their ``<NAME>_`` prefix into one VersionPin each. A mutable
ref (``stable``, ``master``, ...) fails the whole load: stamps are keyed on
the ref, so a floating ref would let a stale stamp vouch for new code.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from codecforge.core.errors import InvalidRefError, unknown_dependency
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.version import VersionPin

logger = logging.getLogger(__name__)

MUTABLE_REFS = frozenset({"stable", "master", "main", "HEAD"})

_SUFFIXES = ("_VERSION", "_GIT_URL", "_URL", "_SHA256")
_COMMIT_RE = re.compile(r"^[0-9a-f]{7,40}$")
_NUMERIC_RE = re.compile(r"^(?:v|n|nasm-|openssl-)?[0-9]+(?:[.-][0-9]+)*$")
_UPDATED_RE = re.compile(r"^#\s*last[\s_-]*updated\s*:\s*(\S+)", re.IGNORECASE)


def ledger_key(name: str) -> str:
    """Map a dependency name to its ledger key prefix (svt-av1 -> SVTAV1)."""
    return re.sub(r"[-_.\s]", "", name).upper()


def is_content_addressable(ref: str) -> bool:
    """Whether a ref pins content: a commit hash or a numeric version."""
    return bool(_COMMIT_RE.match(ref) or _NUMERIC_RE.match(ref))


class VersionLedger:
    """Parsed ledger: one VersionPin per dependency key."""

    def __init__(
        self,
        pins: dict[str, VersionPin],
        cache_version: str = "",
        last_updated: str | None = None,
        source: str = "",
    ):
        self._pins = pins
        self.cache_version = cache_version
        self.last_updated = last_updated
        self.source = source

    @property
    def pins(self) -> dict[str, VersionPin]:
        return dict(self._pins)

    def __contains__(self, name: str) -> bool:
        return ledger_key(name) in self._pins

    def __len__(self) -> int:
        return len(self._pins)

    def resolve(self, name: str) -> VersionPin:
        """Look up the pin for a dependency name.

        Raises:
            UnknownDependencyError: If the ledger has no entry for it.
        """
        pin = self._pins.get(ledger_key(name))
        if pin is None:
            raise unknown_dependency(name, list(self._pins), where=f"version ledger {self.source}".strip())
        if pin.dependency_name != name:
            return pin.model_copy(update={"dependency_name": name})
        return pin

    # ── Loading ───────────────────────────────────────────────────

    @classmethod
    def load(cls, path: Path | str) -> VersionLedger:
        """Load a ledger file. Raw text goes through ``parse``.

        Raises:
            InvalidRefError: If any ref is a mutable alias or is not
                content-addressable.
        """
        path = Path(path)
        logger.debug("Loading version ledger from %s", path)
        return cls.parse(path.read_text(encoding="utf-8"), origin=str(path))

    @classmethod
    def parse(cls, text: str, origin: str = "") -> VersionLedger:
        values: dict[str, str] = {}
        last_updated: str | None = None

        for line in text.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.startswith("#"):
                match = _UPDATED_RE.match(stripped)
                if match and last_updated is None:
                    last_updated = match.group(1)
                continue
            if "=" not in stripped:
                logger.debug("Ignoring ledger line without '=': %s", stripped)
                continue
            key, value = stripped.split("=", 1)
            key = key.strip()
            if key:
                values[key] = value.strip()

        cache_version = values.pop("CACHE_VERSION", "")
        grouped: dict[str, dict[str, str]] = {}
        for key, value in values.items():
            for suffix in _SUFFIXES:
                if key.endswith(suffix):
                    grouped.setdefault(key[: -len(suffix)], {})[suffix] = value
                    break
            else:
                logger.debug("Ignoring unrecognized ledger key: %s", key)

        pins: dict[str, VersionPin] = {}
        for prefix, fields in grouped.items():
            ref = fields.get("_VERSION")
            if ref is None:
                logger.warning("Ledger entry %s has no %s_VERSION, skipping", prefix, prefix)
                continue
            validate_ref(prefix, ref)

            git_url = fields.get("_GIT_URL", "")
            url = git_url or fields.get("_URL", "")
            pins[prefix] = VersionPin(
                dependency_name=prefix.lower(),
                ref=ref,
                source_url=url.replace("{version}", ref),
                checksum=fields.get("_SHA256") or None,
                source_kind="git" if git_url or url.endswith(".git") else "tarball",
            )

        logger.info("Loaded %d version pins%s", len(pins), f" from {origin}" if origin else "")
        return cls(pins, cache_version=cache_version, last_updated=last_updated, source=origin)


def validate_ref(prefix: str, ref: str) -> None:
    """Reject a ref that does not pin content.

    Raises:
        InvalidRefError: If ``ref`` is a mutable alias or neither a commit
            hash nor a numeric version.
    """
    key = f"{prefix}_VERSION"
    if ref in MUTABLE_REFS or ref.lower() in {r.lower() for r in MUTABLE_REFS}:
        diag = Diagnostic(
            what=f"{key}={ref} uses mutable ref '{ref}'",
            root_cause=(
                f"'{ref}' is a moving alias; the stamp cache would treat different "
                "upstream code as already built"
            ),
            fix=f"Pin {key} to a commit hash (or a numeric release version) instead of '{ref}'",
        )
        diag.failed("ref immutability", f"'{ref}' is in the mutable denylist {sorted(MUTABLE_REFS)}")
        raise InvalidRefError(diag)
    if not is_content_addressable(ref):
        diag = Diagnostic(
            what=f"{key}={ref} is not content-addressable",
            root_cause=f"'{ref}' is neither a commit hash nor a numeric version",
            fix=f"Pin {key} to a commit hash (or a numeric release version)",
        )
        diag.passed("ref immutability", f"'{ref}' is not a known mutable alias")
        diag.failed("content-addressable ref", "expected hex commit or numeric version")
        raise InvalidRefError(diag)
