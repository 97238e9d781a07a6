"""
Stamp store — completion markers for built and verified targets.

A stamp is a small JSON file ``<stamps>/<key>.stamp``. The key hashes
every input that can change the artifact (dependency, ref, checksum,
platform, toolchain and flags, CACHE_VERSION), so an input change simply
misses the old stamp. Writes are atomic (temp file, then rename) and only
happen after the artifact gate passes.

The consumer program gets a stamp of its own, written after the final
binary gate. Its key folds in the stamp keys of every linked library.

Locking is two-level: an in-process lock per key serializes worker
threads, and an advisory ``flock`` on ``<key>.lock`` serializes separate
processes sharing the same build root.
"""

from __future__ import annotations

import contextlib
import fcntl
import hashlib
import json
import logging
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from codecforge.core.models.consumer import ConsumerSpec
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.stamp import Stamp
from codecforge.core.models.target import BuildTarget
from codecforge.core.models.version import VersionPin

logger = logging.getLogger(__name__)

STAMP_SUFFIX = ".stamp"
LOCK_SUFFIX = ".lock"


class StampStore:
    """Stamps for one (platform, tier) build directory."""

    def __init__(self, stamps_dir: Path, cache_version: str = ""):
        self.stamps_dir = stamps_dir
        self.cache_version = cache_version
        self._key_locks: dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    # ── Keys ─────────────────────────────────────────────────────

    def key_inputs(self, target: BuildTarget) -> dict:
        """Everything that identifies a build of ``target``."""
        dep = target.dependency
        pin = target.pin
        platform = target.platform
        return {
            "dependency": dep.name,
            "ref": pin.ref,
            "source_url": pin.source_url,
            "checksum": pin.checksum,
            "platform": platform.id,
            "kind": dep.kind.value,
            "flags": {
                "configure_args": dep.configure_args,
                "static_flags": dep.static_flags,
                "cross_host_flag": dep.cross_host_flag,
                "source_subdir": dep.source_subdir,
                "platform_args": platform.args_for(dep.name),
                **_toolchain(platform),
            },
            "cache_version": self.cache_version,
        }

    def key_for(self, target: BuildTarget) -> str:
        """sha256 over the canonical JSON of ``key_inputs``."""
        return _digest(self.key_inputs(target))

    def consumer_key_inputs(
        self,
        spec: ConsumerSpec,
        pin: VersionPin,
        platform: PlatformDescriptor,
        flags: list[str],
        dependency_keys: list[str],
    ) -> dict:
        """Everything that identifies a build of the consumer program.

        ``dependency_keys`` are the stamp keys of the libraries it links,
        so rebuilding any of them with new inputs invalidates this stamp.
        """
        return {
            "consumer": spec.name,
            "ref": pin.ref,
            "source_url": pin.source_url,
            "checksum": pin.checksum,
            "platform": platform.id,
            "binaries": spec.binaries,
            "flags": flags,
            "toolchain": {**_toolchain(platform), "extra_link_libs": platform.extra_link_libs},
            "dependencies": sorted(dependency_keys),
            "cache_version": self.cache_version,
        }

    def consumer_key(
        self,
        spec: ConsumerSpec,
        pin: VersionPin,
        platform: PlatformDescriptor,
        flags: list[str],
        dependency_keys: list[str],
    ) -> str:
        """sha256 over ``consumer_key_inputs``."""
        return _digest(self.consumer_key_inputs(spec, pin, platform, flags, dependency_keys))

    def _path(self, key: str) -> Path:
        return self.stamps_dir / f"{key}{STAMP_SUFFIX}"

    # ── Queries ──────────────────────────────────────────────────

    def is_stamped(self, key: str) -> bool:
        """Whether a valid stamp exists for ``key``."""
        stamp = self._read(self._path(key))
        return stamp is not None and stamp.key == key

    def get(self, key: str) -> Stamp | None:
        return self._read(self._path(key))

    def list(self) -> list[Stamp]:
        """All readable stamps, by dependency name."""
        if not self.stamps_dir.is_dir():
            return []
        stamps = [s for p in sorted(self.stamps_dir.glob(f"*{STAMP_SUFFIX}")) if (s := self._read(p))]
        return sorted(stamps, key=lambda s: (s.dependency, s.timestamp))

    def _read(self, path: Path) -> Stamp | None:
        if not path.is_file():
            return None
        try:
            return Stamp.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable stamp %s: %s", path, e)
            return None

    # ── Writes ───────────────────────────────────────────────────

    def stamp(self, key: str, target: BuildTarget) -> Stamp:
        """Record ``target`` as built and verified under ``key``."""
        return self.record(key, target.name, target.pin.ref, target.platform.id)

    def record(self, key: str, name: str, ref: str, platform_id: str) -> Stamp:
        """Write the stamp for ``name`` under ``key``.

        Stale stamps of the same name (other keys) are pruned.
        """
        stamp = Stamp(key=key, dependency=name, ref=ref, platform=platform_id)
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: temp file in same directory, then rename
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".stamp_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(stamp.model_dump_json(indent=2) + "\n")
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

        self._prune(name, keep=key)
        logger.debug("Stamped %s (%s)", name, key[:12])
        return stamp

    def _prune(self, dependency: str, keep: str) -> None:
        for old in self.list():
            if old.dependency == dependency and old.key != keep:
                self._path(old.key).unlink(missing_ok=True)
                logger.debug("Pruned stale stamp for %s (%s)", dependency, old.key[:12])

    def remove(self, key: str) -> bool:
        path = self._path(key)
        if path.is_file():
            path.unlink()
            return True
        return False

    def clear(self) -> int:
        """Delete every stamp (and lock file). Returns the stamp count removed."""
        if not self.stamps_dir.is_dir():
            return 0
        removed = 0
        for path in self.stamps_dir.glob(f"*{STAMP_SUFFIX}"):
            path.unlink(missing_ok=True)
            removed += 1
        for path in self.stamps_dir.glob(f"*{LOCK_SUFFIX}"):
            path.unlink(missing_ok=True)
        logger.info("Cleared %d stamp(s) from %s", removed, self.stamps_dir)
        return removed

    # ── Locking ──────────────────────────────────────────────────

    def _get_key_lock(self, key: str) -> threading.Lock:
        """Get or create the in-process lock for a key."""
        with self._key_locks_guard:
            if key not in self._key_locks:
                self._key_locks[key] = threading.Lock()
            return self._key_locks[key]

    @contextlib.contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """Hold the build lock for ``key`` (threads and processes)."""
        self.stamps_dir.mkdir(parents=True, exist_ok=True)
        with self._get_key_lock(key):
            with open(self.stamps_dir / f"{key}{LOCK_SUFFIX}", "w", encoding="utf-8") as fh:
                fcntl.flock(fh, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(fh, fcntl.LOCK_UN)


def _toolchain(platform: PlatformDescriptor) -> dict:
    return {
        "cc": platform.c_compiler,
        "cxx": platform.cxx_compiler,
        "ar": platform.archiver,
        "cross_prefix": platform.cross_prefix,
        "cflags": platform.cflags,
        "ldflags": platform.ldflags,
    }


def _digest(inputs: dict) -> str:
    payload = json.dumps(inputs, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
