"""
Platform loader — built-in platform descriptors plus YAML overrides.

Built-in descriptors come from ``core/data/catalogs/platforms.json``.
A ``platforms/`` directory may add or override records::

    platforms/
        linux-arm64-glibc.yml      # id matches a built-in: fields merge over it
        linux-riscv64-glibc.yml    # parent: linux-arm64-glibc

A record with ``parent`` inherits every field it does not set from that
platform. Consumers only ever see fully resolved descriptors.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from codecforge.core.data import get_registry
from codecforge.core.errors import PlatformConfigError
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.platform import PlatformDescriptor

logger = logging.getLogger(__name__)


def load_platform_file(path: Path) -> list[dict]:
    """Load raw platform records from one YAML file (a mapping or a list)."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise _platform_error(
            f"Cannot load platform file {path}",
            "platform file readable",
            str(e),
            "Fix the YAML syntax or remove the file",
        ) from e

    records = data if isinstance(data, list) else [data]
    for record in records:
        if not isinstance(record, dict) or not record.get("id"):
            raise _platform_error(
                f"Platform file {path} has a record without an id",
                "record shape",
                "every platform record must be a mapping with an 'id'",
                "Add 'id: <platform-id>' to each record",
            )
    logger.debug("Loaded %d platform record(s) from %s", len(records), path)
    return records


def discover_platforms(platforms_dir: Path | None = None) -> dict[str, PlatformDescriptor]:
    """Built-in descriptors merged with any overrides in ``platforms_dir``.

    Raises:
        PlatformConfigError: If a record is malformed, names a missing
            parent, or fails validation.
    """
    raw: dict[str, dict] = {r["id"]: dict(r) for r in get_registry().platforms}

    if platforms_dir is not None and platforms_dir.is_dir():
        files = sorted(platforms_dir.glob("*.yml")) + sorted(platforms_dir.glob("*.yaml"))
        for path in files:
            for record in load_platform_file(path):
                pid = record["id"]
                if pid in raw and "parent" not in record:
                    raw[pid] = {**raw[pid], **record}
                    logger.debug("Platform %s overridden by %s", pid, path)
                else:
                    raw[pid] = dict(record)
    elif platforms_dir is not None:
        logger.debug("Platforms directory not found: %s", platforms_dir)

    resolved = {pid: _validate(pid, _resolve_parents(pid, raw)) for pid in raw}
    logger.debug("Discovered %d platforms: %s", len(resolved), list(resolved))
    return resolved


def load_platform(platform_id: str, platforms_dir: Path | None = None) -> PlatformDescriptor:
    """Select one platform descriptor by id.

    Raises:
        PlatformConfigError: If the id is unknown.
    """
    platforms = discover_platforms(platforms_dir)
    platform = platforms.get(platform_id)
    if platform is None:
        raise _platform_error(
            f"Unknown platform '{platform_id}'",
            "platform lookup",
            f"'{platform_id}' has no descriptor",
            f"Use one of: {', '.join(sorted(platforms))}",
        )
    return platform


def _resolve_parents(pid: str, raw: dict[str, dict]) -> dict:
    """Flatten a record's parent chain (child fields win)."""
    chain: list[dict] = []
    seen: set[str] = set()
    current: str | None = pid
    while current is not None:
        if current in seen:
            raise _platform_error(
                f"Platform '{pid}' has a parent cycle",
                "parent chain",
                f"'{current}' appears twice in the chain",
                "Break the cycle in the 'parent' fields",
            )
        seen.add(current)
        record = raw.get(current)
        if record is None:
            raise _platform_error(
                f"Platform '{pid}' declares missing parent '{current}'",
                "parent exists",
                f"no descriptor with id '{current}'",
                "Fix the 'parent' field or add the parent descriptor",
            )
        chain.append(record)
        current = record.get("parent")

    merged: dict = {}
    for record in reversed(chain):
        merged.update(record)
    merged["id"] = pid
    merged.pop("parent", None)
    return merged


def _validate(pid: str, data: dict) -> PlatformDescriptor:
    try:
        return PlatformDescriptor.model_validate(data)
    except ValidationError as e:
        raise _platform_error(
            f"Invalid platform descriptor '{pid}'",
            "schema validation",
            str(e).splitlines()[0],
            f"Fix the '{pid}' record",
        ) from e


def _platform_error(what: str, check: str, detail: str, fix: str) -> PlatformConfigError:
    diag = Diagnostic(what=what, root_cause=detail, fix=fix)
    diag.failed(check, detail)
    return PlatformConfigError(diag)
