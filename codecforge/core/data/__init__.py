"""
Central data registry for the built-in build catalogs.

Loads base catalogs from ``codecforge/core/data/catalogs/`` once at first
access and caches them for the process lifetime. The dependency registry,
the platform loader and the consumer spec all read from here.

Usage::

    from codecforge.core.data import get_registry

    registry = get_registry()
    deps = registry.dependencies     # list[dict]
    platforms = registry.platforms   # list[dict]
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from pathlib import Path

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


def _load_json(relative_path: str) -> list | dict:
    """Load a JSON file relative to the data directory."""
    path = _DATA_DIR / relative_path
    if not path.exists():
        logger.warning("Data file not found: %s", path)
        return [] if relative_path.endswith("s.json") else {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class DataRegistry:
    """Registry of the static catalogs shipped with the package.

    Each property lazily loads its JSON file on first access and caches
    the result for the lifetime of the instance.
    """

    # ── Dependencies ─────────────────────────────────────────────

    @cached_property
    def dependencies(self) -> list[dict]:
        """Codec library declarations, in declaration order."""
        data = _load_json("catalogs/dependencies.json")
        logger.debug("Loaded %d dependency declarations", len(data))
        return data

    @cached_property
    def consumer(self) -> dict:
        """The consumer program (FFmpeg) declaration."""
        data = _load_json("catalogs/consumer.json")
        logger.debug("Loaded consumer declaration: %s", data.get("name", "?"))
        return data

    # ── Platforms ────────────────────────────────────────────────

    @cached_property
    def platforms(self) -> list[dict]:
        """Built-in platform descriptors, one record per platform id."""
        data = _load_json("catalogs/platforms.json")
        logger.debug("Loaded %d platform descriptors", len(data))
        return data


# ── Module-level singleton ───────────────────────────────────────

_registry: DataRegistry | None = None


def get_registry() -> DataRegistry:
    """Return the process-level DataRegistry singleton."""
    global _registry  # noqa: PLW0603
    if _registry is None:
        _registry = DataRegistry()
    return _registry
