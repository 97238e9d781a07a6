"""
Dependency registry — the static catalog of buildable libraries.

The registry is loaded once per run, from the built-in JSON catalog or a
user-supplied YAML/JSON file, and validated as a whole before anything
else reads it: every prerequisite must exist, must not sit in a more
restrictive license tier than its dependent, and must carry a strictly
lower ``build_order_rank``. That last rule makes cycles impossible.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from codecforge.core.data import get_registry
from codecforge.core.errors import PlatformConfigError, unknown_dependency
from codecforge.core.models.consumer import ConsumerSpec
from codecforge.core.models.dependency import Dependency, LicenseTier
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.platform import PlatformDescriptor

logger = logging.getLogger(__name__)


class DependencyRegistry:
    """Read-only catalog of Dependency declarations plus the consumer spec."""

    def __init__(self, dependencies: list[Dependency], consumer: ConsumerSpec | None = None):
        self._order: list[str] = []
        self._deps: dict[str, Dependency] = {}
        for dep in dependencies:
            if dep.name in self._deps:
                raise _catalog_error(
                    f"Dependency '{dep.name}' is declared twice",
                    "duplicate name",
                    f"'{dep.name}' appears more than once in the catalog",
                    "Remove or rename one of the declarations",
                )
            self._deps[dep.name] = dep
            self._order.append(dep.name)
        self.consumer = consumer or ConsumerSpec()
        self._validate()
        logger.debug("Dependency registry ready: %s", self._order)

    # ── Queries ──────────────────────────────────────────────────

    def all(self) -> list[Dependency]:
        """Every dependency, in declaration order."""
        return [self._deps[name] for name in self._order]

    def names(self) -> list[str]:
        return list(self._order)

    def get(self, name: str) -> Dependency:
        """Look up a dependency by name.

        Raises:
            UnknownDependencyError: If no dependency has that name.
        """
        dep = self._deps.get(name)
        if dep is None:
            raise unknown_dependency(name, self._order)
        return dep

    def __contains__(self, name: str) -> bool:
        return name in self._deps

    def __len__(self) -> int:
        return len(self._deps)

    def supported_on(self, dep: Dependency, platform: PlatformDescriptor) -> bool:
        """Whether ``dep`` can be built for the platform's architecture."""
        return dep.supports(platform.arch)

    def by_tier(self, tier: LicenseTier | str) -> list[Dependency]:
        """Dependencies included at ``tier``, ordered by rank then declaration."""
        tier = LicenseTier.parse(tier)
        selected = [d for d in self.all() if tier.includes(d.license_tier)]
        # sorted() is stable, so declaration order breaks rank ties
        return sorted(selected, key=lambda d: d.build_order_rank)

    def by_pkgconfig(self) -> dict[str, Dependency]:
        """pkg-config name → dependency."""
        return {d.pkgconfig_name: d for d in self.all()}

    # ── Validation ───────────────────────────────────────────────

    def _validate(self) -> None:
        for dep in self.all():
            for prereq_name in dep.prerequisites:
                prereq = self._deps.get(prereq_name)
                if prereq is None:
                    raise _catalog_error(
                        f"Dependency '{dep.name}' requires unknown dependency '{prereq_name}'",
                        "prerequisite exists",
                        f"'{prereq_name}' is not declared",
                        f"Declare '{prereq_name}' or remove it from {dep.name}.prerequisites",
                    )
                if not dep.license_tier.includes(prereq.license_tier):
                    raise _catalog_error(
                        f"Dependency '{dep.name}' ({dep.license_tier.value}) requires "
                        f"'{prereq_name}' ({prereq.license_tier.value})",
                        "prerequisite tier",
                        f"'{prereq_name}' would be missing from a {dep.license_tier.value} build",
                        f"Move '{prereq_name}' to tier {dep.license_tier.value} or lower",
                    )
                if prereq.build_order_rank >= dep.build_order_rank:
                    raise _catalog_error(
                        f"Dependency '{dep.name}' (rank {dep.build_order_rank}) requires "
                        f"'{prereq_name}' (rank {prereq.build_order_rank})",
                        "prerequisite rank",
                        "a prerequisite must rank strictly lower than its dependent",
                        f"Give '{dep.name}' a build_order_rank above {prereq.build_order_rank}",
                    )

    # ── Loading ──────────────────────────────────────────────────

    @classmethod
    def builtin(cls) -> DependencyRegistry:
        """Registry from the catalogs shipped with the package."""
        data = get_registry()
        return cls.from_data(data.dependencies, data.consumer, origin="built-in catalog")

    @classmethod
    def from_data(
        cls,
        dependencies: list[dict],
        consumer: dict | None = None,
        origin: str = "catalog",
    ) -> DependencyRegistry:
        try:
            deps = [Dependency.model_validate(item) for item in dependencies]
            spec = ConsumerSpec.model_validate(consumer) if consumer else None
        except ValidationError as e:
            raise _catalog_error(
                f"Invalid dependency declaration in {origin}",
                "schema validation",
                str(e).splitlines()[0],
                f"Fix the entry in {origin}",
            ) from e
        return cls(deps, spec)

    @classmethod
    def from_file(cls, path: Path) -> DependencyRegistry:
        """Load a catalog file (YAML or JSON).

        The file is either a list of dependencies or a mapping with a
        ``dependencies`` list and an optional ``consumer`` mapping. A
        missing ``consumer`` falls back to the built-in one.
        """
        logger.debug("Loading dependency catalog from %s", path)
        try:
            raw = path.read_text(encoding="utf-8")
            data = json.loads(raw) if path.suffix == ".json" else yaml.safe_load(raw)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise _catalog_error(
                f"Cannot read dependency catalog {path}",
                "catalog readable",
                str(e),
                "Check the catalog_file path and its syntax",
            ) from e

        if isinstance(data, list):
            deps, consumer = data, None
        elif isinstance(data, dict):
            deps, consumer = data.get("dependencies", []), data.get("consumer")
        else:
            raise _catalog_error(
                f"Dependency catalog {path} is not a list or mapping",
                "catalog shape",
                f"got {type(data).__name__}",
                "Use a list of dependencies or a mapping with a 'dependencies' key",
            )
        if consumer is None:
            consumer = get_registry().consumer
        return cls.from_data(deps, consumer, origin=str(path))


def _catalog_error(what: str, check: str, detail: str, fix: str) -> PlatformConfigError:
    diag = Diagnostic(what=what, root_cause=detail, fix=fix)
    diag.failed(check, detail)
    return PlatformConfigError(diag)
