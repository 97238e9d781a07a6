"""
License resolver — which targets a (tier, platform) pair builds.

Tiers are cumulative (free ⊆ lgpl ⊆ gpl). The ActiveSet is the registry's
tier selection filtered by architecture support and paired with the
ledger's pins. Consumer configure flags derive from the ActiveSet alone,
so a dependency dropped for a platform can never leave its enable flag
behind.
"""

from __future__ import annotations

import logging

from codecforge.core.catalog import DependencyRegistry
from codecforge.core.ledger import VersionLedger
from codecforge.core.models.dependency import LicenseTier
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.target import BuildTarget

logger = logging.getLogger(__name__)


class LicenseResolver:
    """Resolve ActiveSets and the consumer flags they imply."""

    def __init__(self, registry: DependencyRegistry, ledger: VersionLedger):
        self.registry = registry
        self.ledger = ledger

    def active_set(self, tier: LicenseTier | str, platform: PlatformDescriptor) -> list[BuildTarget]:
        """Ordered BuildTargets for ``tier`` on ``platform``.

        Raises:
            UnknownDependencyError: If an active dependency has no ledger pin.
        """
        tier = LicenseTier.parse(tier)
        targets: list[BuildTarget] = []
        for dep in self.registry.by_tier(tier):
            if not self.registry.supported_on(dep, platform):
                logger.debug(
                    "Dropping %s: unsupported on %s (%s)", dep.name, platform.id, platform.arch,
                )
                continue
            pin = self.ledger.resolve(dep.name)
            targets.append(BuildTarget(dependency=dep, pin=pin, platform=platform))

        # A prerequisite dropped for this arch takes its dependents with it
        active = {t.name for t in targets}
        kept: list[BuildTarget] = []
        for target in targets:
            missing = [p for p in target.prerequisites if p not in active]
            if missing:
                logger.debug(
                    "Dropping %s: prerequisite(s) %s unsupported on %s",
                    target.name, missing, platform.id,
                )
                active.discard(target.name)
                continue
            kept.append(target)

        logger.info(
            "Active set for %s/%s: %s", tier.value, platform.id, [t.name for t in kept],
        )
        return kept

    def consumer_flags(
        self,
        active_set: list[BuildTarget],
        platform: PlatformDescriptor,
        tier: LicenseTier | str,
    ) -> list[str]:
        """Consumer configure flags: base + tier + platform + one set per active target."""
        tier = LicenseTier.parse(tier)
        consumer = self.registry.consumer
        flags: list[str] = []
        flags.extend(consumer.base_flags)
        flags.extend(consumer.flags_for_tier(tier))
        flags.extend(platform.consumer_flags)
        for target in active_set:
            flags.extend(target.dependency.consumer_flags)
        # dedupe, first occurrence wins
        return list(dict.fromkeys(flags))

    def required_pkgconfig(self, active_set: list[BuildTarget]) -> list[str]:
        """Every pkg-config name the consumer build must resolve."""
        names = [t.dependency.pkgconfig_name for t in active_set]
        names.extend(self.registry.consumer.required_pkgconfig)
        return list(dict.fromkeys(names))
