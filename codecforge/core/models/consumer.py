"""
ConsumerSpec — the program that links against every resolved library.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from codecforge.core.models.dependency import LicenseTier


class ConsumerSpec(BaseModel):
    """How to configure and verify the consumer program.

    The consumer is opaque: it takes a flag list plus include/library
    search paths and produces ``binaries`` under ``<prefix>/bin``.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "ffmpeg"
    ledger_name: str = "ffmpeg"
    binaries: list[str] = Field(default_factory=lambda: ["ffmpeg", "ffprobe"])

    # pkg-config names the consumer needs beyond the active dependencies
    required_pkgconfig: list[str] = Field(default_factory=list)

    base_flags: list[str] = Field(default_factory=list)
    tier_flags: dict[LicenseTier, list[str]] = Field(default_factory=dict)

    def flags_for_tier(self, tier: LicenseTier) -> list[str]:
        """Tier-level flags, cumulative across lower tiers."""
        flags: list[str] = []
        for candidate in LicenseTier:
            if tier.includes(candidate):
                flags.extend(self.tier_flags.get(candidate, []))
        return flags
