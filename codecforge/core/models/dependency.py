"""
Dependency model — one third-party library in the build catalog.

A Dependency is static knowledge: how the library is built, which license
tier pulls it in, which architectures it supports, and which consumer
configure flags it contributes. It never changes after the catalog loads.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class DependencyKind(str, Enum):
    """Which upstream build system a dependency uses."""

    AUTOTOOLS = "autotools"
    CMAKE = "cmake"
    MESON = "meson"
    STATIC_DOWNLOAD = "static-download"


class LicenseTier(str, Enum):
    """License tiers, cumulative from most to least permissive."""

    FREE = "free"
    LGPL = "lgpl"
    GPL = "gpl"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @property
    def label(self) -> str:
        """License label recorded alongside artifacts built at this tier."""
        return _TIER_LABELS[self]

    def includes(self, other: LicenseTier) -> bool:
        """Whether a build at this tier includes dependencies of ``other``."""
        return other.rank <= self.rank

    @classmethod
    def parse(cls, value: str | LicenseTier) -> LicenseTier:
        """Parse a tier name, accepting the legacy aliases.

        ``bsd`` maps to ``free`` and ``non-free`` maps to ``gpl``.
        Raises ValueError for anything else.
        """
        if isinstance(value, LicenseTier):
            return value
        name = value.strip().lower()
        if name in _TIER_ALIASES:
            replacement = _TIER_ALIASES[name]
            logger.warning(
                "License tier '%s' is deprecated, use '%s' instead",
                name, replacement.value,
            )
            return replacement
        try:
            return cls(name)
        except ValueError:
            choices = ", ".join(t.value for t in _TIER_ORDER)
            raise ValueError(
                f"Invalid license tier '{value}'. Must be one of: {choices}"
            ) from None


_TIER_ORDER: list[LicenseTier] = [LicenseTier.FREE, LicenseTier.LGPL, LicenseTier.GPL]

_TIER_LABELS: dict[LicenseTier, str] = {
    LicenseTier.FREE: "BSD",
    LicenseTier.LGPL: "LGPL-2.1+",
    LicenseTier.GPL: "GPL-2.0+",
}

_TIER_ALIASES: dict[str, LicenseTier] = {
    "bsd": LicenseTier.FREE,
    "non-free": LicenseTier.GPL,
}


class Dependency(BaseModel):
    """A build target declaration from the dependency catalog.

    ``build_order_rank`` is a partial order: a dependency is built only
    after every dependency named in ``prerequisites``, and those must
    carry a strictly lower rank.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: DependencyKind
    license_tier: LicenseTier
    license_name: str = ""
    description: str = ""

    supported_architectures: list[str] | Literal["all"] = "all"
    pkgconfig_name: str
    static_library: str = ""        # e.g. libvpx.a (default: lib<pkgconfig_name>.a)
    build_order_rank: int = 0
    prerequisites: list[str] = Field(default_factory=list)

    # Consumer configure flags enabled when this dependency is active
    consumer_flags: list[str] = Field(default_factory=list)

    # Adapter knobs
    configure_args: list[str] = Field(default_factory=list)
    static_flags: list[str] | None = None   # None = adapter default
    cross_host_flag: bool = True            # autotools: pass --host=<triplet>
    source_subdir: str = ""                 # build root inside the source tree

    # Used when the upstream build installs no .pc file
    pkgconfig_libs: str = ""
    pkgconfig_libs_private: str = ""

    def supports(self, arch: str) -> bool:
        """Whether this dependency can be built for ``arch``."""
        if self.supported_architectures == "all":
            return True
        return arch in self.supported_architectures

    @property
    def library_file(self) -> str:
        """File name of the static library the build must install."""
        return self.static_library or f"lib{self.pkgconfig_name}.a"

    @property
    def link_flag(self) -> str:
        """``-l`` flag derived from the static library file name."""
        stem = self.library_file
        if stem.startswith("lib"):
            stem = stem[3:]
        if stem.endswith(".a"):
            stem = stem[:-2]
        return f"-l{stem}"
