"""
BuildTarget — a dependency resolved against a pin and a platform.

Lifecycle:

    pending → building → built → verified → stamped
        └──────────┴─────────┴──────→ failed (terminal)

A stamp hit moves a target straight from pending to stamped.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from codecforge.core.models.dependency import Dependency
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.version import VersionPin

logger = logging.getLogger(__name__)


class TargetState(str, Enum):
    PENDING = "pending"
    BUILDING = "building"
    BUILT = "built"
    VERIFIED = "verified"
    STAMPED = "stamped"
    FAILED = "failed"


_TRANSITIONS: dict[TargetState, set[TargetState]] = {
    TargetState.PENDING: {TargetState.BUILDING, TargetState.STAMPED, TargetState.FAILED},
    TargetState.BUILDING: {TargetState.BUILT, TargetState.FAILED},
    TargetState.BUILT: {TargetState.VERIFIED, TargetState.FAILED},
    TargetState.VERIFIED: {TargetState.STAMPED, TargetState.FAILED},
    TargetState.STAMPED: set(),
    TargetState.FAILED: set(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a target is moved along an edge the lifecycle forbids."""


class Artifact(BaseModel):
    """What a successful adapter run installed into the prefix."""

    target: str
    prefix: str
    static_library: str
    pkgconfig_file: str
    version: str = ""
    synthesized_pkgconfig: bool = False


class BuildTarget(BaseModel):
    """Dependency × VersionPin × PlatformDescriptor, plus run state."""

    dependency: Dependency
    pin: VersionPin
    platform: PlatformDescriptor
    state: TargetState = TargetState.PENDING
    artifact: Artifact | None = None
    diagnostic: Diagnostic | None = None
    stamp_hit: bool = False
    history: list[TargetState] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.dependency.name

    @property
    def prerequisites(self) -> list[str]:
        return list(self.dependency.prerequisites)

    @property
    def done(self) -> bool:
        return self.state in (TargetState.STAMPED, TargetState.FAILED)

    def transition(self, new_state: TargetState) -> None:
        """Move to ``new_state``, enforcing the lifecycle edges."""
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"{self.name}: cannot go from {self.state.value} to {new_state.value}"
            )
        logger.debug("%s: %s → %s", self.name, self.state.value, new_state.value)
        self.history.append(self.state)
        self.state = new_state

    def fail(self, diagnostic: Diagnostic) -> None:
        """Mark the target failed with the diagnostic that caused it."""
        if diagnostic.target is None:
            diagnostic.target = self.name
        self.diagnostic = diagnostic
        if self.state != TargetState.FAILED:
            self.transition(TargetState.FAILED)

    def library_path(self, prefix: Path) -> Path:
        return prefix / "lib" / self.dependency.library_file

    def pkgconfig_path(self, prefix: Path) -> Path:
        return self.platform.search_dir(prefix) / f"{self.dependency.pkgconfig_name}.pc"
