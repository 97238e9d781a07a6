"""
Domain models — Pydantic types for the build orchestrator.

All models are re-exported here for convenient access:

    from codecforge.core.models import Dependency, VersionPin, PlatformDescriptor
"""

from codecforge.core.models.consumer import ConsumerSpec
from codecforge.core.models.dependency import Dependency, DependencyKind, LicenseTier
from codecforge.core.models.diagnostic import Check, Diagnostic
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.receipt import BuildReceipt
from codecforge.core.models.stamp import Stamp
from codecforge.core.models.target import (
    Artifact,
    BuildTarget,
    InvalidTransitionError,
    TargetState,
)
from codecforge.core.models.version import VersionPin

__all__ = [
    "Artifact",
    "BuildReceipt",
    "BuildTarget",
    "Check",
    "ConsumerSpec",
    "Dependency",
    "DependencyKind",
    "Diagnostic",
    "InvalidTransitionError",
    "LicenseTier",
    "PlatformDescriptor",
    "Stamp",
    "TargetState",
    "VersionPin",
]
