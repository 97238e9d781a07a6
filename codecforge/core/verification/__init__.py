"""Verification engine — the five gates and the tools they inspect with."""

from codecforge.core.verification.gates import (
    AggregateGate,
    ArtifactGate,
    FinalBinaryGate,
    ParseTimeGate,
    PreflightGate,
)
from codecforge.core.verification.probes import Toolbox

__all__ = [
    "AggregateGate",
    "ArtifactGate",
    "FinalBinaryGate",
    "ParseTimeGate",
    "PreflightGate",
    "Toolbox",
]
