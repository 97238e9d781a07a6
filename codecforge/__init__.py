"""codecforge — cross-platform static codec library build orchestrator."""

__version__ = "0.1.0"
