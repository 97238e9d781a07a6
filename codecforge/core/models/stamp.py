"""
Stamp — completion marker for a built and verified target.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Stamp(BaseModel):
    """A (dependency, ref, platform, flags) tuple recorded as done.

    Only the stamp store writes these, and only after the artifact gate
    passes. Any change to a key input yields a different key, so an old
    stamp can never vouch for a new configuration.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    dependency: str
    ref: str
    platform: str
    timestamp: str = Field(default_factory=_now_iso)
