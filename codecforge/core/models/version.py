"""
VersionPin — the pinned source of one dependency.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class VersionPin(BaseModel):
    """Immutable ref + download locator for one dependency.

    ``ref`` is always content-addressable (commit hash or numeric
    version). The ledger refuses to construct pins from mutable aliases.
    """

    model_config = ConfigDict(frozen=True)

    dependency_name: str
    ref: str
    source_url: str = ""
    checksum: str | None = None
    source_kind: Literal["tarball", "git"] = "tarball"

    @property
    def version(self) -> str:
        """The ref without its conventional tag prefix (v1.5.2 -> 1.5.2)."""
        ref = self.ref
        for prefix in ("v", "n"):
            if ref.startswith(prefix) and ref[1:2].isdigit():
                return ref[1:]
        return ref

    @property
    def is_git(self) -> bool:
        return self.source_kind == "git"
