"""
BuildReceipt — the result contract between the engine and build adapters.

The pipeline hands an adapter a BuildContext; the adapter returns a
receipt. Adapters never raise: every failure, including a source
integrity failure, is captured in the receipt with its error class.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from codecforge.core.models.target import Artifact


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class BuildReceipt(BaseModel):
    """Outcome of one adapter invocation."""

    adapter: str
    target: str
    status: Literal["ok", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    error_kind: str | None = None    # SourceIntegrityError, BuildError, ...
    failed_step: str | None = None   # fetch, configure, build, install, ...
    log_path: str | None = None
    artifact: Artifact | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        adapter: str,
        target: str,
        artifact: Artifact | None = None,
        output: str = "",
        **kwargs: Any,
    ) -> BuildReceipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            target=target,
            status="ok",
            artifact=artifact,
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        target: str,
        error: str,
        error_kind: str = "BuildError",
        **kwargs: Any,
    ) -> BuildReceipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            target=target,
            status="failed",
            error=error,
            error_kind=error_kind,
            **kwargs,
        )
