"""
Adapter base — the contract between the pipeline and upstream build systems.

The pipeline only talks to build systems through this protocol, never
directly to configure, cmake or meson. One adapter exists per
DependencyKind, plus one for the consumer program.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, Field

from codecforge.core.models.consumer import ConsumerSpec
from codecforge.core.models.dependency import Dependency, DependencyKind
from codecforge.core.models.platform import PlatformDescriptor
from codecforge.core.models.receipt import BuildReceipt
from codecforge.core.models.target import BuildTarget
from codecforge.core.models.version import VersionPin


class BuildContext(BaseModel):
    """Everything an adapter needs to build one target.

    The prefix is shared by every target of a (platform, tier) run; an
    adapter writes only its own library, headers and ``.pc`` file there.
    """

    target: BuildTarget
    prefix: Path
    sources_dir: Path
    log_dir: Path
    jobs: int = 1
    timeout: float = 3600.0

    @property
    def name(self) -> str:
        return self.target.name

    @property
    def dependency(self) -> Dependency:
        return self.target.dependency

    @property
    def pin(self) -> VersionPin:
        return self.target.pin

    @property
    def platform(self) -> PlatformDescriptor:
        return self.target.platform

    @property
    def log_path(self) -> Path:
        return self.log_dir / f"{self.name}.log"

    @property
    def build_dir(self) -> Path:
        """Out-of-tree build directory for cmake and meson."""
        return self.sources_dir / "build" / f"{self.name}-{self.pin.ref}"


class ConsumerContext(BaseModel):
    """Everything the consumer adapter needs to configure and link."""

    spec: ConsumerSpec
    pin: VersionPin
    platform: PlatformDescriptor
    prefix: Path
    sources_dir: Path
    log_dir: Path
    flags: list[str] = Field(default_factory=list)
    jobs: int = 1
    timeout: float = 3600.0

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def log_path(self) -> Path:
        return self.log_dir / f"{self.name}.log"

    @property
    def binary_paths(self) -> list[Path]:
        return [self.prefix / "bin" / b for b in self.spec.binaries]


class BuildAdapter(ABC):
    """Abstract base class for build adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the receipt,
    with ``error_kind`` naming the error class (SourceIntegrityError,
    SourceFetchError, BuildError).

    To create a new adapter:
        1. Subclass BuildAdapter (or SourceBuildAdapter)
        2. Implement name, kind and build
        3. Register it in the AdapterRegistry
    """

    #: The DependencyKind this adapter builds (None for the consumer)
    kind: DependencyKind | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'autotools', 'cmake')."""

    def validate(self, context: BuildContext) -> tuple[bool, str]:
        """Check that the context can be built by this adapter.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """
        if self.kind is not None and context.dependency.kind != self.kind:
            return False, (
                f"{context.name} is a {context.dependency.kind.value} dependency, "
                f"not {self.kind.value}"
            )
        return True, ""

    @abstractmethod
    def build(self, context: BuildContext) -> BuildReceipt:
        """Fetch, configure, build and install one target.

        MUST never raise exceptions. All failures are captured
        in the receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
