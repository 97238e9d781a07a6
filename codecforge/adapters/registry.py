"""
Adapter registry — central dispatch for every build.

The registry maps each DependencyKind to exactly one adapter, plus one
consumer adapter. The pipeline never talks to adapters directly, always
through ``build`` / ``build_consumer``, which never raise.
"""

from __future__ import annotations

import logging
import time
from codecforge.adapters.base import BuildAdapter, BuildContext, ConsumerContext
from codecforge.adapters.build.autotools import AutotoolsAdapter
from codecforge.adapters.build.cmake import CMakeAdapter
from codecforge.adapters.build.consumer import ConsumerAdapter
from codecforge.adapters.build.meson import MesonAdapter
from codecforge.adapters.build.static_download import StaticDownloadAdapter
from codecforge.adapters.mock import MockAdapter
from codecforge.adapters.source.fetch import SourceFetcher
from codecforge.core.models.dependency import DependencyKind
from codecforge.core.models.receipt import BuildReceipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for build adapters.

    Features:
        - One adapter per DependencyKind, plus the consumer adapter
        - Mock mode: route every build to a MockAdapter
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[DependencyKind, BuildAdapter] = {}
        self._consumer: ConsumerAdapter | None = None
        self._mock_mode = mock_mode
        self._mock_adapter: MockAdapter | None = None

    @classmethod
    def default(cls, fetcher: SourceFetcher) -> AdapterRegistry:
        """Registry with the real adapters for every kind."""
        registry = cls()
        for adapter in (
            AutotoolsAdapter(fetcher),
            CMakeAdapter(fetcher),
            MesonAdapter(fetcher),
            StaticDownloadAdapter(fetcher),
        ):
            registry.register(adapter)
        registry.set_consumer_adapter(ConsumerAdapter(fetcher))
        return registry

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    @property
    def mock_adapter(self) -> MockAdapter | None:
        return self._mock_adapter

    def set_mock_mode(self, enabled: bool, mock_adapter: MockAdapter | None = None) -> None:
        """Enable or disable mock mode.

        Args:
            enabled: Whether to use mock mode.
            mock_adapter: Optional custom mock adapter. If None, a default
                MockAdapter is created.
        """
        self._mock_mode = enabled
        self._mock_adapter = (mock_adapter or MockAdapter()) if enabled else None

    def register(self, adapter: BuildAdapter) -> None:
        """Register an adapter for its DependencyKind."""
        if adapter.kind is None:
            raise ValueError(f"{adapter!r} declares no DependencyKind")
        if adapter.kind in self._adapters:
            logger.warning("Overwriting existing adapter for %s", adapter.kind.value)
        self._adapters[adapter.kind] = adapter
        logger.debug("Registered adapter: %s", adapter.name)

    def set_consumer_adapter(self, adapter: ConsumerAdapter) -> None:
        self._consumer = adapter

    def get(self, kind: DependencyKind) -> BuildAdapter | None:
        """Look up the adapter for a kind."""
        return self._adapters.get(kind)

    def list_adapters(self) -> list[str]:
        return [a.name for a in self._adapters.values()]

    # ── Dispatch ─────────────────────────────────────────────────

    def build(self, context: BuildContext) -> BuildReceipt:
        """Build one target through the adapter for its kind. Never raises."""
        start_time = time.monotonic()
        kind = context.dependency.kind

        adapter: BuildAdapter | None
        if self._mock_mode:
            adapter = self._mock_adapter
        else:
            adapter = self._adapters.get(kind)

        if adapter is None:
            return BuildReceipt.failure(
                adapter=kind.value,
                target=context.name,
                error=f"No adapter registered for '{kind.value}'",
            )

        is_valid, error_msg = adapter.validate(context)
        if not is_valid:
            return BuildReceipt.failure(
                adapter=adapter.name,
                target=context.name,
                error=f"Validation failed: {error_msg}",
                failed_step="validate",
            )

        try:
            receipt = adapter.build(context)
        except Exception as e:
            # Adapters should never raise; surface it as a build failure
            logger.exception("Adapter %s raised while building %s", adapter.name, context.name)
            receipt = BuildReceipt.failure(
                adapter=adapter.name,
                target=context.name,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = receipt.duration_ms or int((time.monotonic() - start_time) * 1000)
        return receipt

    def build_consumer(self, context: ConsumerContext) -> BuildReceipt:
        """Build the consumer program. Never raises."""
        start_time = time.monotonic()
        if self._mock_mode and self._mock_adapter is not None:
            build = self._mock_adapter.build_consumer
            name = self._mock_adapter.name
        elif self._consumer is not None:
            build = self._consumer.build
            name = self._consumer.name
        else:
            return BuildReceipt.failure(
                adapter="consumer",
                target=context.name,
                error="No consumer adapter registered",
            )

        try:
            receipt = build(context)
        except Exception as e:
            logger.exception("Consumer adapter raised while building %s", context.name)
            receipt = BuildReceipt.failure(adapter=name, target=context.name, error=f"Unexpected error: {e}")

        receipt.duration_ms = receipt.duration_ms or int((time.monotonic() - start_time) * 1000)
        return receipt
