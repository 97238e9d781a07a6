"""
Mock adapter — universal test double for dependency and consumer builds.

Used in mock mode to simulate builds without touching any compiler. By
default every build succeeds and writes fake artifacts (a static library,
a header and a ``.pc`` file) into the prefix, so the real gates have
something to inspect. Outcomes are configurable per target name.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from codecforge.adapters.base import BuildAdapter, BuildContext, ConsumerContext
from codecforge.adapters.build.pkgconfig import ensure_pkgconfig
from codecforge.core.models.receipt import BuildReceipt
from codecforge.core.models.target import Artifact


@dataclass
class MockCall:
    """One recorded build invocation."""

    target: str
    started: float
    ended: float = 0.0
    thread: str = ""


class MockAdapter(BuildAdapter):
    """Universal mock adapter for testing.

    Args:
        adapter_name: Name reported on receipts.
        write_artifacts: Write fake library/header/.pc files on success.
        delay: Seconds each build pretends to take.
        on_build: Hook called with the context at the start of every build.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        write_artifacts: bool = True,
        delay: float = 0.0,
        on_build: Callable[[BuildContext | ConsumerContext], None] | None = None,
    ):
        self._name = adapter_name
        self._write_artifacts = write_artifacts
        self._delay = delay
        self._on_build = on_build
        self._responses: dict[str, BuildReceipt] = {}
        self._skip_pkgconfig: set[str] = set()
        self._call_log: list[MockCall] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[MockCall]:
        """All build invocations this mock has received, in call order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def built(self) -> list[str]:
        """Target names, in the order their builds started."""
        return [c.target for c in self._call_log]

    def validate(self, context: BuildContext) -> tuple[bool, str]:
        return True, ""

    def set_response(self, target: str, receipt: BuildReceipt) -> None:
        """Set a custom receipt for a specific target name."""
        self._responses[target] = receipt

    def set_failure(self, target: str, error: str = "Mock failure", error_kind: str = "BuildError") -> None:
        """Configure a specific target to fail."""
        self._responses[target] = BuildReceipt.failure(
            adapter=self._name,
            target=target,
            error=error,
            error_kind=error_kind,
            failed_step="build",
        )

    def skip_pkgconfig(self, target: str) -> None:
        """Report success for ``target`` but install no ``.pc`` file."""
        self._skip_pkgconfig.add(target)

    # ── Builds ───────────────────────────────────────────────────

    def build(self, context: BuildContext) -> BuildReceipt:
        call = self._start(context.name, context)
        try:
            if context.name in self._responses:
                return self._responses[context.name]

            lib = context.target.library_path(context.prefix)
            pc_path = context.target.pkgconfig_path(context.prefix)
            synthesized = False
            if self._write_artifacts:
                lib.parent.mkdir(parents=True, exist_ok=True)
                lib.write_bytes(b"!<arch>\nmock " + context.name.encode() + b"\n")
                header = context.prefix / "include" / f"{context.dependency.pkgconfig_name}.h"
                header.parent.mkdir(parents=True, exist_ok=True)
                header.write_text(f"/* {context.name} {context.pin.ref} */\n", encoding="utf-8")
                if context.name not in self._skip_pkgconfig:
                    pc_path, synthesized = ensure_pkgconfig(
                        context.dependency, context.pin, context.platform, context.prefix,
                    )

            return BuildReceipt.success(
                adapter=self._name,
                target=context.name,
                artifact=Artifact(
                    target=context.name,
                    prefix=str(context.prefix),
                    static_library=str(lib),
                    pkgconfig_file=str(pc_path),
                    version=context.pin.version,
                    synthesized_pkgconfig=synthesized,
                ),
                output="[mock] built",
                metadata={"mock": True},
            )
        finally:
            call.ended = time.monotonic()

    def build_consumer(self, context: ConsumerContext) -> BuildReceipt:
        call = self._start(context.name, context)
        try:
            if context.name in self._responses:
                return self._responses[context.name]
            if self._write_artifacts:
                for path in context.binary_paths:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_bytes(b"\x7fELF mock " + path.name.encode() + b"\n")
            return BuildReceipt.success(
                adapter=self._name,
                target=context.name,
                output="[mock] built consumer",
                metadata={
                    "mock": True,
                    "flags": list(context.flags),
                    "binaries": [str(p) for p in context.binary_paths],
                },
            )
        finally:
            call.ended = time.monotonic()

    def _start(self, target: str, context: BuildContext | ConsumerContext) -> MockCall:
        call = MockCall(target=target, started=time.monotonic(), thread=threading.current_thread().name)
        with self._lock:
            self._call_log.append(call)
        if self._on_build is not None:
            self._on_build(context)
        if self._delay:
            time.sleep(self._delay)
        return call

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
        self._skip_pkgconfig.clear()
