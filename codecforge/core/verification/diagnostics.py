"""
Diagnostic helpers shared by the gates and the pipeline.
"""

from __future__ import annotations

import re

from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.receipt import BuildReceipt

# `file` output fragment → canonical architecture name (first match wins)
_ARCH_SIGNATURES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"x86-64|x86_64"), "x86_64"),
    (re.compile(r"aarch64|ARM aarch64"), "aarch64"),
    (re.compile(r"\barm64\b"), "arm64"),
    (re.compile(r"ARM, EABI|\bARM\b|\barm\b"), "arm"),
    (re.compile(r"Intel 80386|\bi386\b"), "i386"),
    (re.compile(r"RISC-V"), "riscv64"),
    (re.compile(r"PowerPC|ppc64"), "ppc64"),
]


def detect_arch(file_output: str) -> str:
    """Best-effort architecture name from ``file`` output ("unknown" if none)."""
    for pattern, arch in _ARCH_SIGNATURES:
        if pattern.search(file_output):
            return arch
    return "unknown"


def receipt_diagnostic(receipt: BuildReceipt) -> Diagnostic:
    """Turn a failed adapter receipt into a Diagnostic.

    Fetch failures carry the fetcher's own diagnostic in the receipt
    metadata; everything else is framed here from the failed step.
    """
    carried = receipt.metadata.get("diagnostic")
    if carried:
        diag = Diagnostic.model_validate(carried)
        diag.log_path = diag.log_path or receipt.log_path
        return diag

    step = receipt.failed_step or "build"
    timed_out = bool(receipt.metadata.get("timed_out"))
    diag = Diagnostic(
        gate="build",
        kind=receipt.error_kind or "BuildError",
        what=f"{receipt.target}: {step} step failed",
        target=receipt.target,
        log_path=receipt.log_path,
    )
    if step not in ("fetch", "validate", "prepare"):
        diag.passed("source fetched and verified")
    if timed_out:
        diag.failed(step, receipt.error or "timed out")
        diag.root_cause = "the target exceeded its time limit and the running step's process group was killed"
        diag.fix = "Raise 'timeout' (or 'emulated_timeout_factor') in codecforge.yml, or investigate a hang in the log"
    else:
        diag.failed(step, receipt.error or "failed")
        diag.root_cause = f"the upstream {step} step reported an error"
        diag.fix = (
            f"Read the log for the first error of the {step} step"
            + (f": {receipt.log_path}" if receipt.log_path else "")
        )
    return diag


def blocked_diagnostic(target: str, prerequisite: str) -> Diagnostic:
    """Diagnostic for a target skipped because a prerequisite failed."""
    diag = Diagnostic(
        gate="build",
        kind="BuildError",
        what=f"{target} not built: blocked by {prerequisite}",
        root_cause=f"prerequisite {prerequisite} failed, so {target} has nothing to link against",
        fix=f"Fix {prerequisite} first; {target} builds on the next run",
        target=target,
    )
    diag.failed(f"prerequisite {prerequisite}", "failed")
    return diag


def batch_diagnostic(diagnostics: list[Diagnostic], gate: str = "artifact") -> Diagnostic:
    """Fold several target failures into one report (triage mode)."""
    names = [d.target or "?" for d in diagnostics]
    batch = Diagnostic(
        gate=gate,
        kind="BatchFailure",
        what=f"{len(diagnostics)} target(s) failed: {', '.join(names)}",
        root_cause="; ".join(f"{d.target}: {d.root_cause or d.what}" for d in diagnostics),
        fix="Fix each target in turn; see the per-target diagnostics",
    )
    for d in diagnostics:
        failed = d.failed_checks
        detail = f"{failed[0].name}: {failed[0].detail}" if failed else d.what
        batch.failed(d.target or d.what, detail)
    return batch
