"""
Diagnostic — the structured failure report every gate produces.

The rendered form is a fixed four-part template:

    <what failed>
    Diagnosis:
      [PASS] check: detail
      [FAIL] check: detail
    Root cause: <inferred cause>
    Fix: <remediation>

Callers build a Diagnostic, never a free-text message, so the same
ordering of facts shows up for every failure in every gate.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class Check(BaseModel):
    """One pass/fail observation in a diagnosis."""

    name: str
    passed: bool
    detail: str = ""

    def render(self) -> str:
        marker = "[PASS]" if self.passed else "[FAIL]"
        if self.detail:
            return f"{marker} {self.name}: {self.detail}"
        return f"{marker} {self.name}"


class Diagnostic(BaseModel):
    """Structured, root-cause-oriented failure description."""

    gate: str = ""                 # parse-time, preflight, artifact, aggregate, final, build
    kind: str = ""                 # error class name
    what: str
    checks: list[Check] = Field(default_factory=list)
    root_cause: str = ""
    fix: str = ""
    target: str | None = None
    log_path: str | None = None

    def passed(self, name: str, detail: str = "") -> Diagnostic:
        self.checks.append(Check(name=name, passed=True, detail=detail))
        return self

    def failed(self, name: str, detail: str = "") -> Diagnostic:
        self.checks.append(Check(name=name, passed=False, detail=detail))
        return self

    @property
    def failed_checks(self) -> list[Check]:
        return [c for c in self.checks if not c.passed]

    def render(self) -> str:
        lines = [self.what, "Diagnosis:"]
        if self.checks:
            lines.extend(f"  {c.render()}" for c in self.checks)
        else:
            lines.append("  (no checks recorded)")
        lines.append(f"Root cause: {self.root_cause or 'unknown'}")
        lines.append(f"Fix: {self.fix or 'see log output'}")
        if self.log_path:
            lines.append(f"Log: {self.log_path}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.render()
