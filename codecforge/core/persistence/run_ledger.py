"""
Run ledger — append-only history of pipeline runs.

Every ``build`` writes one RunRecord line to ``<build_root>/runs.ndjson``
(newline-delimited JSON). Entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_FILE = "runs.ndjson"


class RunRecord(BaseModel):
    """A single run ledger entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""

    # What was asked
    platform: str = ""
    tier: str = ""
    selection: str = ""
    mode: str = ""

    # What happened
    status: str = ""               # ok, failed
    stage: str = ""                # last pipeline stage reached
    targets_total: int = 0
    built: list[str] = Field(default_factory=list)
    stamp_hits: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    warnings: list[str] = Field(default_factory=list)
    error: str | None = None

    # Extensible context
    context: dict[str, Any] = Field(default_factory=dict)


class RunLedger:
    """Append-only run ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path):
        self._path = path

    @classmethod
    def for_build_root(cls, build_root: Path) -> RunLedger:
        return cls(build_root / DEFAULT_LEDGER_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: RunRecord) -> None:
        """Append a record to the ledger."""
        self._path.parent.mkdir(parents=True, exist_ok=True)

        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False) + "\n"

        try:
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Run record written: %s %s/%s", record.run_id, record.platform, record.tier)
        except OSError as e:
            logger.error("Failed to write run record: %s", e)

    def read_all(self) -> list[RunRecord]:
        """Read all records, oldest first."""
        if not self._path.is_file():
            return []

        records = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(RunRecord.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt run record at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run ledger: %s", e)

        return records

    def read_recent(self, n: int = 20) -> list[RunRecord]:
        """Read the most recent N records."""
        return self.read_all()[-n:]
