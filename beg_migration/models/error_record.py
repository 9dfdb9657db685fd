from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the skipped-record log.

Every record the migration drops (missing reference, malformed value, failed
invoice document) becomes one ErrorRecord. ``row`` is the 1-based line of the
record in its snapshot file, -1 when unknown (file-level problems, invoice
documents).

Records are serialized as JSON Lines with a fixed key set:
``timestamp, stage, source, row, error_type, message``.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        stage: Migration stage name (``users``, ``activities``, ``invoices`` ...)
        source: Snapshot name or document path being processed
        row: Record line number (1-based). -1 when unknown
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Human readable reason
    """
    timestamp: str  # ISO8601 UTC
    stage: str
    source: str
    row: int
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(stage: str, source: str, row: int, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            stage=stage,
            source=source,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
