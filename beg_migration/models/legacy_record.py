from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""LegacyRecord model for snapshot rows.

A LegacyRecord is one untyped object from a line-delimited JSON export. The
legacy data is loose (numbers as strings, empty strings for missing values),
so the accessors coerce where it is safe and return ``None`` otherwise.
"""

__all__ = [
    "LegacyRecord",
]


@dataclass(frozen=True)
class LegacyRecord:
    """Single record read from a snapshot file.

    ``line_number`` is the 1-based line in the source file, -1 when the record
    was built in memory.
    """
    values: dict[str, Any] = field(default_factory=dict)
    line_number: int = -1

    def get(self, key: str, default: Any = None) -> Any:
        value = self.values.get(key)
        return default if value is None else value

    def has(self, key: str) -> bool:
        """True when ``key`` holds something other than None / blank text."""
        value = self.values.get(key)
        if value is None:
            return False
        if isinstance(value, str) and not value.strip():
            return False
        return True

    def get_string(self, key: str, default: str | None = None) -> str | None:
        """Return the value as stripped text, ``default`` when absent or blank."""
        value = self.values.get(key)
        if value is None:
            return default
        text = str(value).strip()
        return text if text else default

    def get_int(self, key: str, default: int | None = None) -> int | None:
        value = self.values.get(key)
        if value is None or isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if value.is_integer() else default
        try:
            number = float(str(value).strip())
        except ValueError:
            return default
        return int(number) if number.is_integer() else default

    def get_optional_float(self, key: str) -> float | None:
        value = self.values.get(key)
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(str(value).strip().replace(",", "."))
        except ValueError:
            return None

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get_optional_float(key)
        return default if value is None else value
