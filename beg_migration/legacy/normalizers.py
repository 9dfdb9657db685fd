from __future__ import annotations

import re
import unicodedata
from datetime import UTC, datetime, timedelta

"""Locale normalizers for legacy date / number / filename representations.

The legacy desktop database exports timestamps as ``MM/DD/YY HH:MM:SS`` in
Swiss local time, the invoice documents use ``DD.MM.YY`` dates and Swiss
formatted numbers (``3'493.75``). Everything here is a pure function.
"""

__all__ = [
    "LEGACY_TIME_OFFSET",
    "parse_legacy_date",
    "parse_legacy_doc_date",
    "parse_swiss_number",
    "normalize_filename_ascii",
    "split_business_code",
]

# Fixed source timezone bias. DST transitions are not modelled.
LEGACY_TIME_OFFSET = timedelta(hours=2)

# Two-digit years up to this value belong to the 2000s, the rest to the 1900s.
TWO_DIGIT_YEAR_PIVOT = 30

_NUMERIC_PREFIX = re.compile(r"-?(\d+\.?\d*|\.\d+)")
_NON_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def _expand_year(year: int) -> int:
    if year < 100:
        return 2000 + year if year <= TWO_DIGIT_YEAR_PIVOT else 1900 + year
    return year


def parse_legacy_date(text: str | None, offset: timedelta = LEGACY_TIME_OFFSET) -> datetime:
    """Parse an Access export timestamp ``MM/DD/YY HH:MM:SS``.

    Malformed input never raises: the current UTC time is returned instead.
    The wall-clock value is shifted by ``offset`` exactly once and returned as
    an aware UTC datetime.
    """
    if not text:
        return datetime.now(UTC)
    parts = text.strip().split(" ")
    if len(parts) != 2:
        return datetime.now(UTC)
    date_part, time_part = parts
    try:
        month, day, year = (int(p) for p in date_part.split("/"))
        hours, minutes, seconds = (int(p) for p in time_part.split(":"))
        wall_clock = datetime(_expand_year(year), month, day, hours, minutes, seconds, tzinfo=UTC)
    except ValueError:
        return datetime.now(UTC)
    return wall_clock + offset


def parse_legacy_doc_date(text: str | None) -> datetime | None:
    """Parse ``DD.MM.YY`` / ``DD.MM.YYYY`` into midnight UTC, ``None`` when unusable."""
    if not text or not text.strip():
        return None
    parts = text.strip().split(".")
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
        return datetime(_expand_year(year), month, day, tzinfo=UTC)
    except ValueError:
        return None


def parse_swiss_number(text: str | None) -> float:
    """Parse Swiss formatted numbers: ``3'493.75`` -> 3493.75, ``12,5`` -> 12.5.

    Empty or unparseable input yields ``0.0``.
    """
    if text is None:
        return 0.0
    cleaned = str(text).replace("'", "").replace("’", "").replace(",", ".")
    cleaned = re.sub(r"[^\d.\-]", "", cleaned)
    match = _NUMERIC_PREFIX.match(cleaned)
    if match is None:
        return 0.0
    return float(match.group(0))


def normalize_filename_ascii(text: str) -> str:
    """Accent-free, filesystem-safe variant of ``text`` (``Localités`` -> ``Localites``)."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_FILENAME_CHARS.sub("_", stripped)


def split_business_code(code: str) -> tuple[str, str | None]:
    """Split ``"7011 INF"`` into ``("7011", "INF")`` and ``"7000"`` into ``("7000", None)``."""
    trimmed = code.strip()
    number, _, rest = trimmed.partition(" ")
    return number, (rest.strip() or None)
