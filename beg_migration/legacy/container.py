from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from ..models.config_models import InvoiceGridLayout
from ..models.invoice import DATAS, INTERNAL, AttachedFile, Container, RateLine
from .normalizers import parse_legacy_doc_date, parse_swiss_number
from .tables import (
    BILLING_MODES,
    DEFAULT_BILLING_MODE,
    DEFAULT_INVOICE_TYPE,
    INVOICE_STATUS_APPROVED,
    INVOICE_STATUS_PENDING,
    INVOICE_TYPES,
    VISA_USER_INITIALS,
)

"""Parser for legacy invoice documents (``.fab``).

A ``.fab`` file is an INI-like dump of the invoicing form written in
Windows-1252::

    [INTERNAL]
    Code=7011 INF
    De=01.01.24
    [DATAS]
    pnlCode=7011 INF
    grdFacture2.0=A
    grdFacture2.1=12.5
    [CHECK]
    ...

Form grids are flattened to ``{grid}{row}.{col}`` keys. Only the INTERNAL and
DATAS sections carry data; anything under another header is ignored.
"""

__all__ = [
    "decode_container",
    "parse_container",
    "parse_multiline",
    "parse_rate_lines",
    "parse_attachments",
    "extract_totals",
    "map_invoice_type",
    "map_billing_mode",
    "map_invoice_status",
    "visa_initials",
]

LEGACY_ENCODING = "cp1252"
KNOWN_SECTIONS = {f"[{INTERNAL}]": INTERNAL, f"[{DATAS}]": DATAS}

PathResolver = Callable[[str], Path | None]


def decode_container(raw: bytes) -> str:
    """Decode document bytes; bytes undefined in Windows-1252 become U+FFFD."""
    return raw.decode(LEGACY_ENCODING, errors="replace")


def parse_container(text: str) -> Container:
    container = Container()
    current: dict[str, str] | None = None
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            section = KNOWN_SECTIONS.get(stripped)
            current = container.sections[section] if section else None
            continue
        if current is None or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        current[key] = value
    return container


def _count(data: dict[str, str], key: str) -> int:
    try:
        return int(data.get(key, "0").strip() or "0")
    except ValueError:
        return 0


def parse_multiline(data: dict[str, str], prefix: str) -> str:
    """Join ``{prefix}0 .. {prefix}{count-1}`` with newlines; missing entries are skipped."""
    lines = []
    for index in range(_count(data, f"{prefix}count")):
        value = data.get(f"{prefix}{index}")
        if value is not None:
            lines.append(value.strip())
    return "\n".join(lines)


def parse_rate_lines(data: dict[str, str], layout: InvoiceGridLayout) -> list[RateLine]:
    """Rate class rows of the fee grid, up to the ``Total h.`` subtotal row."""
    lines: list[RateLine] = []
    for row in range(layout.rate_first_row, layout.rate_max_row):
        label = (data.get(layout.key(row, 0)) or "").strip()
        if label == layout.rate_sentinel:
            break
        if len(label) != 1:
            continue
        line = RateLine(
            rate_class=label,
            base_hours=parse_swiss_number(data.get(layout.key(row, 1))),
            adjusted_hours=parse_swiss_number(data.get(layout.key(row, 2))),
            hourly_rate=parse_swiss_number(data.get(layout.key(row, 3))),
            amount=parse_swiss_number(data.get(layout.key(row, 4))),
        )
        if line.base_hours or line.adjusted_hours or line.amount:
            lines.append(line)
    return lines


def parse_attachments(
    data: dict[str, str],
    prefix: str,
    has_amount: bool = True,
    resolver: PathResolver | None = None,
) -> list[AttachedFile]:
    """Rows of an attachment grid (``grdOffres``, ``grdDocuments`` ...).

    Columns: 0 filename, 1 date, 2 amount (when ``has_amount``), 3 remark,
    4 legacy Windows path. Row 0 is the header; rows whose filename is empty
    or only digits are counters and skipped.
    """
    files: list[AttachedFile] = []
    for row in range(1, _count(data, f"{prefix}RowCount")):
        filename = data.get(f"{prefix}{row}.0", "")
        if not filename or filename.isdigit():
            continue
        legacy_path = data.get(f"{prefix}{row}.4", "")
        files.append(
            AttachedFile(
                filename=filename,
                date=parse_legacy_doc_date(data.get(f"{prefix}{row}.1")),
                amount=parse_swiss_number(data.get(f"{prefix}{row}.2")) if has_amount else 0.0,
                remark=data.get(f"{prefix}{row}.3", ""),
                file_path=resolver(legacy_path) if resolver and legacy_path.strip() else None,
            )
        )
    return files


def extract_totals(data: dict[str, str], layout: InvoiceGridLayout) -> dict[str, float]:
    """Named invoice totals read from the configured grid cells."""
    return {
        column: parse_swiss_number(data.get(layout.key(row, col)))
        for column, (row, col) in layout.cells.items()
    }


def map_invoice_type(code: str | None) -> str:
    return INVOICE_TYPES.get((code or "").strip(), DEFAULT_INVOICE_TYPE)


def map_billing_mode(code: str | None) -> str:
    return BILLING_MODES.get((code or "").strip(), DEFAULT_BILLING_MODE)


def visa_initials(visa_index: str | None) -> str | None:
    return VISA_USER_INITIALS.get((visa_index or "").strip())


def map_invoice_status(visa_index: str | None, approved_flag: str | None) -> str:
    """``sent`` when approved (``edtBon=1``) by a known visa user, else ``controle``."""
    if (approved_flag or "").strip() == "1" and visa_initials(visa_index) is not None:
        return INVOICE_STATUS_APPROVED
    return INVOICE_STATUS_PENDING
