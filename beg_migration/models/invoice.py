from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

"""Intermediate representation of a legacy invoice document (.fab)."""

__all__ = [
    "Container",
    "RateLine",
    "AttachedFile",
    "INTERNAL",
    "DATAS",
]

INTERNAL = "INTERNAL"
DATAS = "DATAS"


@dataclass
class Container:
    """Decoded .fab document: section name -> {key: value}.

    Grid cells are stored flat under synthetic keys ``{grid}{row}.{col}``.
    """
    sections: dict[str, dict[str, str]] = field(
        default_factory=lambda: {INTERNAL: {}, DATAS: {}}
    )

    @property
    def internal(self) -> dict[str, str]:
        return self.sections[INTERNAL]

    @property
    def datas(self) -> dict[str, str]:
        return self.sections[DATAS]


@dataclass(frozen=True)
class RateLine:
    """One rate-class row of the fee grid (hours and amounts)."""
    rate_class: str
    base_hours: float
    adjusted_hours: float
    hourly_rate: float
    amount: float


@dataclass(frozen=True)
class AttachedFile:
    """One row of an attachment grid (offers, adjudications, situations, documents)."""
    filename: str
    date: datetime | None
    amount: float
    remark: str
    file_path: Path | None  # resolved on disk, None when missing
