from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from ..db import tables

"""Derived project statistics (activity date range and duration totals)."""

STAT_COLUMNS = ("date", "duration", "billed", "disbursement")


def compute_project_stats(activities: list[dict[str, Any]]) -> dict[str, Any]:
    """Aggregate the activity rows of one project into the project's stat columns."""
    dates = [a["date"] for a in activities if a.get("date") is not None]
    durations = [(a.get("duration") or 0.0, a) for a in activities]
    return {
        "firstActivityDate": min(dates) if dates else None,
        "lastActivityDate": max(dates) if dates else None,
        "totalDuration": sum(d for d, _ in durations),
        "unBilledDuration": sum(d for d, a in durations if not a.get("billed")),
        "unBilledDisbursementDuration": sum(d for d, a in durations if a.get("disbursement")),
    }


def recompute_project_stats(storage: Any, project_id: int) -> dict[str, Any]:
    """Recompute and store the statistics of one project; returns the written values."""
    activities = storage.select(tables.ACTIVITIES, {"projectId": project_id}, columns=STAT_COLUMNS)
    values = compute_project_stats(activities)
    values["updatedAt"] = datetime.now(UTC)
    storage.update(tables.PROJECTS, project_id, values)
    return values
