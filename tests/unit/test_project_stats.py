from __future__ import annotations

from datetime import datetime

from beg_migration.db import tables
from beg_migration.db.memory import InMemoryStorage
from beg_migration.services.project_stats import compute_project_stats, recompute_project_stats


def test_compute_project_stats():
    activities = [
        {"date": datetime(2024, 3, 10), "duration": 2.5, "billed": True, "disbursement": False},
        {"date": datetime(2024, 3, 11), "duration": 1.5, "billed": False, "disbursement": True},
        {"date": None, "duration": None, "billed": False, "disbursement": False},
    ]
    stats = compute_project_stats(activities)
    assert stats["firstActivityDate"] == datetime(2024, 3, 10)
    assert stats["lastActivityDate"] == datetime(2024, 3, 11)
    assert stats["totalDuration"] == 4.0
    assert stats["unBilledDuration"] == 1.5
    assert stats["unBilledDisbursementDuration"] == 1.5


def test_compute_project_stats_without_activities():
    stats = compute_project_stats([])
    assert stats["firstActivityDate"] is None
    assert stats["lastActivityDate"] is None
    assert stats["totalDuration"] == 0


def test_recompute_updates_project_row():
    storage = InMemoryStorage()
    storage.insert(tables.PROJECTS, [{"id": 7011, "projectNumber": "7011"}])
    storage.insert(
        tables.ACTIVITIES,
        [
            {"projectId": 7011, "date": datetime(2024, 1, 2), "duration": 2.0, "billed": False, "disbursement": False},
            {"projectId": 9, "date": datetime(2024, 1, 3), "duration": 5.0, "billed": False, "disbursement": False},
        ],
    )
    values = recompute_project_stats(storage, 7011)
    project = storage.select(tables.PROJECTS, {"id": 7011})[0]
    assert project["totalDuration"] == 2.0 == values["totalDuration"]
    assert project["unBilledDuration"] == 2.0
    assert project["updatedAt"] is not None
