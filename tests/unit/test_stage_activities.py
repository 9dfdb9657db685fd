from __future__ import annotations

from beg_migration.db import tables
from beg_migration.models.legacy_record import LegacyRecord
from beg_migration.stages.activities import RateLookup, activity_code, build_activity_type_row


def test_activity_code_fallback():
    assert activity_code(LegacyRecord({"Code": "Ex", "Activité": "Expertise"})) == "Ex"
    assert activity_code(LegacyRecord({"Code": "", "Activité": "forage"})) == "FOR"
    assert activity_code(LegacyRecord({"Code": " "})) is None


def test_activity_type_overrides():
    row = build_activity_type_row(LegacyRecord({"IDactivité": 3, "Activité": "Gestion"}), "Gd")
    assert row["code"] == "x"
    assert row["name"] == "Gestion: dactylographie (archivée)"
    assert row["billable"] is True


def test_rate_lookup():
    lookup = RateLookup(
        [{"id": 1, "activityRates": [{"activityId": 10, "class": "A"}, {"activityId": 10, "class": "B"}]}],
        [{"class": "A", "year": 2024, "amount": 150.0}],
    )
    assert lookup.rate_class(1, 10) == "A"
    assert lookup.rate_class(2, 10) is None
    assert lookup.amount("A", 2024) == 150.0
    assert lookup.amount("A", 2020) == 0.0
    assert lookup.amount(None, 2024) == 0.0


def test_activity_types(run_stages, storage):
    result = run_stages("activity_types")["activity_types"]
    assert result.inserted_rows == 6
    types = {t["id"]: t for t in storage.select(tables.ACTIVITY_TYPES)}
    assert types[10]["name"] == "Etude: expertise, gestion projet"
    assert types[10]["billable"] is True
    assert (types[11]["code"], types[11]["billable"]) == ("NON", False)
    assert (types[12]["name"], types[12]["billable"]) == ("Gestion: administration", False)
    extras = [types[i] for i in (13, 14, 15)]
    assert [e["code"] for e in extras] == ["Gc", "Gr", "Ga"]
    assert not any(e["billable"] for e in extras)


def test_activities_rates_and_skips(run_stages, storage):
    result = run_stages("activities")["activities"]
    assert result.inserted_rows == 3
    assert result.skipped_records == 2
    assert any("unknown users id 99" in r for r in result.reasons)
    assert any("missing user, project or activity type" in r for r in result.reasons)

    rows = sorted(storage.select(tables.ACTIVITIES), key=lambda a: a["date"])
    old, first, second = rows
    assert (old["rate"], old["rateClass"]) == (80.0, None)
    assert (first["rate"], first["rateClass"]) == (150.0, "A")
    assert (second["rate"], second["rateClass"]) == (120.0, "B")
    assert first["billed"] is True and first["disbursement"] is False
    assert second["billed"] is False and second["disbursement"] is True
    assert (first["kilometers"], first["expenses"], first["description"]) == (10.0, 5.5, "Terrain")


def test_project_stats_after_activities(run_stages, storage):
    result = run_stages("activities")["activities"]
    assert result.updated_rows == 3
    main = storage.select(tables.PROJECTS, {"id": 7011})[0]
    assert main["totalDuration"] == 4.0
    assert main["unBilledDuration"] == 1.5
    assert main["unBilledDisbursementDuration"] == 1.5
    assert main["firstActivityDate"] < main["lastActivityDate"]
    assert storage.select(tables.PROJECTS, {"id": 7012})[0]["totalDuration"] == 3.0
    empty = storage.select(tables.PROJECTS, {"id": 7013})[0]
    assert empty["totalDuration"] == 0 and empty["firstActivityDate"] is None


def test_project_members(run_stages, storage):
    result = run_stages("project_members")["project_members"]
    assert result.inserted_rows == 3
    members = storage.select(tables.PROJECT_USERS, {"role": "member"})
    assert sorted((m["userId"], m["projectId"]) for m in members) == [(1, 7011), (1, 7012), (2, 7011)]
    assert storage.count(tables.PROJECT_USERS) == 4
