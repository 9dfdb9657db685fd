from __future__ import annotations

from pathlib import Path

from beg_migration.db import tables
from beg_migration.db.memory import InMemoryStorage
from beg_migration.models.config_models import CoordinatesConfig
from beg_migration.services.coordinates import find_coordinates_file, import_project_coordinates


def _projects() -> InMemoryStorage:
    storage = InMemoryStorage()
    storage.insert(
        tables.PROJECTS,
        [
            {"id": 1, "projectNumber": "7011", "subProjectName": None},
            {"id": 2, "projectNumber": "7011", "subProjectName": "INF"},
        ],
    )
    return storage


def test_find_file_accent_insensitive(tmp_path: Path):
    (tmp_path / "Georeferencement Mandats_v2024.csv").write_text("x", encoding="utf-8")
    found = find_coordinates_file(tmp_path, "Géoréférencement mandats_v2024.csv")
    assert found is not None and found.name == "Georeferencement Mandats_v2024.csv"


def test_find_file_falls_back_to_other_version(tmp_path: Path):
    (tmp_path / "Géoréférencement mandats_v2023.csv").write_text("x", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
    found = find_coordinates_file(tmp_path, "Géoréférencement mandats_v2024.csv")
    assert found is not None and found.name.endswith("v2023.csv")


def test_find_file_missing_directory(tmp_path: Path):
    assert find_coordinates_file(tmp_path / "absent", "x.csv") is None


def test_import_matches_business_codes(tmp_path: Path):
    csv_text = "Mandat;Latitude;Longitude\n7011;46,2312;7,3589\n7011 INF;46.1;7.1\n9999;1;1\n7012;;\n"
    (tmp_path / "Géoréférencement mandats_v2024.csv").write_text(csv_text, encoding="utf-8")
    storage = _projects()

    updated = import_project_coordinates(storage, tmp_path, CoordinatesConfig())

    assert updated == 2
    main, sub = storage.select(tables.PROJECTS, order_by="id")
    assert (main["latitude"], main["longitude"]) == (46.2312, 7.3589)
    assert (sub["latitude"], sub["longitude"]) == (46.1, 7.1)


def test_import_missing_columns_updates_nothing(tmp_path: Path):
    (tmp_path / "Géoréférencement mandats_v2024.csv").write_text("Code,Lat\n7011,1\n", encoding="utf-8")
    assert import_project_coordinates(_projects(), tmp_path, CoordinatesConfig()) == 0
