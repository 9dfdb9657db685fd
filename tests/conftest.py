# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any

import pytest

from beg_migration.db.memory import InMemoryStorage
from beg_migration.legacy.snapshot import SnapshotReader
from beg_migration.logging.error_log import ErrorLogBuffer
from beg_migration.logging.init import reset_logging
from beg_migration.models.config_models import MigrationSettings
from beg_migration.models.context import MigrationContext

COORDINATES_FILE = "Géoréférencement mandats_v2024.csv"


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr("beg_migration.services.passwords.BCRYPT_ROUNDS", 4)


@pytest.fixture(autouse=True)
def clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        for sub in ("config", "snapshots", "initial-data", "mandats", "files", "logs"):
            (p / sub).mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def write_snapshot(temp_workdir: Path):
    """Write ``{name}.json`` as line-delimited JSON into the snapshot directory."""
    def _write(name: str, records: list[dict[str, Any]]) -> Path:
        path = temp_workdir / "snapshots" / f"{name}.json"
        lines = [json.dumps(r, ensure_ascii=False) for r in records]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture()
def settings(temp_workdir: Path) -> MigrationSettings:
    return MigrationSettings(
        snapshot_directory=temp_workdir / "snapshots",
        project_types_file=temp_workdir / "initial-data" / "projectTypes.tsv",
        initial_data_directory=temp_workdir / "initial-data",
        invoices_directory=temp_workdir / "mandats",
        mandats_root=temp_workdir / "mandats",
        file_storage_root=temp_workdir / "files",
        chunk_size=2,
        member_chunk_size=2,
    )


@pytest.fixture()
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def error_log(temp_workdir: Path) -> ErrorLogBuffer:
    return ErrorLogBuffer(temp_workdir / "logs")


@pytest.fixture()
def ctx(storage: InMemoryStorage, settings: MigrationSettings, error_log: ErrorLogBuffer) -> MigrationContext:
    return MigrationContext(
        storage=storage,
        settings=settings,
        snapshots=SnapshotReader(settings.snapshot_directory),
        error_log=error_log,
    )


@pytest.fixture()
def sample_config_yaml() -> str:
    return """snapshot_directory: ./snapshots
project_types_file: ./initial-data/projectTypes.tsv
initial_data_directory: ./initial-data
invoices_directory: ./mandats
mandats_root: ./mandats
file_storage_root: ./files
chunk_size: 2
member_chunk_size: 2
database:
  host: localhost
  port: 5432
  user: beg
  password: secret
  database: beg
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "migration.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


LEGACY_SNAPSHOTS: dict[str, list[dict[str, Any]]] = {
    "Collaborateurs": [
        {"IDcollaborateur": 1, "Initiales": "FP", "Prénom": "François", "Nom": "Pilloud", "Mot de passe": "secret"},
        {"IDcollaborateur": 2, "Initiales": "js", "Prénom": "Julie", "Nom": "Savioz"},
        {"IDcollaborateur": 3, "Initiales": "", "Prénom": "Sans", "Nom": "Initiales"},
    ],
    "LinkACC": [
        {"IDcollaborateur": 1, "IDactivité": 10, "Classe": "A"},
        {"IDcollaborateur": 2, "IDactivité": 10, "Classe": "B"},
    ],
    "TreeTable": [
        {"ID": 100, "L0": "Suisse", "L1": "Valais", "L2": "Sion", "L3": "Centre"},
        {"ID": 101, "L0": "France", "L1": "Haute-Savoie"},
    ],
    "Localités": [
        {"IDlocalité": 5, "Localité": "Sion", "IDrégion": 100},
        {"IDlocalité": 6, "Localité": "Annecy", "IDrégion": 101},
        {"IDlocalité": 7, "Localité": "Nulle part", "IDrégion": 999},
    ],
    "Entreprises": [{"IDentreprise": 1, "Entreprise": "Forages SA"}],
    "Mandants": [{"IDmandant": 1, "Mandant": "Commune de Sion"}],
    "Ingénieurs": [{"IDingénieur": 1, "Ingénieur": "Ingénieurs Associés"}],
    "Types": [
        {"IDtype": 1, "Type": "Géologie"},
        {"IDtype": 2, "Type": "Divers"},
    ],
    "Classes": [{"Classe": "A"}, {"Classe": "B"}],
    "Tarifs": [
        {"IDtarif": 1, "Classe": "A", "Année": 2024, "Tarif": 150},
        {"IDtarif": 2, "Classe": "B", "Année": 2024, "Tarif": 120},
        {"IDtarif": 3, "Classe": "A", "Année": 2023, "Tarif": 140},
    ],
    "Mandats": [
        {
            "IDmandat": 7011, "Mandat": 7011, "Désignation": "Glissement de Montana",
            "Début": "01/15/24 00:00:00", "IDmandant": 1, "IDlocalité": 5, "IDingénieur": 99,
            "IDentreprise": 1, "Responsable": "fp", "IDtype": 1, "Etat": "Terminé",
        },
        {
            "IDmandat": 7012, "Mandat": "7011", "Sous-mandat": "INF", "Désignation": "Infiltration",
            "Début": "02/01/24 00:00:00", "IDtype": 2,
        },
        {"IDmandat": 7013, "Mandat": 7020, "Désignation": "Sans type connu", "IDtype": 42},
    ],
    "Activités": [
        {"IDactivité": 10, "Code": "Ex", "Activité": "Expertise"},
        {"IDactivité": 11, "Code": "", "Activité": "Non facturable"},
        {"IDactivité": 12, "Code": "Ga", "Activité": "Administration"},
    ],
    "Heures": [
        {
            "IDHeure": 1, "IDcollaborateur": 1, "IDmandat": 7011, "IDactivité": 10,
            "Date": "03/10/24 00:00:00", "Heures": 2.5, "Km": 10, "Frais": 5.5, "Tarif": 100,
            "Facturé": 1, "Débours": 0, "Remarque": "Terrain",
        },
        {
            "IDHeure": 2, "IDcollaborateur": 2, "IDmandat": 7011, "IDactivité": 10,
            "Date": "03/11/24 00:00:00", "Heures": 1.5, "Tarif": 90, "Facturé": 0, "Débours": 1,
        },
        {
            "IDHeure": 3, "IDcollaborateur": 1, "IDmandat": 7012, "IDactivité": 11,
            "Date": "03/12/23 00:00:00", "Heures": 3, "Tarif": 80,
        },
        {"IDHeure": 4, "IDcollaborateur": 99, "IDmandat": 7011, "IDactivité": 10, "Heures": 1},
        {"IDHeure": 5, "IDcollaborateur": 1, "IDactivité": 10, "Heures": 1},
    ],
    "Taux": [
        {"IDcollaborateur": 1, "Année": 2024, "Mois": 1, "Taux": 80},
        {"IDcollaborateur": 1, "Année": 2024, "Mois": 2},
        {"IDcollaborateur": 99, "Année": 2024, "Mois": 1, "Taux": 50},
        {"IDcollaborateur": 2, "Mois": 3, "Taux": 60},
    ],
    "Heures mensuelles": [
        {"Année": 2024, "Mois": 1, "Heures": 168},
        {"Année": 2024, "Mois": 2, "Heures": 160.5},
        {"Mois": 3, "Heures": 170},
    ],
}

PROJECT_TYPES_TSV = (
    "Ancien type\tNouveau 1\tNouveau 2\tNouveau 3\n"
    '"Géologie"\tGéologie\tHydrogéologie\t\n'
    "Divers\t\t\t\n"
)

COORDINATES_CSV = (
    "Mandat,Latitude,Longitude\n"
    "7011,46.2312,7.3589\n"
    "7011 INF,46.1,7.1\n"
    "9999,1.0,1.0\n"
)


@pytest.fixture()
def legacy_dataset(temp_workdir: Path, write_snapshot) -> Path:
    """A small but complete legacy export plus the initial-data files."""
    for name, records in LEGACY_SNAPSHOTS.items():
        write_snapshot(name, records)
    (temp_workdir / "initial-data" / "projectTypes.tsv").write_text(PROJECT_TYPES_TSV, encoding="utf-8")
    (temp_workdir / "initial-data" / COORDINATES_FILE).write_text(COORDINATES_CSV, encoding="utf-8")
    return temp_workdir / "snapshots"


def fab_document(**overrides: str) -> str:
    """Text of a legacy invoice document; keyword arguments replace DATAS entries."""
    datas = {
        "pnlCode": "7011 INF",
        "edtObjet": "Infiltration, rapport final",
        "edtType": "1",
        "edtMode": "3",
        "edtVisa": "0",
        "edtBon": "1",
        "edtVisaDate": "15.04.24",
        "edtLast": "20.04.24",
        "edtPériode": "T1 2024",
        "edtResponsable": "JS",
        "edtAdressecount": "2",
        "edtAdresse0": "Commune de Sion",
        "edtAdresse1": "Rue du Rhône 1",
        "edtEnvoi": "",
        "edtPrestationscount": "1",
        "edtPrestations0": "Essais d'infiltration",
        "edtCommentcount": "0",
        "grdFacture2.0": "A",
        "grdFacture2.1": "10",
        "grdFacture2.2": "9.5",
        "grdFacture2.3": "150",
        "grdFacture2.4": "1'425.00",
        "grdFacture3.0": "B",
        "grdFacture3.1": "0",
        "grdFacture4.0": "Total h.",
        "grdFacture5.0": "C",
        "grdFacture5.1": "99",
        "grdFacture8.1": "1'425.00",
        "grdFacture24.4": "1'500.00",
        "grdFacture25.4": "121.50",
        "grdFacture26.4": "1'621.50",
        "grdOffresRowCount": "3",
        "grdOffres0.0": "Fichier",
        "grdOffres1.0": "Offre.pdf",
        "grdOffres1.1": "01.02.24",
        "grdOffres1.2": "2'000",
        "grdOffres1.3": "Offre initiale",
        "grdOffres1.4": "N:\\Mandats\\7011\\Offre.pdf",
        "grdOffres2.0": "Absente.pdf",
        "grdOffres2.4": "N:\\Mandats\\7011\\Absente.pdf",
        "grdDocumentsRowCount": "2",
        "grdDocuments1.0": "Plan.pdf",
        "grdDocuments1.1": "05.02.24",
        "grdDocuments1.4": "N:\\Mandats\\7011\\Plan.pdf",
    }
    datas.update(overrides)
    lines = ["[INTERNAL]", "Code=7011 INF", "De=01.01.24", "A=31.03.24", "[DATAS]"]
    lines += [f"{key}={value}" for key, value in datas.items()]
    lines += ["[CHECK]", "pnlCode=ignored"]
    return "\r\n".join(lines) + "\r\n"


@pytest.fixture()
def invoice_tree(temp_workdir: Path) -> Path:
    """``mandats/7011`` holding one invoice document, its PDF and two attachments."""
    folder = temp_workdir / "mandats" / "7011" / "Factures"
    folder.mkdir(parents=True)
    (folder / "F-2024-001.fab").write_bytes(fab_document().encode("cp1252"))
    (folder / "F-2024-001.pdf").write_bytes(b"%PDF-1.4 invoice")
    (temp_workdir / "mandats" / "7011" / "Offre.pdf").write_bytes(b"%PDF-1.4 offer")
    (temp_workdir / "mandats" / "7011" / "Plan.pdf").write_bytes(b"%PDF-1.4 plan")
    return folder / "F-2024-001.fab"


@pytest.fixture()
def make_fab():
    return fab_document


@pytest.fixture()
def run_stages(ctx: MigrationContext, legacy_dataset: Path):
    """Run the relational stages in order up to and including ``last``."""
    from beg_migration.services.orchestrator import STAGES

    def _run(last: str) -> dict[str, Any]:
        results = {}
        for name, stage in STAGES:
            results[name] = stage(ctx)
            if name == last:
                return results
        raise KeyError(last)
    return _run
