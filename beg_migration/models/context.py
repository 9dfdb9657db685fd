from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..legacy.snapshot import SnapshotReader
from ..legacy.tables import UNCLASSIFIED_LABEL
from ..logging.error_log import ErrorLogBuffer
from ..services.references import IdentifierRegistry
from .config_models import MigrationSettings

"""Migration context shared by the relational stages.

Everything a later stage needs from an earlier one travels on this object
instead of module globals, so a stage can be run on its own in tests.
"""


@dataclass(frozen=True)
class ProjectTypeMapping:
    """Output of the project types stage, consumed by the projects stage."""
    legacy_to_new: dict[str, list[str]]
    legacy_id_to_label: dict[int, str]
    new_label_to_id: dict[str, int]

    def labels_for(self, legacy_type_id: int | None) -> list[str]:
        """New labels for a legacy IDtype; unknown types are unclassified."""
        label = self.legacy_id_to_label.get(legacy_type_id) if legacy_type_id else None
        if label is not None and label in self.legacy_to_new:
            return self.legacy_to_new[label]
        return [UNCLASSIFIED_LABEL]

    def type_ids_for(self, legacy_type_id: int | None) -> list[int]:
        return [
            self.new_label_to_id[name]
            for name in self.labels_for(legacy_type_id)
            if name in self.new_label_to_id
        ]


@dataclass
class MigrationContext:
    storage: Any
    settings: MigrationSettings
    snapshots: SnapshotReader
    identifiers: IdentifierRegistry = field(default_factory=IdentifierRegistry)
    error_log: ErrorLogBuffer = field(default_factory=ErrorLogBuffer)
    project_types: ProjectTypeMapping | None = None
