from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .tables import UNCLASSIFIED_LABEL

"""Project type remap table (``projectTypes.tsv``).

The file maps each legacy project type label to up to three new labels::

    Ancien type<TAB>Nouveau 1<TAB>Nouveau 2<TAB>Nouveau 3
    "Géologie"<TAB>Géologie<TAB><TAB>
"""

__all__ = [
    "TypeMapping",
    "load_project_type_mapping",
]

logger = logging.getLogger(__name__)

NEW_LABEL_COLUMNS = (1, 2, 3)


@dataclass(frozen=True)
class TypeMapping:
    legacy_to_new: dict[str, list[str]] = field(default_factory=dict)
    all_new_labels: frozenset[str] = frozenset({UNCLASSIFIED_LABEL})

    def labels_for(self, legacy_label: str | None) -> list[str]:
        if legacy_label is None:
            return [UNCLASSIFIED_LABEL]
        return self.legacy_to_new.get(legacy_label, [UNCLASSIFIED_LABEL])


def _clean_label(text: str) -> str:
    return text.strip().strip('"').strip()


def load_project_type_mapping(path: Path) -> TypeMapping:
    """Load the remap table; a missing file leaves only the unclassified label."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Cannot read project type mapping %s: %s", path, e)
        return TypeMapping()

    legacy_to_new: dict[str, list[str]] = {}
    all_new_labels = {UNCLASSIFIED_LABEL}

    lines = [line for line in content.splitlines() if line.strip()]
    for line in lines[1:]:  # header
        columns = line.split("\t")
        legacy = _clean_label(columns[0])
        if not legacy:
            continue
        new_labels = []
        for index in NEW_LABEL_COLUMNS:
            if index < len(columns):
                label = _clean_label(columns[index])
                if label:
                    new_labels.append(label)
        if not new_labels:
            new_labels = [UNCLASSIFIED_LABEL]
        legacy_to_new[legacy] = new_labels
        all_new_labels.update(new_labels)

    logger.debug("Loaded %d project type mappings from %s", len(legacy_to_new), path)
    return TypeMapping(legacy_to_new=legacy_to_new, all_new_labels=frozenset(all_new_labels))
