from __future__ import annotations

from typing import Any

"""Reference resolution between migrated entities.

After each stage the ids actually present in the target store are loaded into
an ``IdentifierRegistry``; later stages consult it before writing a foreign
key. Optional references to unknown ids are nulled, required ones make the
record skippable.
"""

__all__ = ["IdentifierRegistry"]


class IdentifierRegistry:
    """Entity name -> set of ids known to exist in the store."""

    def __init__(self) -> None:
        self._ids: dict[str, set[Any]] = {}

    def load(self, storage: Any, entity: str, table: str | None = None, column: str = "id") -> int:
        """Replace the ids of ``entity`` with what the store holds now.

        Parameters
        ----------
        storage: backend exposing ``select(table, filters, columns)``
        entity: registry key (defaults to the table name)
        table: table to read, ``entity`` when omitted
        column: id column

        Returns
        -------
        int: number of ids registered
        """
        rows = storage.select(table or entity, columns=[column])
        self._ids[entity] = {row[column] for row in rows if row.get(column) is not None}
        return len(self._ids[entity])

    def ids(self, entity: str) -> frozenset[Any]:
        return frozenset(self._ids.get(entity, ()))

    def has(self, entity: str, identifier: Any) -> bool:
        return identifier is not None and identifier in self._ids.get(entity, ())

    def resolve(self, entity: str, identifier: Any) -> Any:
        """Optional reference: the id itself when known, else ``None``."""
        return identifier if self.has(entity, identifier) else None
