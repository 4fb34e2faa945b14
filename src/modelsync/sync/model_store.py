"""In-memory local model store."""

import copy
from typing import Any, Dict, List, Optional

from .interfaces import ModelStore
from .logging_config import get_logger


class InMemoryModelStore(ModelStore):
    """Keeps tables and relationships as plain dictionaries keyed by ID.

    Patches for unknown IDs create the element, so updates from peers for
    elements not yet seen locally are not lost.
    """

    def __init__(self, tables: Optional[List[Dict[str, Any]]] = None,
                 relationships: Optional[List[Dict[str, Any]]] = None):
        self._tables: Dict[str, Dict[str, Any]] = {}
        self._relationships: Dict[str, Dict[str, Any]] = {}
        self.logger = get_logger(__name__)

        for table in tables or []:
            self._tables[table["id"]] = dict(table)
        for relationship in relationships or []:
            self._relationships[relationship["id"]] = dict(relationship)

    def update_table(self, table_id: str, patch: Dict[str, Any]) -> None:
        current = self._tables.get(table_id, {"id": table_id})
        merged = {**current, **patch}

        # metadata merges one level deep, compoundKeys is replaced even when empty
        if isinstance(patch.get("metadata"), dict):
            merged["metadata"] = {**(current.get("metadata") or {}), **patch["metadata"]}
        if "compoundKeys" in patch:
            merged["compoundKeys"] = patch["compoundKeys"]

        merged["id"] = table_id
        self._tables[table_id] = merged
        self.logger.debug(f"Updated table {table_id} ({len(patch)} fields)")

    def update_relationship(self, relationship_id: str, patch: Dict[str, Any]) -> None:
        current = self._relationships.get(relationship_id, {"id": relationship_id})
        merged = {**current, **patch, "id": relationship_id}
        self._relationships[relationship_id] = merged
        self.logger.debug(f"Updated relationship {relationship_id} ({len(patch)} fields)")

    def get_table(self, table_id: str) -> Optional[Dict[str, Any]]:
        table = self._tables.get(table_id)
        return copy.deepcopy(table) if table is not None else None

    def get_relationship(self, relationship_id: str) -> Optional[Dict[str, Any]]:
        relationship = self._relationships.get(relationship_id)
        return copy.deepcopy(relationship) if relationship is not None else None

    def get_relationships(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._relationships.values()]

    def get_table_ids(self) -> List[str]:
        return list(self._tables)
