"""Base interfaces for collaborators consumed by the collaboration layer."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class ModelStore(ABC):
    """Interface for the local data model (tables and relationships)."""

    @abstractmethod
    def update_table(self, table_id: str, patch: Dict[str, Any]) -> None:
        """Apply a patch to a table in the local model."""
        pass

    @abstractmethod
    def update_relationship(self, relationship_id: str, patch: Dict[str, Any]) -> None:
        """Apply a patch to a relationship in the local model."""
        pass

    @abstractmethod
    def get_relationships(self) -> List[Dict[str, Any]]:
        """Return all relationships currently in the local model."""
        pass

    @abstractmethod
    def get_table_ids(self) -> List[str]:
        """Return the IDs of all tables currently in the local model."""
        pass


class TokenProvider(ABC):
    """Interface for the external credential accessor."""

    @abstractmethod
    def get_access_token(self) -> Optional[str]:
        """Return the current bearer token, or None when unauthenticated."""
        pass
