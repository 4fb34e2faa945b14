"""Per-workspace view of connection status, presence and pending conflicts."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .logging_config import get_logger
from .models import ConflictRecord, ConnectionState, Participant


class SessionState:
    """Passive data holder read by presentation code.

    Mutated only from the protocol's single-threaded dispatch path, so no
    locking is required.
    """

    def __init__(self, workspace_id: str):
        self.workspace_id = workspace_id
        self.connection_status = ConnectionState.DISCONNECTED
        self.participants: Dict[str, Participant] = {}
        self.conflicts: List[ConflictRecord] = []
        self.logger = get_logger(__name__)

    @property
    def is_connected(self) -> bool:
        return self.connection_status == ConnectionState.CONNECTED

    def set_connection_status(self, status: ConnectionState) -> None:
        if status != self.connection_status:
            self.logger.debug(f"Connection status {self.connection_status.value} -> {status.value}")
        self.connection_status = status

    # Presence

    def upsert_participant(self, participant: Participant) -> None:
        """Replace the participant wholesale; no field-level merge."""
        self.participants[participant.user_id] = participant

    def remove_participant(self, user_id: str) -> Optional[Participant]:
        return self.participants.pop(user_id, None)

    def get_participant(self, user_id: str) -> Optional[Participant]:
        return self.participants.get(user_id)

    def get_participants(self) -> List[Participant]:
        return list(self.participants.values())

    # Conflicts

    def add_conflict(self, element_type: str, element_id: str, message: str,
                     timestamp: datetime) -> ConflictRecord:
        """Append a new conflict with a fresh unique ID."""
        conflict_id = f"conflict-{uuid.uuid4().hex}"
        while any(c.id == conflict_id for c in self.conflicts):
            conflict_id = f"conflict-{uuid.uuid4().hex}"

        record = ConflictRecord(
            id=conflict_id,
            element_type=element_type,
            element_id=element_id,
            message=message,
            timestamp=timestamp,
        )
        self.conflicts.append(record)
        return record

    def remove_conflict(self, conflict_id: str) -> None:
        """Dismiss one conflict; unknown IDs are ignored."""
        self.conflicts = [c for c in self.conflicts if c.id != conflict_id]

    def clear_conflicts(self) -> None:
        """Dismiss every pending conflict."""
        self.conflicts = []

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data view for presentation code."""
        return {
            "workspace_id": self.workspace_id,
            "connection_status": self.connection_status.value,
            "participants": [
                {
                    "user_id": p.user_id,
                    "cursor_position": (
                        {"x": p.cursor_position.x, "y": p.cursor_position.y}
                        if p.cursor_position else None
                    ),
                    "selected_element_ids": sorted(p.selected_element_ids),
                    "last_seen": p.last_seen.isoformat(),
                }
                for p in self.participants.values()
            ],
            "conflicts": [
                {
                    "id": c.id,
                    "element_type": c.element_type,
                    "element_id": c.element_id,
                    "message": c.message,
                    "timestamp": c.timestamp.isoformat(),
                }
                for c in self.conflicts
            ],
        }
