"""Data models for real-time workspace collaboration."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class ConnectionState(Enum):
    """States of the collaboration connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class EnvelopeType(Enum):
    """Types of collaboration envelopes."""
    TABLE_UPDATE = "table_update"
    RELATIONSHIP_UPDATE = "relationship_update"
    PRESENCE_UPDATE = "presence_update"
    CONFLICT = "conflict"


class ElementType(Enum):
    """Kinds of model elements a conflict can refer to."""
    TABLE = "table"
    RELATIONSHIP = "relationship"
    DATA_FLOW_DIAGRAM = "data_flow_diagram"


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CursorPosition:
    """Cursor location of a participant on the canvas."""
    x: float
    y: float


@dataclass
class Participant:
    """Ephemeral presence of one user in the workspace."""
    user_id: str
    last_seen: datetime
    cursor_position: Optional[CursorPosition] = None
    selected_element_ids: Set[str] = field(default_factory=set)


@dataclass
class ConflictRecord:
    """An advisory conflict awaiting user attention."""
    id: str
    element_type: str
    element_id: str
    message: str
    timestamp: datetime


@dataclass(frozen=True)
class GraphEdge:
    """Directed edge between two tables, derived from a relationship."""
    source_table_id: str
    target_table_id: str


@dataclass
class RetryAttemptContext:
    """Passed to retry observers before each retry delay."""
    attempt_number: int
    error: BaseException
    computed_delay: float


# Events delivered to protocol subscribers

@dataclass
class TableUpdateEvent:
    table_id: str
    data: Dict[str, Any]
    user_id: str
    timestamp: datetime


@dataclass
class RelationshipUpdateEvent:
    relationship_id: str
    data: Dict[str, Any]
    user_id: str
    timestamp: datetime


@dataclass
class PresenceUpdateEvent:
    user_id: str
    timestamp: datetime
    cursor_position: Optional[CursorPosition] = None
    selected_element_ids: Set[str] = field(default_factory=set)


@dataclass
class ConflictEvent:
    element_type: str
    element_id: str
    message: str
    timestamp: datetime
    user_id: Optional[str] = None


# Pydantic models for wire (de)serialization

class WireModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True)


class Envelope(WireModel):
    """Typed message wrapper exchanged over the collaboration connection."""
    type: EnvelopeType
    payload: Dict[str, Any] = Field(default_factory=dict)
    user_id: str = Field(alias="userId", min_length=1)
    timestamp: datetime
    workspace_id: Optional[str] = Field(default=None, alias="workspaceId")

    def to_wire(self) -> str:
        """Serialize to the JSON text sent over the transport."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class TableUpdatePayload(WireModel):
    table_id: str = Field(alias="tableId", min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class RelationshipUpdatePayload(WireModel):
    relationship_id: str = Field(alias="relationshipId", min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class CursorPayload(WireModel):
    x: float
    y: float


class PresenceUpdatePayload(WireModel):
    cursor_position: Optional[CursorPayload] = Field(default=None, alias="cursorPosition")
    selected_element_ids: List[str] = Field(default_factory=list, alias="selectedElementIds")


class ConflictPayload(WireModel):
    element_type: ElementType = Field(alias="elementType")
    element_id: str = Field(alias="elementId", min_length=1)
    message: str
