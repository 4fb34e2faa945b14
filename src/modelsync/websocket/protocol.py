"""Typed collaboration protocol on top of a ConnectionChannel."""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from ..graph.cycle_detector import closes_cycle, edges_from_relationships
from ..graph.validation import ValidationResult, validate_relationship
from ..sync.config import SyncConfig
from ..sync.exceptions import EnvelopeDecodeError
from ..sync.interfaces import ModelStore
from ..sync.logging_config import get_logger, log_conflict_event, log_sync_event
from ..sync.models import (
    ConflictEvent, ConflictPayload, CursorPosition, ElementType, Envelope, EnvelopeType,
    Participant, PresenceUpdateEvent, PresenceUpdatePayload, RelationshipUpdateEvent,
    RelationshipUpdatePayload, TableUpdateEvent, TableUpdatePayload, utc_now
)
from ..sync.session_state import SessionState
from .channel import ConnectionChannel, Unsubscribe


class CollaborationProtocol:
    """Decodes envelopes, applies last-write-wins updates and re-broadcasts local edits.

    Inbound table and relationship updates overwrite the local model in the
    order the transport delivers them; timestamps are carried but not compared.
    A relationship update whose new edge closes a cycle is still applied and
    raises an advisory conflict.
    """

    def __init__(self, channel: ConnectionChannel, session_state: SessionState,
                 model_store: ModelStore, user_id: str,
                 clock: Optional[Callable[[], datetime]] = None,
                 config: Optional[SyncConfig] = None):
        """Initialize the protocol.

        Args:
            channel: Connection the protocol sends and receives on
            session_state: Workspace state updated by inbound envelopes
            model_store: Local model receiving remote edits
            user_id: ID of the local user, stamped on outbound envelopes
            clock: Wall-clock source for outbound timestamps
            config: Sync configuration (event logging switches)
        """
        self.channel = channel
        self.session_state = session_state
        self.model_store = model_store
        self.user_id = user_id
        self.config = config or channel.config
        self._clock = clock or utc_now
        self.logger = get_logger(__name__)

        self._handlers: Dict[EnvelopeType, Dict[int, Callable]] = {t: {} for t in EnvelopeType}
        self._next_handler_id = 0
        self._channel_subscriptions: List[Unsubscribe] = []

    # Wiring

    def attach(self) -> None:
        """Subscribe to the channel. Idempotent."""
        if self._channel_subscriptions:
            return
        self._channel_subscriptions = [
            self.channel.on_message(self.handle_message),
            self.channel.on_state_change(self._handle_state_change),
        ]
        self.refresh_connection_status()

    def detach(self) -> None:
        """Drop channel subscriptions and every protocol subscriber. Idempotent."""
        for unsubscribe in self._channel_subscriptions:
            unsubscribe()
        self._channel_subscriptions = []
        for registry in self._handlers.values():
            registry.clear()

    def refresh_connection_status(self) -> None:
        """Copy the channel's current state into the session state."""
        self.session_state.set_connection_status(self.channel.state)

    def _handle_state_change(self, state) -> None:
        self.session_state.set_connection_status(state)

    # Subscriptions

    def on_table_update(self, handler: Callable[[TableUpdateEvent], None]) -> Unsubscribe:
        return self._subscribe(EnvelopeType.TABLE_UPDATE, handler)

    def on_relationship_update(self, handler: Callable[[RelationshipUpdateEvent], None]) -> Unsubscribe:
        return self._subscribe(EnvelopeType.RELATIONSHIP_UPDATE, handler)

    def on_presence_update(self, handler: Callable[[PresenceUpdateEvent], None]) -> Unsubscribe:
        return self._subscribe(EnvelopeType.PRESENCE_UPDATE, handler)

    def on_conflict(self, handler: Callable[[ConflictEvent], None]) -> Unsubscribe:
        """Register for conflicts, both received and detected locally."""
        return self._subscribe(EnvelopeType.CONFLICT, handler)

    def _subscribe(self, envelope_type: EnvelopeType, handler: Callable) -> Unsubscribe:
        registry = self._handlers[envelope_type]
        handler_id = self._next_handler_id
        self._next_handler_id += 1
        registry[handler_id] = handler

        def unsubscribe() -> None:
            registry.pop(handler_id, None)

        return unsubscribe

    def _notify(self, envelope_type: EnvelopeType, event: Any) -> None:
        registry = self._handlers[envelope_type]
        for handler_id, handler in list(registry.items()):
            if registry.get(handler_id) is not handler:
                continue
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Error in {envelope_type.value} handler: {e}")

    # Outbound

    async def send_table_update(self, table_id: str, data: Dict[str, Any]) -> bool:
        payload = TableUpdatePayload(table_id=table_id, data=data)
        return await self._send(EnvelopeType.TABLE_UPDATE, payload.model_dump(by_alias=True), table_id)

    async def send_relationship_update(self, relationship_id: str, data: Dict[str, Any]) -> bool:
        payload = RelationshipUpdatePayload(relationship_id=relationship_id, data=data)
        return await self._send(EnvelopeType.RELATIONSHIP_UPDATE, payload.model_dump(by_alias=True),
                                relationship_id)

    async def send_presence_update(self, cursor_position: Optional[CursorPosition] = None,
                                   selected_element_ids: Optional[Iterable[str]] = None) -> bool:
        payload = {
            "cursorPosition": (
                {"x": cursor_position.x, "y": cursor_position.y} if cursor_position else None
            ),
            "selectedElementIds": sorted(selected_element_ids or []),
        }
        return await self._send(EnvelopeType.PRESENCE_UPDATE, payload, None)

    async def _send(self, envelope_type: EnvelopeType, payload: Dict[str, Any],
                    element_id: Optional[str]) -> bool:
        # No outbound buffer: edits made while offline stay local
        if not self.channel.is_connected():
            self.logger.debug(f"Not connected; {envelope_type.value} kept local only")
            return False

        envelope = Envelope(
            type=envelope_type,
            payload=payload,
            user_id=self.user_id,
            timestamp=self._clock(),
            workspace_id=self.session_state.workspace_id,
        )
        sent = await self.channel.send(envelope)
        if sent:
            self._log_sync(envelope_type.value, element_id, self.user_id,
                           f"Sent {envelope_type.value}", workspace_id=self.session_state.workspace_id)
        return sent

    def _log_sync(self, event_type: str, element_id: Optional[str], user_id: Optional[str],
                  message: str, **kwargs) -> None:
        if self.config.log_sync_events:
            log_sync_event(self.logger, event_type, element_id, user_id, message, **kwargs)

    def _log_conflict(self, element_type: str, element_id: str, users: List[str],
                      message: str, **kwargs) -> None:
        if self.config.log_conflict_events:
            log_conflict_event(self.logger, element_type, element_id, users, message, **kwargs)

    # Validation guard

    def validate_new_relationship(self, source_table_id: str, target_table_id: str) -> ValidationResult:
        """Check a relationship against the local model before it is created."""
        edges = edges_from_relationships(self.model_store.get_relationships())
        return validate_relationship(
            source_table_id, target_table_id,
            existing_edges=edges,
            table_ids=self.model_store.get_table_ids(),
        )

    # Inbound

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Decode and apply one inbound message; malformed envelopes are dropped."""
        try:
            envelope = self.decode(message)
        except EnvelopeDecodeError as e:
            self.logger.warning(f"Dropping envelope: {e.message}")
            return

        if envelope.type == EnvelopeType.TABLE_UPDATE:
            self._apply_table_update(envelope)
        elif envelope.type == EnvelopeType.RELATIONSHIP_UPDATE:
            self._apply_relationship_update(envelope)
        elif envelope.type == EnvelopeType.PRESENCE_UPDATE:
            self._apply_presence_update(envelope)
        elif envelope.type == EnvelopeType.CONFLICT:
            self._apply_conflict(envelope)

    @staticmethod
    def decode(message: Dict[str, Any]) -> Envelope:
        """Validate the envelope and its type-specific payload.

        Raises:
            EnvelopeDecodeError: If the envelope or payload is malformed
        """
        try:
            envelope = Envelope.model_validate(message)
            payload_model = _PAYLOAD_MODELS[envelope.type]
            payload_model.model_validate(envelope.payload)
        except ValidationError as e:
            raise EnvelopeDecodeError(f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}",
                                      message) from e
        return envelope

    def _apply_table_update(self, envelope: Envelope) -> None:
        payload = TableUpdatePayload.model_validate(envelope.payload)
        self.model_store.update_table(payload.table_id, payload.data)
        self._log_sync(envelope.type.value, payload.table_id, envelope.user_id,
                       "Applied remote table update")
        self._notify(EnvelopeType.TABLE_UPDATE, TableUpdateEvent(
            table_id=payload.table_id,
            data=payload.data,
            user_id=envelope.user_id,
            timestamp=envelope.timestamp,
        ))

    def _apply_relationship_update(self, envelope: Envelope) -> None:
        payload = RelationshipUpdatePayload.model_validate(envelope.payload)
        previous_edge = self._relationship_edge(payload.relationship_id)
        self.model_store.update_relationship(payload.relationship_id, payload.data)
        self._log_sync(envelope.type.value, payload.relationship_id, envelope.user_id,
                       "Applied remote relationship update")

        self._check_relationship_cycle(payload.relationship_id, previous_edge, envelope)

        self._notify(EnvelopeType.RELATIONSHIP_UPDATE, RelationshipUpdateEvent(
            relationship_id=payload.relationship_id,
            data=payload.data,
            user_id=envelope.user_id,
            timestamp=envelope.timestamp,
        ))

    def _relationship_edge(self, relationship_id: str) -> Optional[Tuple[str, str]]:
        for relationship in self.model_store.get_relationships():
            if relationship.get("id") == relationship_id:
                source = relationship.get("source_table_id")
                target = relationship.get("target_table_id")
                return (source, target) if source and target else None
        return None

    def _check_relationship_cycle(self, relationship_id: str,
                                  previous_edge: Optional[Tuple[str, str]],
                                  envelope: Envelope) -> None:
        edge = self._relationship_edge(relationship_id)
        # Only an edge whose endpoints changed can introduce a cycle
        if edge is None or edge == previous_edge:
            return

        others = edges_from_relationships(self.model_store.get_relationships(), exclude_id=relationship_id)
        result = closes_cycle(others, edge)
        if not result.is_cyclic:
            return

        message = f"Relationship {relationship_id} creates a cycle: {result.describe()}"
        self._log_conflict(ElementType.RELATIONSHIP.value, relationship_id,
                           [envelope.user_id], message, cycle=result.path)
        self._raise_conflict(ElementType.RELATIONSHIP.value, relationship_id, message,
                             envelope.timestamp, envelope.user_id)

    def _apply_presence_update(self, envelope: Envelope) -> None:
        payload = PresenceUpdatePayload.model_validate(envelope.payload)
        cursor = (
            CursorPosition(x=payload.cursor_position.x, y=payload.cursor_position.y)
            if payload.cursor_position else None
        )
        selected = set(payload.selected_element_ids)

        self.session_state.upsert_participant(Participant(
            user_id=envelope.user_id,
            last_seen=envelope.timestamp,
            cursor_position=cursor,
            selected_element_ids=set(selected),
        ))
        self._notify(EnvelopeType.PRESENCE_UPDATE, PresenceUpdateEvent(
            user_id=envelope.user_id,
            timestamp=envelope.timestamp,
            cursor_position=cursor,
            selected_element_ids=selected,
        ))

    def _apply_conflict(self, envelope: Envelope) -> None:
        payload = ConflictPayload.model_validate(envelope.payload)
        self._log_conflict(payload.element_type.value, payload.element_id,
                           [envelope.user_id], payload.message)
        self._raise_conflict(payload.element_type.value, payload.element_id, payload.message,
                             envelope.timestamp, envelope.user_id)

    def _raise_conflict(self, element_type: str, element_id: str, message: str,
                        timestamp: datetime, user_id: Optional[str]) -> None:
        self.session_state.add_conflict(element_type, element_id, message, timestamp)
        self._notify(EnvelopeType.CONFLICT, ConflictEvent(
            element_type=element_type,
            element_id=element_id,
            message=message,
            timestamp=timestamp,
            user_id=user_id,
        ))


_PAYLOAD_MODELS = {
    EnvelopeType.TABLE_UPDATE: TableUpdatePayload,
    EnvelopeType.RELATIONSHIP_UPDATE: RelationshipUpdatePayload,
    EnvelopeType.PRESENCE_UPDATE: PresenceUpdatePayload,
    EnvelopeType.CONFLICT: ConflictPayload,
}
