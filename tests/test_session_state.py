"""Tests for workspace session state and the in-memory model store."""

from datetime import datetime, timezone

from hypothesis import given, strategies as st

from modelsync.sync.model_store import InMemoryModelStore
from modelsync.sync.models import ConnectionState, CursorPosition, Participant
from modelsync.sync.session_state import SessionState


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestConflicts:

    @given(st.integers(min_value=0, max_value=30))
    def test_conflict_ids_unique_and_clear_empties(self, count):
        """Test that conflict ids never repeat and clearing empties the list."""
        state = SessionState("ws-1")
        for i in range(count):
            state.add_conflict("table", f"t{i}", "concurrent edit", NOW)

        assert len({c.id for c in state.conflicts}) == count

        state.clear_conflicts()
        assert state.conflicts == []

    def test_remove_conflict(self):
        """Test that a conflict can be resolved by id."""
        state = SessionState("ws-1")
        first = state.add_conflict("table", "A", "one", NOW)
        second = state.add_conflict("relationship", "r1", "two", NOW)

        state.remove_conflict(first.id)

        assert [c.id for c in state.conflicts] == [second.id]

    def test_remove_unknown_conflict_is_a_no_op(self):
        """Test that resolving an unknown id changes nothing."""
        state = SessionState("ws-1")
        state.add_conflict("table", "A", "one", NOW)

        state.remove_conflict("conflict-missing")

        assert len(state.conflicts) == 1


class TestParticipants:

    def test_upsert_replaces_wholesale(self):
        """Test that a presence update replaces the participant entirely."""
        state = SessionState("ws-1")
        state.upsert_participant(Participant("peer", NOW, CursorPosition(1, 2), {"A"}))
        state.upsert_participant(Participant("peer", NOW))

        participant = state.get_participant("peer")
        assert participant.cursor_position is None
        assert participant.selected_element_ids == set()
        assert len(state.get_participants()) == 1

    def test_remove_participant(self):
        """Test that a participant can be removed once."""
        state = SessionState("ws-1")
        state.upsert_participant(Participant("peer", NOW))

        assert state.remove_participant("peer").user_id == "peer"
        assert state.remove_participant("peer") is None
        assert state.get_participants() == []


class TestSnapshot:

    def test_snapshot_is_plain_data(self):
        """Test that the snapshot serializes state to plain values."""
        state = SessionState("ws-1")
        state.set_connection_status(ConnectionState.CONNECTED)
        state.upsert_participant(Participant("peer", NOW, CursorPosition(3, 4), {"B", "A"}))
        conflict = state.add_conflict("table", "A", "concurrent edit", NOW)

        snapshot = state.snapshot()

        assert state.is_connected
        assert snapshot["workspace_id"] == "ws-1"
        assert snapshot["connection_status"] == "connected"
        assert snapshot["participants"] == [{
            "user_id": "peer",
            "cursor_position": {"x": 3, "y": 4},
            "selected_element_ids": ["A", "B"],
            "last_seen": NOW.isoformat(),
        }]
        assert snapshot["conflicts"][0]["id"] == conflict.id


class TestInMemoryModelStore:

    def test_metadata_merges_and_compound_keys_replace(self):
        """Test that metadata merges one level deep while compound keys are replaced."""
        store = InMemoryModelStore(tables=[{
            "id": "A",
            "name": "customers",
            "metadata": {"owner": "ops", "tags": ["core"]},
            "compoundKeys": [["id", "region"]],
        }])

        store.update_table("A", {"metadata": {"tags": ["pii"]}, "compoundKeys": []})

        table = store.get_table("A")
        assert table["name"] == "customers"
        assert table["metadata"] == {"owner": "ops", "tags": ["pii"]}
        assert table["compoundKeys"] == []

    def test_patch_cannot_change_id(self):
        """Test that an id inside a patch never renames the element."""
        store = InMemoryModelStore()

        store.update_relationship("r1", {"id": "other", "source_table_id": "A"})

        assert store.get_relationship("r1")["id"] == "r1"
        assert store.get_relationship("other") is None

    def test_reads_are_copies(self):
        """Test that mutating returned data does not touch the store."""
        store = InMemoryModelStore(tables=[{"id": "A", "metadata": {"owner": "ops"}}])

        store.get_table("A")["metadata"]["owner"] = "mutated"
        store.get_relationships().append({"id": "r9"})

        assert store.get_table("A")["metadata"]["owner"] == "ops"
        assert store.get_relationships() == []
        assert store.get_table_ids() == ["A"]
