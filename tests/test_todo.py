"""Tests for the todo record model."""

from datetime import datetime, timedelta, timezone

import pytest

from todo_sync.todo import (
    Active,
    Priority,
    TodoItem,
    Tombstoned,
    classify,
    is_purgeable,
    new_todo,
)
from todo_sync.utils.datetime import now_utc


def make_item(**overrides):
    fields = dict(
        id="local-1",
        title="Buy milk",
        created_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return TodoItem(**fields)


class TestPredicates:
    """Derived sync predicates."""

    def test_new_todo_needs_sync_and_is_local(self):
        item = new_todo("Buy milk", Priority.MEDIUM)
        assert item.needs_sync is True
        assert item.is_local is True
        assert item.has_server_version is False
        assert item.is_synced is False
        assert item.last_modified == item.created_at

    def test_tombstone_does_not_need_sync_but_has_pending_changes(self):
        item = make_item(server_id="7", is_deleted=True, is_synced=False)
        assert item.needs_sync is False
        assert item.has_pending_changes is True

    def test_overdue_requires_incomplete_and_past_due(self):
        past = now_utc() - timedelta(days=1)
        assert make_item(due_date=past).is_overdue() is True
        assert make_item(due_date=past, is_completed=True).is_overdue() is False
        assert make_item(due_date=now_utc() + timedelta(days=1)).is_overdue() is False
        assert make_item().is_overdue() is False

    def test_modified_at_falls_back_to_created_at(self):
        item = make_item(last_modified=None)
        assert item.modified_at == item.created_at

    def test_naive_datetimes_become_utc(self):
        item = make_item(created_at=datetime(2024, 1, 1, 12, 0))
        assert item.created_at.tzinfo is not None


class TestTransitions:
    """Copy-returning state changes."""

    def test_mark_modified_clears_sync_flag(self):
        item = make_item(is_synced=True, server_id="7")
        modified = item.mark_modified()
        assert modified.is_synced is False
        assert modified.last_modified is not None
        assert item.is_synced is True

    def test_mark_deleted_creates_unsynced_tombstone(self):
        tombstone = make_item(is_synced=True, server_id="7").mark_deleted()
        assert tombstone.is_deleted is True
        assert tombstone.is_synced is False

    def test_mark_synced_attaches_server_id_and_server_time(self):
        server_time = datetime(2024, 2, 1, tzinfo=timezone.utc)
        synced = make_item().mark_synced(server_id="42", at=server_time)
        assert synced.server_id == "42"
        assert synced.is_synced is True
        assert synced.last_modified == server_time

    def test_mark_synced_keeps_existing_values_by_default(self):
        stamp = datetime(2024, 3, 1, tzinfo=timezone.utc)
        synced = make_item(server_id="9", last_modified=stamp).mark_synced()
        assert synced.server_id == "9"
        assert synced.last_modified == stamp

    def test_adopt_remote_keeps_local_id(self):
        remote = TodoItem.from_wire({
            "id": "42",
            "title": "From server",
            "is_completed": True,
            "priority": "high",
            "created_at": "2024-01-02T00:00:00Z",
            "updated_at": "2024-01-03T00:00:00Z",
        })
        merged = make_item(is_synced=False).adopt_remote(remote)
        assert merged.id == "local-1"
        assert merged.title == "From server"
        assert merged.is_completed is True
        assert merged.priority == Priority.HIGH
        assert merged.server_id == "42"
        assert merged.is_synced is True
        assert merged.last_modified == datetime(2024, 1, 3, tzinfo=timezone.utc)


class TestTombstoneStates:
    """Active/Tombstoned classification."""

    def test_live_record_is_active(self):
        assert isinstance(classify(make_item()), Active)

    def test_unpropagated_tombstone_is_pending(self):
        state = classify(make_item(server_id="7", is_deleted=True, is_synced=False))
        assert isinstance(state, Tombstoned)
        assert state.pending_remote_delete is True
        assert not is_purgeable(state.item)

    def test_propagated_tombstone_is_purgeable(self):
        item = make_item(server_id="7", is_deleted=True, is_synced=True)
        state = classify(item)
        assert isinstance(state, Tombstoned)
        assert state.pending_remote_delete is False
        assert is_purgeable(item)


class TestSerialization:
    """Local and wire formats."""

    def test_local_dict_round_trip_keeps_sync_metadata(self):
        item = make_item(server_id="7", is_synced=True, priority=Priority.LOW,
                         last_modified=datetime(2024, 1, 5, tzinfo=timezone.utc))
        assert TodoItem.from_dict(item.to_dict()) == item

    def test_from_dict_requires_created_at(self):
        with pytest.raises(ValueError):
            TodoItem.from_dict({"id": "x", "title": "no date"})

    def test_wire_format_omits_sync_metadata(self):
        wire = make_item(server_id="7", is_synced=True).to_wire()
        assert set(wire) == {"id", "title", "is_completed", "priority", "created_at", "due_date"}
        assert wire["id"] == "7"

    def test_from_wire_builds_synced_record(self):
        item = TodoItem.from_wire({
            "id": 42,
            "title": "Remote",
            "is_completed": False,
            "priority": "urgent",
            "created_at": "2024-01-02T00:00:00+00:00",
            "due_date": None,
        })
        assert item.server_id == "42"
        assert item.is_synced is True
        assert item.priority == Priority.MEDIUM
        assert item.last_modified is None


class TestOrdering:
    """Display order."""

    def test_priority_rank(self):
        assert Priority.HIGH.rank < Priority.MEDIUM.rank < Priority.LOW.rank

    def test_sort_key_puts_incomplete_high_priority_first(self):
        low = make_item(id="a", priority=Priority.LOW)
        high = make_item(id="b", priority=Priority.HIGH)
        done = make_item(id="c", priority=Priority.HIGH, is_completed=True)
        ordered = sorted([done, low, high], key=lambda item: item.sort_key())
        assert [item.id for item in ordered] == ["b", "a", "c"]
