"""Tests for WatermarkStore delegation and persistence."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from logpoller.lib.store import LoadResult, StateFormat, WatermarkStore
from logpoller.lib.tracker import MILLIS_PER_MINUTE


class TestGroupAccess:
    """Tests for group creation and delegation."""

    def test_get_does_not_create(self, state_path: Path) -> None:
        store = WatermarkStore(state_path, 15)
        assert store.get("group") is None
        assert "group" not in store

    def test_get_or_create_creates_once(self, state_path: Path) -> None:
        store = WatermarkStore(state_path, 15)
        tracker = store.get_or_create("group")
        assert store.get_or_create("group") is tracker
        assert tracker.prune_window_minutes == 15
        assert list(store) == ["group"]
        assert len(store) == 1

    def test_add_new_event_to_empty_model(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 15)
        event = make_event()

        assert store.is_new_event("group", event)
        store.record_processed_event("group", event)
        assert not store.is_new_event("group", event)

    def test_groups_are_independent(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 15)
        event = make_event(timestamp=100)
        store.record_processed_event("groupA", event)

        assert store.is_new_event("groupB", event)
        assert store.min_time("groupA") == 100
        assert store.min_time("groupB") is None
        assert store.min_time("groupB", 7) == 7

    def test_purge_delegates(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 1)
        store.record_processed_event("group", make_event(timestamp=0))
        store.record_processed_event("group", make_event(timestamp=3 * MILLIS_PER_MINUTE, event_id="b"))

        store.purge("group")

        assert store.min_time("group") == 2 * MILLIS_PER_MINUTE
        assert list(store.get("group").events_by_timestamp) == [3 * MILLIS_PER_MINUTE]

    def test_get_or_set_min_time(self, state_path: Path) -> None:
        store = WatermarkStore(state_path, 15)
        assert store.get_or_set_min_time("group", 500) == 500
        assert store.min_time("group") == 500


class TestForwardIfNew:
    """Tests for the deliver-then-record wrapper."""

    def test_forwards_once(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 15)
        deliver = MagicMock()
        event = make_event()

        assert store.forward_if_new("group", event, deliver) is True
        assert store.forward_if_new("group", event, deliver) is False
        deliver.assert_called_once_with(event)

    def test_failed_delivery_is_not_recorded(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 15)
        event = make_event()

        with pytest.raises(RuntimeError):
            store.forward_if_new("group", event, MagicMock(side_effect=RuntimeError("sink down")))

        assert store.is_new_event("group", event)


class TestSaveAndLoad:
    """Tests for the current JSON format."""

    def test_save_writes_json_document(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 15)
        store.record_processed_event("groupA", make_event(timestamp=1, stream="streamX", event_id="event1"))
        store.record_processed_event("groupA", make_event(timestamp=1, stream="streamY", event_id="event2"))

        assert store.save() is True

        assert json.loads(state_path.read_text()) == {
            "groupA": {"1": ["streamX:event1", "streamY:event2"]}
        }

    def test_round_trip(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 3)
        store.record_processed_event("groupA", make_event(timestamp=1, stream="streamX", event_id="event1"))
        store.record_processed_event("groupB", make_event(timestamp=1, stream="streamX", event_id="event1"))
        store.record_processed_event("groupA", make_event(timestamp=2, stream="streamY", event_id="event2"))
        store.save()

        reloaded = WatermarkStore(state_path, 3)
        result = reloaded.load()

        assert result == LoadResult(StateFormat.JSON, group_count=2)
        group_a = reloaded.get("groupA")
        assert group_a.events_by_timestamp == {1: ["streamX:event1"], 2: ["streamY:event2"]}
        assert group_a.min_time() == 1
        assert group_a.max_time == 2

        group_b = reloaded.get("groupB")
        assert group_b.events_by_timestamp == {1: ["streamX:event1"]}
        assert group_b.min_time() == 1
        assert group_b.max_time == 1

    def test_reloaded_store_remembers_delivered_events(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 15)
        delivered = make_event(timestamp=1000, stream="X", event_id="e1")
        store.record_processed_event("A", delivered)
        store.save()

        reloaded = WatermarkStore(state_path, 15)
        reloaded.load()

        assert not reloaded.is_new_event("A", delivered)
        assert reloaded.is_new_event("A", make_event(timestamp=1000, stream="X", event_id="e2"))
        assert not reloaded.is_new_event("A", make_event(timestamp=999, stream="X", event_id="e3"))

    def test_round_trip_after_purge_keeps_window_bounds(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 1)
        store.record_processed_event("A", make_event(timestamp=0))
        store.record_processed_event("A", make_event(timestamp=2 * MILLIS_PER_MINUTE, event_id="b"))
        store.record_processed_event("A", make_event(timestamp=3 * MILLIS_PER_MINUTE, event_id="c"))
        store.purge("A")
        store.save()

        reloaded = WatermarkStore(state_path, 1)
        reloaded.load()

        assert reloaded.min_time("A") == 2 * MILLIS_PER_MINUTE
        assert reloaded.get("A").max_time == 3 * MILLIS_PER_MINUTE

    def test_load_replaces_in_memory_state(self, state_path: Path, make_event) -> None:
        state_path.write_text(json.dumps({"groupA": {"5": ["s:e"]}}))
        store = WatermarkStore(state_path, 15)
        store.record_processed_event("stale", make_event())

        store.load()

        assert list(store) == ["groupA"]

    def test_save_failure_is_reported_not_raised(self, tmp_path: Path, make_event) -> None:
        # a directory cannot be opened for writing
        store = WatermarkStore(tmp_path, 15)
        store.record_processed_event("group", make_event())

        assert store.save() is False

    def test_save_failure_leaves_previous_file(self, state_path: Path, make_event) -> None:
        store = WatermarkStore(state_path, 15)
        store.record_processed_event("group", make_event(timestamp=1))
        store.save()
        before = state_path.read_text()

        store.record_processed_event("group", make_event(timestamp=2, event_id="later"))
        with patch("logpoller.lib.store.open", side_effect=PermissionError("denied"), create=True):
            assert store.save() is False

        assert state_path.read_text() == before
        assert store.save() is True
        assert "streamX:later" in state_path.read_text()


class TestLegacyFormat:
    """Tests for the line-based state format."""

    def test_old_save_data_format(self, state_path: Path) -> None:
        state_path.write_text(
            "group1:stream1 1\n"
            "group1:stream2 2\n"
            "group1 3\n"
            "group2 4\n"
            "group2:stream1 5\n"
        )
        store = WatermarkStore(state_path, 3)

        result = store.load()

        assert result.format is StateFormat.LEGACY
        assert result.group_count == 2
        group1 = store.get("group1")
        assert group1.min_time() == 3
        assert group1.max_time == 3
        group2 = store.get("group2")
        assert group2.min_time() == 5
        assert group2.max_time == 5

    def test_group_line_after_stream_lines(self, state_path: Path) -> None:
        state_path.write_text("g1:s1 2\ng1:s2 1\ng1 3\n")
        store = WatermarkStore(state_path, 15)

        store.load()

        tracker = store.get("g1")
        assert tracker.min_time() == 3
        assert tracker.max_time == 3
        assert tracker.events_by_timestamp == {}

    def test_legacy_state_resumes_at_tail(self, state_path: Path, make_event) -> None:
        state_path.write_text("g1 3000\n")
        store = WatermarkStore(state_path, 15)
        store.load()

        assert not store.is_new_event("g1", make_event(timestamp=2999))
        assert store.is_new_event("g1", make_event(timestamp=3000))

    def test_legacy_file_without_trailing_newline(self, state_path: Path) -> None:
        state_path.write_text("g1 10\n\ng2 20")
        store = WatermarkStore(state_path, 15)

        assert store.load().group_count == 2
        assert store.min_time("g2") == 20

    def test_next_save_upgrades_to_json(self, state_path: Path) -> None:
        state_path.write_text("g1:s1 7\n")
        store = WatermarkStore(state_path, 15)
        store.load()
        store.save()

        assert json.loads(state_path.read_text()) == {"g1": {}}


class TestLoadFailures:
    """Unreadable or malformed files leave the store empty."""

    def test_missing_file(self, state_path: Path) -> None:
        store = WatermarkStore(state_path, 15)
        result = store.load()

        assert result.format is StateFormat.EMPTY
        assert not result.loaded
        assert len(store) == 0

    def test_empty_file(self, state_path: Path) -> None:
        state_path.write_text("   \n")
        assert WatermarkStore(state_path, 15).load().format is StateFormat.EMPTY

    def test_garbage_file(self, state_path: Path, make_event) -> None:
        state_path.write_text("this is not { a state file\n")
        store = WatermarkStore(state_path, 15)

        result = store.load()

        assert result.format is StateFormat.EMPTY
        assert "legacy" in result.error
        assert len(store) == 0
        assert store.is_new_event("this", make_event())

    def test_partially_valid_legacy_file_loads_nothing(self, state_path: Path) -> None:
        state_path.write_text("g1 10\ng2 not-a-number\n")
        store = WatermarkStore(state_path, 15)

        assert store.load().format is StateFormat.EMPTY
        assert store.get("g1") is None

    def test_truncated_json(self, state_path: Path) -> None:
        state_path.write_text('{"groupA": {"1": ["s:e"')
        store = WatermarkStore(state_path, 15)
        assert store.load().format is StateFormat.EMPTY

    @pytest.mark.parametrize(
        "document",
        [
            [1, 2, 3],
            {"groupA": ["s:e"]},
            {"groupA": {"1": "s:e"}},
            {"groupA": {"soon": ["s:e"]}},
        ],
    )
    def test_wrong_json_shape(self, state_path: Path, document) -> None:
        state_path.write_text(json.dumps(document))
        store = WatermarkStore(state_path, 15)

        result = store.load()

        assert result.format is StateFormat.EMPTY
        assert "json" in result.error
        assert len(store) == 0

    def test_unreadable_file(self, state_path: Path) -> None:
        state_path.write_bytes(b"\xff\xfe\x00garbage")
        store = WatermarkStore(state_path, 15)
        assert store.load().format is StateFormat.EMPTY
