"""Tests for the display ordering of active broadcasts."""

from datetime import datetime, timedelta, timezone

from camcast.domain.live.broadcast.broadcast_models import BroadcastRecord
from camcast.domain.live.mirror.list_projection import project, to_list_items

T0 = datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)


def record(record_id: str, minutes: int = 0, viewers: int = 0, uid: str = "uid_alice") -> BroadcastRecord:
    return BroadcastRecord(
        id=record_id,
        broadcaster_uid=uid,
        title=f"Broadcast {record_id}",
        start_time=T0 + timedelta(minutes=minutes),
        viewer_count=viewers,
    )


class TestProject:
    def test_newest_first(self):
        records = [record("bc_a", minutes=0), record("bc_b", minutes=5), record("bc_c", minutes=2)]

        assert [r.id for r in project(records)] == ["bc_b", "bc_c", "bc_a"]

    def test_same_start_time_busiest_first(self):
        records = [record("bc_a", viewers=1), record("bc_b", viewers=9)]

        assert [r.id for r in project(records)] == ["bc_b", "bc_a"]

    def test_full_tie_broken_by_id(self):
        """Identical start time and viewer count: ordered by id, independent of input order."""
        records = [record("bc_z"), record("bc_m"), record("bc_a")]

        assert [r.id for r in project(records)] == ["bc_a", "bc_m", "bc_z"]
        assert project(reversed(records)) == project(records)

    def test_empty(self):
        assert project([]) == ()


class TestToListItems:
    def test_marks_viewer_records(self):
        # Arrange
        records = [record("bc_a", uid="uid_alice"), record("bc_b", minutes=1, uid="uid_bob")]

        # Act
        items = to_list_items(records, viewer_uid="uid_alice")

        # Assert
        assert [(i.id, i.is_mine) for i in items] == [("bc_b", False), ("bc_a", True)]
        assert items[1].broadcaster_name == "Anonymous"

    def test_signed_out_viewer_owns_nothing(self):
        items = to_list_items([record("bc_a")])

        assert items[0].is_mine is False
