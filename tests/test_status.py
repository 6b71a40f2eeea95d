"""Tests for parcelspine.timeline.status - status resolution and ordering."""

from datetime import UTC, datetime

import pytest

from parcelspine.core.clock import FixedClock, TimelineClock
from parcelspine.models import PackageRecord, PackageStatus, TimelineConfig, TimelineMode
from parcelspine.timeline.status import (
    completion_percentage,
    next_package_due,
    resolve_status,
    round_half_up,
    sort_by_status,
    status_rank,
)


def _record(number: int, status: PackageStatus = PackageStatus.PENDING, day: int | None = None) -> PackageRecord:
    return PackageRecord(
        user_id="u1",
        timeline_id="tl",
        period_key=f"period_{number}",
        period_number=number,
        period_label=f"Day {number}",
        delivery_date=datetime(2024, 1, day or number + 1, tzinfo=UTC),
        status=status,
    )


class TestResolveStatus:
    def test_pending_past_due_is_overdue(self):
        clock = FixedClock("2024-01-05T00:00:00Z")
        assert resolve_status(_record(1), clock) is PackageStatus.OVERDUE

    def test_pending_not_yet_due(self):
        clock = FixedClock("2024-01-01T00:00:00Z")
        assert resolve_status(_record(1), clock) is PackageStatus.PENDING

    def test_due_exactly_now_is_not_overdue(self):
        clock = FixedClock("2024-01-02T00:00:00Z")
        assert resolve_status(_record(1), clock) is PackageStatus.PENDING

    @pytest.mark.parametrize(
        "status", [PackageStatus.DELIVERED, PackageStatus.PICKED_UP, PackageStatus.RETURNED]
    )
    def test_terminal_statuses_pass_through(self, status):
        clock = FixedClock("2030-01-01T00:00:00Z")
        assert resolve_status(_record(1, status), clock) is status

    def test_uses_stored_status_not_display_status(self):
        clock = FixedClock("2024-01-01T00:00:00Z")
        record = _record(1)
        record.status = PackageStatus.OVERDUE
        assert record.stored_status is PackageStatus.PENDING
        assert resolve_status(record, clock) is PackageStatus.PENDING

    def test_simulated_clock(self):
        timeline = TimelineConfig(
            id="tl",
            name="tl",
            cadence="daily",
            duration=1,
            start_date=datetime(2024, 1, 1, tzinfo=UTC),
            mode=TimelineMode.MANUAL,
            simulation_date=datetime(2024, 1, 5, tzinfo=UTC),
        )
        real = FixedClock("2024-01-01T00:00:00Z")
        clock = TimelineClock(timeline, base=real)
        assert clock.simulated
        assert resolve_status(_record(1), clock) is PackageStatus.OVERDUE

    def test_auto_mode_ignores_simulation_date(self):
        timeline = TimelineConfig(
            id="tl",
            name="tl",
            cadence="daily",
            duration=1,
            start_date=datetime(2024, 1, 1, tzinfo=UTC),
            simulation_date=datetime(2024, 1, 5, tzinfo=UTC),
        )
        clock = TimelineClock(timeline, base=FixedClock("2024-01-01T00:00:00Z"))
        assert not clock.simulated
        assert resolve_status(_record(1), clock) is PackageStatus.PENDING


class TestOrdering:
    def test_sort_by_status(self):
        records = [
            _record(1, PackageStatus.PICKED_UP),
            _record(2, PackageStatus.PENDING),
            _record(3, PackageStatus.OVERDUE),
            _record(4, PackageStatus.DELIVERED),
            _record(5, PackageStatus.RETURNED),
        ]
        ordered = [r.period_number for r in sort_by_status(records)]
        assert ordered == [3, 5, 2, 4, 1]

    def test_unknown_status_ranks_last(self):
        assert status_rank("lost") > status_rank(PackageStatus.PICKED_UP)

    def test_next_package_due(self):
        records = [
            _record(1, PackageStatus.DELIVERED),
            _record(2, day=9),
            _record(3, day=4),
        ]
        assert next_package_due(records).period_number == 3
        assert next_package_due([_record(1, PackageStatus.DELIVERED)]) is None


class TestCompletion:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(66.4) == 66

    def test_completion_percentage(self):
        records = [
            {"status": "delivered"},
            {"status": "picked_up"},
            {"status": "pending"},
        ]
        assert completion_percentage(records) == 67
        assert completion_percentage([]) == 0
