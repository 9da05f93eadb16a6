"""
Tests for the event normalizer.
"""

import itertools
from datetime import datetime, timedelta

import pytest

from agenda_intel.services.event_normalizer import normalize_task, resolve_interval


class TestResolveInterval:
    def test_uses_explicit_start_and_end(self, now) -> None:
        start, end = resolve_interval(
            {"start_at": "2026-03-11T10:00:00", "end_at": "2026-03-11T11:30:00"}, now
        )
        assert start == datetime(2026, 3, 11, 10, 0)
        assert end == datetime(2026, 3, 11, 11, 30)

    def test_due_date_and_estimate(self, now) -> None:
        start, end = resolve_interval({"due_date": datetime(2026, 3, 12, 14, 0), "estimated_minutes": 45}, now)
        assert start == datetime(2026, 3, 12, 14, 0)
        assert end == datetime(2026, 3, 12, 14, 45)

    def test_no_dates_uses_now_truncated_to_hour(self, now) -> None:
        start, end = resolve_interval({}, now)
        assert start == datetime(2026, 3, 10, 9, 0)
        assert end == start + timedelta(minutes=30)

    def test_invalid_start_falls_back_to_now_not_due(self, now) -> None:
        start, _ = resolve_interval({"start_at": "not-a-date", "due_date": "2026-03-20T10:00:00"}, now)
        assert start == datetime(2026, 3, 10, 9, 0)

    def test_end_before_start_forced_to_default(self, now) -> None:
        start, end = resolve_interval(
            {"start_at": "2026-03-11T10:00:00", "end_at": "2026-03-11T09:00:00", "estimated_minutes": 90}, now
        )
        assert end == start + timedelta(minutes=30)

    def test_invalid_end_forced_to_default(self, now) -> None:
        start, end = resolve_interval({"start_at": "2026-03-11T10:00:00", "end_at": "garbage"}, now)
        assert end == start + timedelta(minutes=30)

    @pytest.mark.parametrize("estimate", [0, -15, float("nan"), "abc"])
    def test_unusable_estimate_forced_to_default(self, now, estimate) -> None:
        start, end = resolve_interval({"start_at": "2026-03-11T10:00:00", "estimated_minutes": estimate}, now)
        assert end == start + timedelta(minutes=30)

    def test_aware_datetimes_become_naive(self, now) -> None:
        start, end = resolve_interval({"start_at": "2026-03-11T10:00:00Z"}, now)
        assert start.tzinfo is None
        assert end.tzinfo is None


class TestNormalizationAlwaysPositive:
    def test_start_before_end_for_malformed_inputs(self, now) -> None:
        starts = [None, "", "bad", "2026-03-11T10:00:00", datetime(2026, 3, 11, 10), float("inf"), True]
        dues = [None, "nope", "2026-03-11T12:00:00"]
        ends = [None, "bad", "2026-03-11T09:00:00", "2026-03-11T10:00:00", "2026-03-11T18:00:00"]
        estimates = [None, 0, -10, 15, float("nan"), "x", 1e12]
        for start_at, due, end_at, est in itertools.product(starts, dues, ends, estimates):
            event = normalize_task(
                {"id": "x", "start_at": start_at, "due_date": due, "end_at": end_at, "estimated_minutes": est},
                now,
            )
            assert event.start < event.end, (start_at, due, end_at, est)

    @pytest.mark.parametrize(
        "task",
        [
            {"id": "x", "start_at": "9999-12-31T23:45:00"},
            {"id": "x", "due_date": "9999-12-31T23:59:59"},
            {"id": "x", "start_at": "9999-12-31T23:59:59", "end_at": "bad"},
            {"id": "x", "start_at": "0001-01-01T00:00:00+14:00"},
            {"id": "x", "start_at": "9999-12-31T23:59:59-14:00"},
            {"id": "x", "start_at": "2026-03-11T10:00:00", "estimated_minutes": 1e15},
        ],
    )
    def test_edges_of_datetime_range(self, now, task) -> None:
        event = normalize_task(task, now)
        assert event.start < event.end

    def test_start_without_room_for_default_falls_back_to_now(self, now) -> None:
        start, end = resolve_interval({"start_at": "9999-12-31T23:45:00"}, now)
        assert start == datetime(2026, 3, 10, 9, 0)
        assert end == start + timedelta(minutes=30)

    def test_start_near_range_end_keeps_explicit_end(self, now) -> None:
        start, end = resolve_interval({"start_at": "9999-12-31T23:45:00", "end_at": "9999-12-31T23:50:00"}, now)
        assert start == datetime(9999, 12, 31, 23, 45)
        assert end == datetime(9999, 12, 31, 23, 50)

    def test_task_model_accepts_range_edges(self, now, make_task) -> None:
        task = make_task(due_date="9999-12-31T23:59:59", start_at="0001-01-01T00:00:00+14:00")
        assert task.due_date == datetime(9999, 12, 31, 23, 59, 59)
        assert task.start_at is not None
        assert normalize_task(task, now).start < normalize_task(task, now).end


class TestNormalizeTask:
    def test_maps_task_fields(self, now, make_task) -> None:
        task = make_task(
            id="task-1",
            title="Call Acme",
            status="PENDING",
            priority="HIGH",
            due_date=datetime(2026, 3, 11, 10),
            estimated_minutes=20,
            assigned_to="alice",
            client_name="Acme",
        )
        event = normalize_task(task, now)
        assert event.id == "task-1"
        assert event.title == "Call Acme"
        assert event.priority == "HIGH"
        assert event.status == "PENDING"
        assert event.start == datetime(2026, 3, 11, 10)
        assert event.end == datetime(2026, 3, 11, 10, 20)
        assert event.due_date == datetime(2026, 3, 11, 10)
        assert event.assigned_to == "alice"
        assert event.client_name == "Acme"
        assert event.risk is None
        assert event.auto_priority is None

    def test_task_model_drops_unparseable_dates(self, now, make_task) -> None:
        task = make_task(start_at="bad", due_date="2026-03-11T10:00:00")
        assert task.start_at is None
        event = normalize_task(task, now)
        assert event.start == datetime(2026, 3, 11, 10)
