"""
Tests for the calendar event cache.
"""

from datetime import date, datetime, timedelta

from agenda_intel.models import CalendarEvent
from agenda_intel.services.calendar_event_cache import (
    RANGE_ADJACENCY,
    CalendarEventCache,
    DateRange,
    ObservableCalendarEventCache,
    merge_ranges,
    subtract_range,
)


def d(day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, minute)


def day_range(first: int, last: int) -> DateRange:
    return DateRange(d(first), datetime(2026, 3, last, 23, 59, 59, 999000))


def ev(event_id: str, start: datetime, title: str = "", minutes: int = 30) -> CalendarEvent:
    return CalendarEvent(id=event_id, title=title or event_id, start=start, end=start + timedelta(minutes=minutes))


EVENTS = [
    ev("a", d(1, 9)),
    ev("b", d(3, 14)),
    ev("c", d(3, 8)),
    ev("e", d(7, 10)),
    ev("f", d(8, 11)),
    ev("g", d(10, 16)),
]


class TestRangeHelpers:
    def test_merge_overlapping(self) -> None:
        merged = merge_ranges([DateRange(d(5), d(8)), DateRange(d(1), d(3)), DateRange(d(2), d(6))])
        assert merged == [DateRange(d(1), d(8))]

    def test_merge_adjacent(self) -> None:
        merged = merge_ranges([DateRange(d(1), d(2)), DateRange(d(2) + RANGE_ADJACENCY, d(4))])
        assert merged == [DateRange(d(1), d(4))]

    def test_disjoint_stay_separate(self) -> None:
        merged = merge_ranges([DateRange(d(6), d(8)), DateRange(d(1), d(2))])
        assert merged == [DateRange(d(1), d(2)), DateRange(d(6), d(8))]

    def test_subtract_middle_splits(self) -> None:
        parts = subtract_range(DateRange(d(1), d(10)), DateRange(d(4), d(6)))
        assert parts == [
            DateRange(d(1), d(4) - RANGE_ADJACENCY),
            DateRange(d(6) + RANGE_ADJACENCY, d(10)),
        ]

    def test_subtract_covering_removes(self) -> None:
        assert subtract_range(DateRange(d(3), d(4)), DateRange(d(1), d(10))) == []

    def test_subtract_disjoint_keeps(self) -> None:
        r = DateRange(d(1), d(2))
        assert subtract_range(r, DateRange(d(5), d(6))) == [r]

    def test_edges_of_datetime_range(self) -> None:
        late = DateRange(datetime.max - timedelta(hours=1), datetime.max)
        assert merge_ranges([late, late]) == [late]
        early = DateRange(datetime.min, datetime.min + timedelta(hours=1))
        assert subtract_range(early, DateRange(datetime.min + timedelta(microseconds=1), datetime.min + timedelta(minutes=30))) == [
            DateRange(datetime.min + timedelta(minutes=30) + RANGE_ADJACENCY, datetime.min + timedelta(hours=1))
        ]


class TestAddRange:
    def test_idempotent(self) -> None:
        once = CalendarEventCache()
        once.add_range(day_range(1, 10), EVENTS)
        twice = CalendarEventCache()
        twice.add_range(day_range(1, 10), EVENTS)
        twice.add_range(day_range(1, 10), EVENTS)
        assert twice.events_by_day == once.events_by_day
        assert twice.loaded_ranges == once.loaded_ranges

    def test_buckets_by_start_day_sorted(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 10), EVENTS)
        assert [e.id for e in cache.get_events_for_day("2026-03-03")] == ["c", "b"]
        assert cache.all_day_keys() == ["2026-03-01", "2026-03-03", "2026-03-07", "2026-03-08", "2026-03-10"]

    def test_last_write_wins_per_id(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(3, 3), [ev("b", d(3, 14), title="old")])
        cache.add_range(day_range(3, 3), [ev("b", d(3, 14), title="new")])
        assert [e.title for e in cache.get_events_for_day(date(2026, 3, 3))] == ["new"]

    def test_merges_loaded_ranges(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 4), [])
        cache.add_range(day_range(5, 9), [])
        assert len(cache.loaded_ranges) == 1
        assert cache.is_range_loaded(DateRange(d(3), d(6)))


class TestRangeCoverage:
    def test_sub_range_loaded_and_served(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 10), EVENTS)
        query = day_range(3, 7)
        assert cache.is_range_loaded(query)
        expected = sorted(
            (e for e in EVENTS if query.start <= e.start <= query.end), key=lambda e: e.start
        )
        assert cache.get_events_for_range(query) == expected

    def test_range_across_gap_not_loaded(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 2), [])
        cache.add_range(day_range(5, 6), [])
        assert not cache.is_range_loaded(day_range(2, 5))

    def test_range_partially_outside_not_loaded(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 10), [])
        assert not cache.is_range_loaded(day_range(9, 12))


class TestInvalidateRange:
    def test_splits_loaded_range_and_drops_days(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 10), EVENTS)
        cache.invalidate_range(day_range(3, 7))
        assert len(cache.loaded_ranges) == 2
        assert cache.is_range_loaded(day_range(1, 2))
        assert cache.is_range_loaded(day_range(8, 10))
        assert not cache.is_range_loaded(day_range(3, 3))
        assert cache.get_events_for_day("2026-03-03") == []
        assert cache.get_events_for_day("2026-03-07") == []
        assert [e.id for e in cache.get_events_for_day("2026-03-08")] == ["f"]

    def test_left_edge_keeps_right_remainder(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(5, 10), [])
        cache.invalidate_range(day_range(1, 6))
        assert cache.loaded_ranges == [DateRange(day_range(6, 6).end + RANGE_ADJACENCY, day_range(10, 10).end)]

    def test_reloading_invalidated_range_restores_single_interval(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 10), EVENTS)
        cache.invalidate_range(day_range(3, 7))
        cache.add_range(day_range(3, 7), [])
        assert len(cache.loaded_ranges) == 1
        assert cache.is_range_loaded(day_range(1, 10))

    def test_invalidating_unloaded_range_is_noop(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 2), [EVENTS[0]])
        cache.invalidate_range(day_range(20, 25))
        assert cache.loaded_ranges == [day_range(1, 2)]
        assert cache.get_event_by_id("a") is not None


class TestOptimisticMutation:
    def test_update_moves_event_to_new_day(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 10), EVENTS)
        cache.update_event(ev("a", d(3, 12), title="moved"))
        assert cache.get_events_for_day("2026-03-01") == []
        assert "2026-03-01" not in cache.all_day_keys()
        assert [e.id for e in cache.get_events_for_day("2026-03-03")] == ["c", "a", "b"]
        assert cache.get_event_by_id("a").title == "moved"

    def test_update_unknown_event_inserts(self) -> None:
        cache = CalendarEventCache()
        cache.update_event(ev("new", d(4, 9)))
        assert [e.id for e in cache.get_events_for_day("2026-03-04")] == ["new"]

    def test_update_same_day_replaces(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(3, 3), [ev("b", d(3, 14)), ev("c", d(3, 8))])
        cache.update_event(ev("b", d(3, 7), title="earlier"))
        bucket = cache.get_events_for_day("2026-03-03")
        assert [e.id for e in bucket] == ["b", "c"]
        assert bucket[0].title == "earlier"

    def test_remove_event(self) -> None:
        cache = CalendarEventCache()
        cache.add_range(day_range(1, 10), EVENTS)
        cache.remove_event("a")
        cache.remove_event("missing")
        assert cache.get_event_by_id("a") is None
        assert "2026-03-01" not in cache.all_day_keys()
        assert cache.is_range_loaded(day_range(1, 10))


class TestObservableCache:
    def test_listeners_notified_on_every_mutation(self) -> None:
        cache = ObservableCalendarEventCache()
        calls = []
        cache.subscribe(lambda c: calls.append(len(c.all_day_keys())))
        cache.add_range(day_range(1, 10), EVENTS)
        cache.update_event(ev("z", d(20, 9)))
        cache.remove_event("z")
        cache.invalidate_range(day_range(1, 10))
        assert calls == [5, 6, 5, 0]

    def test_failing_listener_does_not_break_others(self) -> None:
        cache = ObservableCalendarEventCache()
        seen = []

        def broken(_c) -> None:
            raise RuntimeError("boom")

        cache.subscribe(broken)
        cache.subscribe(lambda c: seen.append(True))
        cache.add_range(day_range(1, 1), [])
        assert seen == [True]

    def test_unsubscribe(self) -> None:
        cache = ObservableCalendarEventCache()
        calls = []
        unsubscribe = cache.subscribe(lambda c: calls.append(1))
        unsubscribe()
        cache.add_range(day_range(1, 1), [])
        assert calls == []
