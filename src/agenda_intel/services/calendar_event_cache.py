"""
Calendar Event Cache: range-indexed, day-bucketed store of CalendarEvents.

Tracks which date ranges are fully loaded so the caller can skip refetching,
merges incremental loads, and supports optimistic update/removal of single
events. Not thread-safe: callers with several writers must serialize
add_range / invalidate_range / update_event / remove_event.

Ranges are inclusive [start, end]. Two ranges separated by at most
RANGE_ADJACENCY are merged, so re-adding an invalidated range closes the gap.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from agenda_intel.models import CalendarEvent
from agenda_intel.services.timeutil import day_key, day_keys_in_range, shift, to_local_naive

logger = logging.getLogger(__name__)

RANGE_ADJACENCY = timedelta(milliseconds=1)


def _after(dt: datetime) -> datetime:
    return shift(dt, RANGE_ADJACENCY) or datetime.max


def _before(dt: datetime) -> datetime:
    return shift(dt, -RANGE_ADJACENCY) or datetime.min


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", to_local_naive(self.start))
        object.__setattr__(self, "end", to_local_naive(self.end))

    def contains(self, other: "DateRange") -> bool:
        return self.start <= other.start and self.end >= other.end

    def overlaps(self, other: "DateRange") -> bool:
        return self.start <= other.end and other.start <= self.end


def merge_ranges(ranges: Iterable[DateRange]) -> list[DateRange]:
    """Sort and merge overlapping or adjacent ranges."""
    ordered = sorted(ranges, key=lambda r: r.start)
    merged: list[DateRange] = []
    for current in ordered:
        if merged and current.start <= _after(merged[-1].end):
            last = merged[-1]
            merged[-1] = DateRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def subtract_range(interval: DateRange, removed: DateRange) -> list[DateRange]:
    """Remainder of interval after removing `removed`: zero, one or two sub-ranges."""
    if not interval.overlaps(removed):
        return [interval]
    out: list[DateRange] = []
    if interval.start < removed.start:
        out.append(DateRange(interval.start, _before(removed.start)))
    if interval.end > removed.end:
        out.append(DateRange(_after(removed.end), interval.end))
    return [r for r in out if r.start < r.end]


def _sorted_bucket(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    return sorted(events, key=lambda e: e.start)


class CalendarEventCache:
    """In-memory cache owned by one session/request scope."""

    def __init__(self) -> None:
        self.events_by_day: dict[str, list[CalendarEvent]] = {}
        self.loaded_ranges: list[DateRange] = []

    def add_range(self, range_: DateRange, events: Iterable[CalendarEvent]) -> None:
        """Merge events into day buckets (last write wins per id) and mark the range loaded."""
        buckets: dict[str, dict[str, CalendarEvent]] = {
            key: {e.id: e for e in bucket} for key, bucket in self.events_by_day.items()
        }
        for event in events:
            buckets.setdefault(day_key(event.start), {})[event.id] = event
        self.events_by_day = {key: _sorted_bucket(by_id.values()) for key, by_id in buckets.items()}
        self.loaded_ranges = merge_ranges([*self.loaded_ranges, range_])

    def is_range_loaded(self, range_: DateRange) -> bool:
        return any(loaded.contains(range_) for loaded in self.loaded_ranges)

    def invalidate_range(self, range_: DateRange) -> None:
        """Drop buckets for days in range_ and carve range_ out of the loaded ranges."""
        for key in day_keys_in_range(range_.start, range_.end):
            self.events_by_day.pop(key, None)
        remaining: list[DateRange] = []
        for loaded in self.loaded_ranges:
            remaining.extend(subtract_range(loaded, range_))
        self.loaded_ranges = remaining

    def update_event(self, event: CalendarEvent) -> None:
        """Optimistic update: move the event into the bucket of its (possibly new) start day."""
        for key, bucket in list(self.events_by_day.items()):
            if any(e.id == event.id for e in bucket):
                kept = [e for e in bucket if e.id != event.id]
                if kept:
                    self.events_by_day[key] = kept
                else:
                    del self.events_by_day[key]
                break
        key = day_key(event.start)
        bucket = [e for e in self.events_by_day.get(key, []) if e.id != event.id]
        bucket.append(event)
        self.events_by_day[key] = _sorted_bucket(bucket)

    def remove_event(self, event_id: str) -> None:
        for key in list(self.events_by_day):
            kept = [e for e in self.events_by_day[key] if e.id != event_id]
            if kept:
                self.events_by_day[key] = kept
            else:
                del self.events_by_day[key]

    def get_events_for_day(self, day: str | date | datetime) -> list[CalendarEvent]:
        if isinstance(day, datetime):
            key = day_key(day)
        elif isinstance(day, date):
            key = day.strftime("%Y-%m-%d")
        else:
            key = day
        return list(self.events_by_day.get(key, []))

    def get_events_for_range(self, range_: DateRange) -> list[CalendarEvent]:
        """Events whose start falls in range_, de-duplicated by id, ordered by start."""
        seen: set[str] = set()
        out: list[CalendarEvent] = []
        for key in day_keys_in_range(range_.start, range_.end):
            for event in self.events_by_day.get(key, []):
                if event.id in seen:
                    continue
                if range_.start <= event.start <= range_.end:
                    seen.add(event.id)
                    out.append(event)
        return _sorted_bucket(out)

    def get_event_by_id(self, event_id: str) -> Optional[CalendarEvent]:
        for bucket in self.events_by_day.values():
            for event in bucket:
                if event.id == event_id:
                    return event
        return None

    def all_day_keys(self) -> list[str]:
        return sorted(self.events_by_day)


Listener = Callable[[CalendarEventCache], None]


class ObservableCalendarEventCache(CalendarEventCache):
    """
    Cache that notifies subscribers after every mutation.

    For UI-boundary adapters; a failing listener is logged and does not
    affect the cache or the other listeners.
    """

    def __init__(self) -> None:
        super().__init__()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.warning("Calendar cache listener failed: %s", e)

    def add_range(self, range_: DateRange, events: Iterable[CalendarEvent]) -> None:
        super().add_range(range_, events)
        self._notify()

    def invalidate_range(self, range_: DateRange) -> None:
        super().invalidate_range(range_)
        self._notify()

    def update_event(self, event: CalendarEvent) -> None:
        super().update_event(event)
        self._notify()

    def remove_event(self, event_id: str) -> None:
        super().remove_event(event_id)
        self._notify()
