"""
Availability Resolver.

Answers "when can Provider X work on Date Y?" by combining:
1. Recurring weekly hours (the provider's availability blocks)
2. Approved date-specific exceptions (time off or override windows)
3. Organization holidays (recurring annual + custom one-off)

SlotFinder turns those windows into free bookable starts for self-service.
"""

import logging
from datetime import date as date_type, time as time_type, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from collections import defaultdict

from models import (
    ApprovalStatus,
    AvailabilityException,
    AvailableSlot,
    Holiday,
    OrganizationContext,
    Provider,
    TimeWindow,
)
from .state import SchedulerState

logger = logging.getLogger(__name__)


def merge_windows(windows: Iterable[TimeWindow]) -> List[TimeWindow]:
    """Sort and merge overlapping or adjacent windows into disjoint blocks."""
    ordered = sorted(windows, key=lambda w: (w.start_time, w.end_time))
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start_time <= last.end_time:
            if current.end_time > last.end_time:
                merged[-1] = TimeWindow(start_time=last.start_time, end_time=current.end_time)
        else:
            merged.append(current)
    return merged


class AvailabilityResolver:
    """
    Resolves bookable windows per provider per date.
    Only APPROVED exceptions are considered; pending and rejected ones are ignored.
    """

    def __init__(self, context: OrganizationContext, exceptions: Iterable[AvailabilityException] = ()):
        self.context = context
        # Index approved exceptions by (provider, date) for O(1) lookup
        self.exceptions: Dict[Tuple[str, date_type], List[AvailabilityException]] = defaultdict(list)
        for exc in exceptions:
            if exc.status == ApprovalStatus.APPROVED:
                self.exceptions[(exc.provider_id, exc.date)].append(exc)

    def windows_for(self, provider: Provider, day: date_type) -> List[TimeWindow]:
        """Disjoint windows for one date. Empty list = fully unavailable."""
        if not provider.is_active:
            return []

        recurring = [b.to_window() for b in provider.availability if b.day_of_week == day.weekday()]
        overrides = self.exceptions.get((provider.id, day))

        if overrides:
            # An approved exception replaces the recurring window entirely
            if any(not exc.available for exc in overrides):
                return []
            windows = [exc.window for exc in overrides if exc.window is not None]
            # An available exception without a window re-opens the normal hours
            return merge_windows(windows or recurring)

        holiday = self.context.holiday_on(day)
        if holiday:
            logger.debug(f"{provider.name} unavailable on {day}: {holiday.name}")
            return []

        return merge_windows(recurring)

    def resolve(self, provider: Provider, start: date_type, end: date_type) -> Iterator[Tuple[date_type, List[TimeWindow]]]:
        """Lazily yield (date, windows) for every date in [start, end]."""
        current = start
        while current <= end:
            yield current, self.windows_for(provider, current)
            current += timedelta(days=1)

    def is_available(self, provider: Provider, day: date_type, start, end) -> bool:
        return any(w.contains(start, end) for w in self.windows_for(provider, day))


def _at(minutes: int) -> time_type:
    return time_type(minutes // 60, minutes % 60)


class SlotFinder:
    """
    Free bookable starts over a date range.

    Each provider's resolved windows, clipped to business hours, minus every
    reservation already in `state` (active sessions and live holds). Starts
    step by the organization's slot interval, the same grid the matcher uses.
    """

    def __init__(self, resolver: AvailabilityResolver, state: SchedulerState):
        self.resolver = resolver
        self.context = resolver.context
        self.state = state

    def find(
        self,
        providers: Iterable[Provider],
        start: date_type,
        end: date_type,
        duration: int,
        room_id: Optional[str] = None,
        client_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[AvailableSlot]:
        step = self.context.slot_interval_minutes
        slots = []
        for provider in providers:
            for day, windows in self.resolver.resolve(provider, start, end):
                hours = self.context.hours_for(day)
                if not windows or hours is None:
                    continue
                for minute in range(hours.start_minutes, hours.end_minutes - duration + 1, step):
                    slot_start, slot_end = _at(minute), _at(minute + duration)
                    if not any(w.contains(slot_start, slot_end) for w in windows):
                        continue
                    if self._taken(provider.id, room_id, client_id, day, slot_start, slot_end):
                        continue
                    slots.append(AvailableSlot(
                        date=day, start_time=slot_start, end_time=slot_end,
                        provider_id=provider.id, provider_name=provider.name, room_id=room_id,
                    ))

        slots.sort(key=lambda s: (s.date, s.start_time, s.provider_name, s.provider_id))
        return slots if limit is None else slots[:limit]

    def _taken(self, provider_id, room_id, client_id, day, start, end) -> bool:
        if self.state.provider_conflict(provider_id, day, start, end):
            return True
        if room_id and self.state.room_conflict(room_id, day, start, end):
            return True
        return bool(client_id and self.state.client_conflict(client_id, day, start, end))


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> date_type:
    """nth occurrence (1-based; -1 = last) of a weekday (0=Monday) in a month."""
    if n == -1:
        last = date_type(year + (month // 12), month % 12 + 1, 1) - timedelta(days=1)
        return last - timedelta(days=(last.weekday() - weekday) % 7)
    first = date_type(year, month, 1)
    return first + timedelta(days=(weekday - first.weekday()) % 7, weeks=n - 1)


def federal_holidays(year: int) -> List[Holiday]:
    """US federal holidays for a year, as one-off Holiday entries."""
    return [
        Holiday(name="New Year's Day", date=date_type(year, 1, 1)),
        Holiday(name="Martin Luther King Jr. Day", date=_nth_weekday(year, 1, 0, 3)),
        Holiday(name="Presidents' Day", date=_nth_weekday(year, 2, 0, 3)),
        Holiday(name="Memorial Day", date=_nth_weekday(year, 5, 0, -1)),
        Holiday(name="Juneteenth", date=date_type(year, 6, 19)),
        Holiday(name="Independence Day", date=date_type(year, 7, 4)),
        Holiday(name="Labor Day", date=_nth_weekday(year, 9, 0, 1)),
        Holiday(name="Columbus Day", date=_nth_weekday(year, 10, 0, 2)),
        Holiday(name="Veterans Day", date=date_type(year, 11, 11)),
        Holiday(name="Thanksgiving Day", date=_nth_weekday(year, 11, 3, 4)),
        Holiday(name="Christmas Day", date=date_type(year, 12, 25)),
    ]
