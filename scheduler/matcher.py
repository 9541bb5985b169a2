"""
Constraint Matcher.

For one desired (client, date, duration), returns the ranked (provider, room)
candidates: ordered hard filtering first, then soft scoring.

Ranking key (lexicographic, fixed so fixtures stay stable):
    satisfied soft rules desc, preferred window desc, preferred room desc,
    provider weekly load asc, provider id asc, room id asc (no room first),
    date asc, start asc
"""

import logging
from datetime import date as date_type, time as time_type
from typing import Iterable, List, Optional
from dataclasses import dataclass

from models import BookingSource, Client, OrganizationContext, Provider, Room, Session, minutes_of
from .constraints import ConstraintChecker
from .scoring import SlotScorer, SoftScore
from .state import SchedulerState

logger = logging.getLogger(__name__)


def _at(minutes: int) -> time_type:
    return time_type(minutes // 60, minutes % 60)


@dataclass(frozen=True)
class Candidate:
    provider_id: str
    room_id: Optional[str]
    date: date_type
    start_time: time_type
    end_time: time_type
    score: SoftScore

    def sort_key(self):
        return (*self.score.sort_key(), self.provider_id, self.room_id or "", self.date, self.start_time)

    def to_session(self, client_id: str, booked_via: BookingSource = BookingSource.GENERATOR) -> Session:
        return Session(
            provider_id=self.provider_id,
            client_id=client_id,
            room_id=self.room_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            booked_via=booked_via,
        )


class ConstraintMatcher:
    """
    Filters and ranks candidates for a single session request.
    """

    def __init__(
        self,
        context: OrganizationContext,
        checker: ConstraintChecker,
        scorer: SlotScorer,
        providers: List[Provider],
        rooms: List[Room]
    ):
        self.context = context
        self.checker = checker
        self.scorer = scorer
        self.providers = sorted((p for p in providers if p.is_active), key=lambda p: p.id)
        self.rooms = sorted((r for r in rooms if r.is_active), key=lambda r: r.id)

    def candidate_starts(self, day: date_type, duration: int) -> List[time_type]:
        """Start times inside business hours, stepping by the slot interval."""
        hours = self.context.hours_for(day)
        if hours is None:
            return []
        step = self.context.slot_interval_minutes
        return [
            _at(m)
            for m in range(hours.start_minutes, hours.end_minutes - duration + 1, step)
        ]

    def match(
        self,
        client: Client,
        day: date_type,
        duration: int,
        state: SchedulerState,
        provider_ids: Optional[Iterable[str]] = None
    ) -> List[Candidate]:
        """All valid candidates for one session on one day, best first."""
        providers = self.providers
        if provider_ids is not None:
            wanted = set(provider_ids)
            providers = [p for p in providers if p.id in wanted]

        candidates = []
        for start in self.candidate_starts(day, duration):
            end = _at(minutes_of(start) + duration)

            violation = self.checker.check_slot(client, day, start, end)
            if violation:
                state.record_failure(client, violation)
                continue

            if state.client_conflict(client.id, day, start, end):
                continue

            rooms = self._rooms_for(client, day, start, end, state)
            if not rooms:
                continue

            for provider in providers:
                violation = self.checker.check_provider(client, provider, day, start, end, state)
                if violation:
                    logger.debug(f"Rejected {provider.id} for {client.id} on {day} {start:%H:%M}: {violation.reason}")
                    state.record_failure(client, violation)
                    continue
                for room_id in rooms:
                    score = self.scorer.score(client, provider.id, room_id, day, start, end, state)
                    candidates.append(Candidate(provider.id, room_id, day, start, end, score))

        candidates.sort(key=Candidate.sort_key)
        return candidates

    def best(self, client: Client, days: Iterable[date_type], duration: int, state: SchedulerState, provider_ids: Optional[Iterable[str]] = None) -> Optional[Candidate]:
        """Top candidate across several days, or None when nothing fits."""
        provider_ids = list(provider_ids) if provider_ids is not None else None
        found = []
        for day in days:
            found.extend(self.match(client, day, duration, state, provider_ids))
        if not found:
            return None
        return min(found, key=Candidate.sort_key)

    def _rooms_for(self, client: Client, day: date_type, start: time_type, end: time_type, state: SchedulerState) -> List[Optional[str]]:
        """
        Room options for a slot. A client needing room capabilities must get a
        capable free room; otherwise the preferred room (when free) or no room.
        """
        if client.required_room_capabilities:
            return [
                room.id for room in self.rooms
                if self.checker.check_room(client, room, day, start, end, state) is None
            ]

        options: List[Optional[str]] = [None]
        preferred = next((r for r in self.rooms if r.id == client.preferred_room_id), None)
        if preferred and self.checker.check_room(client, preferred, day, start, end, state) is None:
            options.append(preferred.id)
        return options
