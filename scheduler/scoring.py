"""
Soft Scoring Engine.

This module determines the 'Quality' of a slot that already passed every hard
filter. Unlike hard constraints (binary Yes/No), a score only ranks: it never
eliminates a candidate.

The score is a tuple compared lexicographically:
    (satisfied session rules, preferred-window match, preferred-room match, provider weekly load)
"""

from datetime import date as date_type, time as time_type
from typing import List, NamedTuple, Optional

from models import Client, Rule, SessionLogic, minutes_of
from .state import SchedulerState


class SoftScore(NamedTuple):
    satisfied_rules: int
    preferred_window: bool
    preferred_room: bool
    provider_load: int

    def sort_key(self):
        """Higher is better for the first three fields, lower load is better."""
        return (-self.satisfied_rules, -int(self.preferred_window), -int(self.preferred_room), self.provider_load)


class SlotScorer:
    """
    Evaluates valid slots against soft 'session' rules and client preferences.
    """

    def __init__(self, soft_rules: List[Rule]):
        self.soft_rules = soft_rules

    def score(
        self,
        client: Client,
        provider_id: str,
        room_id: Optional[str],
        date: date_type,
        start_time: time_type,
        end_time: time_type,
        state: SchedulerState
    ) -> SoftScore:
        satisfied = sum(
            1 for rule in self.soft_rules
            if self._satisfies(rule.logic, client, provider_id, date, start_time, end_time, state)
        )
        return SoftScore(
            satisfied_rules=satisfied,
            preferred_window=client.prefers_time(start_time, end_time),
            preferred_room=room_id is not None and room_id == client.preferred_room_id,
            provider_load=state.provider_load[provider_id],
        )

    def _satisfies(
        self,
        logic: SessionLogic,
        client: Client,
        provider_id: str,
        date: date_type,
        start: time_type,
        end: time_type,
        state: SchedulerState
    ) -> bool:
        """A rule counts as satisfied only when every criterion it sets holds."""
        day_bookings = state.provider_day(provider_id, date)

        if logic.max_sessions_per_day is not None and len(day_bookings) + 1 > logic.max_sessions_per_day:
            return False

        if logic.min_gap_minutes is not None:
            cand_start, cand_end = minutes_of(start), minutes_of(end)
            for booked in day_bookings:
                b_start, b_end = minutes_of(booked.start_time), minutes_of(booked.end_time)
                gap = cand_start - b_end if b_end <= cand_start else b_start - cand_end
                if gap < logic.min_gap_minutes:
                    return False

        if logic.spread_across_days and state.client_has_day(client.id, date):
            return False

        if logic.start_minute_marks and start.minute not in logic.start_minute_marks:
            return False

        return True
