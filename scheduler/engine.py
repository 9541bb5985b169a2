"""
The Weekly Schedule Generation Engine.

This module implements the core "Solver" loop. It is a feasible-assignment
engine, not a global optimizer:
1. Clients are processed in creation order (ties by id) so runs are reproducible.
2. Each client's weekly quota is filled one session at a time through the
   Constraint Matcher, preferring days the client is not yet booked on.
3. A client left under quota is reported as a coverage warning; generation
   carries on for everyone else.
"""

import logging
from datetime import date as date_type, timedelta
from typing import Iterable, List, Optional
from dataclasses import dataclass, field

from models import (
    AvailabilityException,
    Client,
    CoverageWarning,
    Hold,
    OrganizationContext,
    Provider,
    Room,
    Rule,
    Session,
)
from .availability import AvailabilityResolver
from .constraints import ConstraintChecker, RuleSet
from .errors import ConstraintViolation
from .matcher import ConstraintMatcher
from .scoring import SlotScorer
from .state import SchedulerState

logger = logging.getLogger(__name__)


def week_days(week_start: date_type) -> List[date_type]:
    return [week_start + timedelta(days=i) for i in range(7)]


def monday_of(day: date_type) -> date_type:
    return day - timedelta(days=day.weekday())


class SchedulingRun:
    """
    Wires resolver, checker, scorer and matcher for one organization and week.
    Shared by the generator and the reconciler.
    """

    def __init__(
        self,
        context: OrganizationContext,
        week_start: date_type,
        providers: List[Provider],
        clients: List[Client],
        rooms: List[Room],
        rules: List[Rule],
        exceptions: Iterable[AvailabilityException] = (),
        blocking_sessions: Iterable[Session] = (),
        blocking_holds: Iterable[Hold] = ()
    ):
        self.context = context
        self.week_start = week_start
        self.days = week_days(week_start)
        self.clients = {c.id: c for c in clients}

        self.rules = RuleSet(rules)
        self.resolver = AvailabilityResolver(context, exceptions)
        self.checker = ConstraintChecker(self.resolver, self.rules, providers, rooms)
        self.scorer = SlotScorer(self.rules.soft)
        self.matcher = ConstraintMatcher(context, self.checker, self.scorer, providers, rooms)

        # Seed the run with everything it must route around
        self.state = SchedulerState()
        for session in blocking_sessions:
            self.state.add_blocker(session)
        for hold in blocking_holds:
            self.state.add_hold(hold)

    def duration_for(self, client: Client) -> int:
        return client.session_minutes or self.context.default_session_minutes


@dataclass
class GenerationOutcome:
    sessions: List[Session] = field(default_factory=list)
    warnings: List[CoverageWarning] = field(default_factory=list)
    state: Optional[SchedulerState] = None


class ScheduleGenerator(SchedulingRun):
    """
    Main scheduling engine.
    Ingests Demand (Clients) and Supply (Providers, Rooms), outputs the week's Sessions.
    """

    def run(self) -> GenerationOutcome:
        logger.info(f"Generating week of {self.week_start} for {self.context.organization_id}...")

        queue = sorted(
            (c for c in self.clients.values() if c.is_active and c.sessions_per_week > 0),
            key=lambda c: (c.created_at, c.id)
        )

        warnings = []
        for client in queue:
            placed = self._fill_quota(client)
            if placed < client.sessions_per_week:
                warning = CoverageWarning(
                    client_id=client.id,
                    client_name=client.name,
                    required=client.sessions_per_week,
                    scheduled=placed,
                )
                logger.warning(warning.message)
                warnings.append(warning)

        logger.info(f"Generated {len(self.state.sessions)} sessions with {len(warnings)} coverage warnings")
        logger.debug(f"Run statistics: {self.state.get_statistics()}")
        short = {w.client_id for w in warnings}
        for failure in (f for f in self.state.get_failure_report() if f["client_id"] in short):
            logger.debug(f"Unplaced demand for {failure['client_name']}: {failure['primary_failure_cause']} ({failure['latest_reason']})")
        return GenerationOutcome(sessions=list(self.state.sessions), warnings=warnings, state=self.state)

    def _fill_quota(self, client: Client) -> int:
        duration = self.duration_for(client)
        while self.state.get_count(client.id) < client.sessions_per_week:
            fresh_days = [d for d in self.days if not self.state.client_has_day(client.id, d)]
            candidate = self.matcher.best(client, fresh_days, duration, self.state)
            if candidate is None and len(fresh_days) < len(self.days):
                # Doubling up on a day beats leaving the client under quota
                candidate = self.matcher.best(client, self.days, duration, self.state)
            if candidate is None:
                self.state.record_failure(client, ConstraintViolation(
                    constraint_type="Exhaustion",
                    reason="No valid provider, room and time left this week",
                    client_id=client.id,
                ))
                break

            session = candidate.to_session(client.id)
            self.state.add_session(session)
            logger.debug(f"Placed {client.id} with {candidate.provider_id} on {candidate.date} {candidate.start_time:%H:%M}")
        return self.state.get_count(client.id)
