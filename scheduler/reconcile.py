"""
Schedule Copy Reconciliation.

Re-validates the cloned sessions of a published schedule against current
availability and rules, then gives each broken clone exactly one bounded
repair pass:
1. Same provider, any other time that week.
2. Full re-search across every provider.
A clone that still cannot be placed is dropped and reported.
"""

import logging
from typing import List, Optional, Tuple
from dataclasses import dataclass, field

from models import RemovedSession, RescheduledSession, Session, minutes_of
from .engine import SchedulingRun
from .errors import ConstraintViolation
from .matcher import Candidate

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    sessions: List[Session] = field(default_factory=list)
    rescheduled: List[RescheduledSession] = field(default_factory=list)
    removed: List[RemovedSession] = field(default_factory=list)


def _minutes(session: Session) -> int:
    return minutes_of(session.end_time) - minutes_of(session.start_time)


class ScheduleReconciler(SchedulingRun):

    def reconcile(self, clones: List[Session]) -> ReconcileOutcome:
        outcome = ReconcileOutcome()
        broken: List[Tuple[Session, List[ConstraintViolation]]] = []

        ordered = sorted(clones, key=lambda s: (s.date, s.start_time, s.provider_id, s.client_id))

        # Pass 1: accept every clone that is still valid before repairing anything,
        # so repairs never steal a slot from a session that did not need to move
        for clone in ordered:
            if not clone.is_active:
                # Cancelled and no-show history is carried over untouched
                outcome.sessions.append(clone)
                continue

            client = self.clients.get(clone.client_id)
            if client is None:
                outcome.removed.append(RemovedSession(session=clone, reason=f"Client {clone.client_id} no longer exists"))
                continue

            violations = self.checker.check_assignment(
                client, clone.provider_id, clone.room_id, clone.date, clone.start_time, clone.end_time, self.state
            )
            if violations:
                broken.append((clone, violations))
            else:
                self.state.add_session(clone)
                outcome.sessions.append(clone)

        # Pass 2: one repair attempt per broken clone
        for clone, violations in broken:
            reason = "; ".join(v.reason for v in violations)
            client = self.clients[clone.client_id]
            candidate = self._repair(clone)

            if candidate is None:
                logger.warning(f"Removed session {clone.client_id}/{clone.provider_id} on {clone.date}: {reason}")
                outcome.removed.append(RemovedSession(session=clone, reason=reason))
                continue

            moved = clone.model_copy(update={
                "id": None,
                "provider_id": candidate.provider_id,
                "room_id": candidate.room_id,
                "date": candidate.date,
                "start_time": candidate.start_time,
                "end_time": candidate.end_time,
            })
            self.state.add_session(moved)
            outcome.sessions.append(moved)
            outcome.rescheduled.append(RescheduledSession(original=clone, session=moved, reason=reason))
            logger.info(f"Rescheduled {client.name} to {candidate.provider_id} on {candidate.date} {candidate.start_time:%H:%M}")

        outcome.sessions.sort(key=lambda s: (s.date, s.start_time, s.provider_id, s.client_id))
        return outcome

    def _repair(self, clone: Session) -> Optional[Candidate]:
        client = self.clients[clone.client_id]
        if not client.is_active:
            return None
        duration = _minutes(clone)

        candidate = self.matcher.best(client, self.days, duration, self.state, provider_ids=[clone.provider_id])
        if candidate is None:
            candidate = self.matcher.best(client, self.days, duration, self.state)
        return candidate
