"""
Scheduler State Management.

This module acts as the 'Memory' of a single generation or reconciliation run.
It tracks:
1. Sessions accepted in this run, indexed by provider, room and client.
2. Fixed blockers the run must route around (live holds, sessions booked elsewhere).
3. Detailed failure reporting (for the coverage report).

Nothing here is visible to other operations until the caller commits.
"""

from datetime import date as date_type, time as time_type
from typing import List, Dict, Any, Optional
from collections import defaultdict
from dataclasses import dataclass, field

from models import Client, Hold, Session, ranges_overlap
from .errors import ConstraintViolation


@dataclass(frozen=True)
class Reservation:
    """A time range consumed on one resource."""
    date: date_type
    start_time: time_type
    end_time: time_type
    ref_id: Optional[str] = None

    def overlaps(self, day: date_type, start: time_type, end: time_type) -> bool:
        return self.date == day and ranges_overlap(self.start_time, self.end_time, start, end)


@dataclass
class SchedulingAttempt:
    """Record of failed placement attempts for a client."""
    client: Client
    attempts: int = 0
    violations: List[ConstraintViolation] = field(default_factory=list)


class SchedulerState:
    """
    Maintains the mutable state of the scheduler during execution.
    """

    def __init__(self):
        # Sessions produced by this run, in acceptance order
        self.sessions: List[Session] = []

        # Resource Indices (for O(1) constraint checking)
        self.provider_busy: Dict[str, List[Reservation]] = defaultdict(list)
        self.room_busy: Dict[str, List[Reservation]] = defaultdict(list)
        self.client_busy: Dict[str, List[Reservation]] = defaultdict(list)

        # Balancing
        self.provider_load: Dict[str, int] = defaultdict(int)
        self.client_counts: Dict[str, int] = defaultdict(int)

        self.failed_clients: Dict[str, SchedulingAttempt] = {}

    def _reserve(self, session: Session) -> None:
        slot = Reservation(session.date, session.start_time, session.end_time, session.id)
        self.provider_busy[session.provider_id].append(slot)
        if session.room_id:
            self.room_busy[session.room_id].append(slot)
        self.client_busy[session.client_id].append(slot)
        self.provider_load[session.provider_id] += 1

    def add_session(self, session: Session) -> None:
        """Commit an accepted session to the run."""
        self.sessions.append(session)
        self._reserve(session)
        self.client_counts[session.client_id] += 1

    def add_blocker(self, session: Session) -> None:
        """An active session that lives outside this run but still occupies its resources."""
        if session.is_active:
            self._reserve(session)

    def add_hold(self, hold: Hold) -> None:
        slot = Reservation(hold.date, hold.start_time, hold.end_time, hold.id)
        if hold.provider_id:
            self.provider_busy[hold.provider_id].append(slot)
        if hold.room_id:
            self.room_busy[hold.room_id].append(slot)

    def record_failure(self, client: Client, violation: ConstraintViolation) -> None:
        if client.id not in self.failed_clients:
            self.failed_clients[client.id] = SchedulingAttempt(client=client, attempts=1, violations=[violation])
        else:
            attempt = self.failed_clients[client.id]
            attempt.attempts += 1
            attempt.violations.append(violation)

    # --- Query Methods (Used by constraints.py and scoring.py) ---

    def provider_conflict(self, provider_id: str, day: date_type, start: time_type, end: time_type) -> Optional[Reservation]:
        return next((r for r in self.provider_busy.get(provider_id, []) if r.overlaps(day, start, end)), None)

    def room_conflict(self, room_id: str, day: date_type, start: time_type, end: time_type) -> Optional[Reservation]:
        return next((r for r in self.room_busy.get(room_id, []) if r.overlaps(day, start, end)), None)

    def client_conflict(self, client_id: str, day: date_type, start: time_type, end: time_type) -> Optional[Reservation]:
        return next((r for r in self.client_busy.get(client_id, []) if r.overlaps(day, start, end)), None)

    def provider_day(self, provider_id: str, day: date_type) -> List[Reservation]:
        return [r for r in self.provider_busy.get(provider_id, []) if r.date == day]

    def client_has_day(self, client_id: str, day: date_type) -> bool:
        return any(r.date == day for r in self.client_busy.get(client_id, []))

    def get_count(self, client_id: str) -> int:
        """How many sessions has this run placed for the client?"""
        return self.client_counts[client_id]

    # --- Reporting Methods ---

    def get_statistics(self) -> Dict[str, Any]:
        if not self.sessions:
            return {"total_sessions": 0, "clients_served": 0, "failed_clients": len(self.failed_clients)}

        per_day = defaultdict(int)
        for s in self.sessions:
            per_day[s.date] += 1
        busiest_day = max(per_day.items(), key=lambda x: x[1])

        return {
            "total_sessions": len(self.sessions),
            "clients_served": len(self.client_counts),
            "busiest_day": busiest_day,
            "provider_load": dict(sorted(self.provider_load.items())),
            "failed_clients": len(self.failed_clients),
        }

    def get_failure_report(self) -> List[Dict]:
        """Human-readable list of clients that could not be fully placed, and why."""
        report = []
        for client_id, attempt in self.failed_clients.items():
            summary = defaultdict(int)
            for v in attempt.violations:
                summary[v.constraint_type] += 1
            report.append({
                "client_id": client_id,
                "client_name": attempt.client.name,
                "total_attempts": attempt.attempts,
                "primary_failure_cause": max(summary, key=summary.get),
                "violation_breakdown": dict(summary),
                "latest_reason": attempt.violations[-1].reason,
            })
        report.sort(key=lambda x: x["client_id"])
        return report
