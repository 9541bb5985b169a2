"""
Scheduling Service.

The in-process entry point used by the surrounding administrative and booking
services. Owns transactions and the audit trail; delegates the actual
decisions to the generator, reconciler, analyzer, reviewer and hold manager.
"""

import logging
from datetime import date as date_type, datetime, time as time_type
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError

from models import (
    AvailableSlot,
    BookingSource,
    DraftCopyResult,
    GenerationResult,
    Hold,
    RescheduledSession,
    RuleAnalysisReport,
    RuleReviewResult,
    Schedule,
    ScheduleStatus,
    Session,
)
from store.database import Store
from store.directory import InMemoryDirectory
from store.repository import (
    AuditRepository,
    HoldRepository,
    LockRepository,
    ScheduleRepository,
    to_hold,
    to_schedule,
    to_session,
)
from .analyzer import RuleAnalyzer
from .engine import ScheduleGenerator, monday_of, week_days
from .errors import InvalidAssignment, NotFound, RuleReviewRequired, ScheduleStateError
from .holds import HoldManager, build_checker, resource_keys, utcnow
from .reconcile import ScheduleReconciler
from .review import RuleReviewer
from .state import SchedulerState

logger = logging.getLogger(__name__)


class SchedulingService:
    """
    One transaction per call. Every operation that writes sessions or holds
    locks the organization week row first, so generation, draft copies,
    manual edits and self-service bookings of a week never interleave.
    """

    def __init__(self, store: Store, directory: InMemoryDirectory, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.directory = directory
        self.clock = clock
        self.holds = HoldManager(store, directory, clock)

    # --- Generation ---

    def generate(self, organization_id: str, week_start: date_type, actor: Optional[str] = None) -> GenerationResult:
        """
        Fill every active client's weekly quota and persist one draft (version 1).
        Blocked entirely while any active rule needs review.
        """
        context = self.directory.context(organization_id)
        week_start = monday_of(week_start)
        rules = self.directory.rules_for(organization_id)

        self._ensure_reviewed(organization_id, week_start, rules, actor)

        with self.store.transaction() as db:
            self._lock_week(db, organization_id, week_start)
            schedules = ScheduleRepository(db)

            blocking_sessions = [to_session(r) for r in schedules.self_service_sessions(organization_id, week_start)]
            blocking_holds = [to_hold(r) for r in HoldRepository(db).live_in_range(organization_id, week_start, week_days(week_start)[-1], self.clock())]

            outcome = ScheduleGenerator(
                context,
                week_start,
                self.directory.providers_for(organization_id),
                self.directory.clients_for(organization_id),
                self.directory.rooms_for(organization_id),
                rules,
                self.directory.exceptions_for(organization_id),
                blocking_sessions,
                blocking_holds,
            ).run()

            record = schedules.create(organization_id, week_start, self.clock(), created_by=actor)
            sessions = schedules.add_sessions(record, outcome.sessions)
            AuditRepository(db).record(organization_id, actor, "generate", "schedule", record.id, {
                "week_start": week_start.isoformat(),
                "sessions": len(sessions),
                "warnings": [w.model_dump(mode="json") for w in outcome.warnings],
            }, self.clock())

            result = GenerationResult(
                schedule=to_schedule(record),
                sessions=[to_session(s) for s in sessions],
                warnings=outcome.warnings,
            )

        logger.info(f"Schedule {result.schedule.id} generated with {len(result.sessions)} sessions")
        return result

    def _ensure_reviewed(self, organization_id: str, week_start: date_type, rules, actor: Optional[str]) -> None:
        flagged = [r for r in rules if r.is_active and r.needs_review]
        if not flagged:
            return

        results = [RuleReviewResult(rule_id=r.id, status=r.review_status, issues=r.review_issues) for r in flagged]
        # Recorded on its own: the blocked run itself persists nothing
        with self.store.transaction() as db:
            AuditRepository(db).record(organization_id, actor, "rule_review_block", "schedule", None, {
                "week_start": week_start.isoformat(),
                "rule_ids": [r.id for r in flagged],
            }, self.clock())
        logger.warning(f"Generation blocked: {len(flagged)} rule(s) need review")
        raise RuleReviewRequired(results)

    def _lock_week(self, db, organization_id: str, week_start: date_type) -> None:
        try:
            LockRepository(db, self.store.supports_row_locks).acquire_week(organization_id, week_start)
        except IntegrityError as exc:
            raise ScheduleStateError(f"Another operation on the week of {week_start} is in progress") from exc

    # --- Lifecycle ---

    def publish(self, schedule_id: str, actor: Optional[str] = None) -> Schedule:
        with self.store.transaction() as db:
            record = self._schedule(db, schedule_id)
            if record.status == ScheduleStatus.PUBLISHED.value:
                raise ScheduleStateError(f"Schedule {schedule_id} is already published")

            record.status = ScheduleStatus.PUBLISHED.value
            record.published_at = self.clock()
            db.flush()
            AuditRepository(db).record(record.organization_id, actor, "publish", "schedule", record.id, {
                "status": {"from": ScheduleStatus.DRAFT.value, "to": ScheduleStatus.PUBLISHED.value},
                "version": record.version,
            }, self.clock())
            schedule = to_schedule(record)

        logger.info(f"Published schedule {schedule_id} (v{schedule.version})")
        return schedule

    def create_draft_copy(self, schedule_id: str, actor: Optional[str] = None) -> DraftCopyResult:
        """Clone a published schedule into a new draft, repairing sessions that no longer fit."""
        with self.store.transaction() as db:
            schedules = ScheduleRepository(db)
            source = self._schedule(db, schedule_id)
            if source.status != ScheduleStatus.PUBLISHED.value:
                raise ScheduleStateError(f"Only published schedules can be copied; {schedule_id} is {source.status}")

            organization_id, week_start = source.organization_id, source.week_start
            self._lock_week(db, organization_id, week_start)
            context = self.directory.context(organization_id)

            clones = [to_session(r) for r in schedules.sessions_for(source.id)]
            clone_slots = {(s.provider_id, s.client_id, s.date, s.start_time, s.end_time) for s in clones}
            # Self-service bookings elsewhere in the week, minus the copies already cloned
            blocking_sessions = [
                to_session(r) for r in schedules.self_service_sessions(organization_id, week_start)
                if r.schedule_id != source.id
                and (r.provider_id, r.client_id, r.date, r.start_time, r.end_time) not in clone_slots
            ]
            blocking_holds = [to_hold(r) for r in HoldRepository(db).live_in_range(organization_id, week_start, week_days(week_start)[-1], self.clock())]

            outcome = ScheduleReconciler(
                context,
                week_start,
                self.directory.providers_for(organization_id),
                self.directory.clients_for(organization_id),
                self.directory.rooms_for(organization_id),
                self.directory.rules_for(organization_id),
                self.directory.exceptions_for(organization_id),
                blocking_sessions,
                blocking_holds,
            ).reconcile(clones)

            latest = schedules.latest_for_week(organization_id, week_start)
            version = max(source.version, latest.version) + 1
            draft = schedules.create(organization_id, week_start, self.clock(), version=version,
                                     source_schedule_id=source.id, created_by=actor)
            records = schedules.add_sessions(draft, outcome.sessions)
            persisted = {id(s): to_session(r) for s, r in zip(outcome.sessions, records)}

            AuditRepository(db).record(organization_id, actor, "create_draft_copy", "schedule", draft.id, {
                "source_schedule_id": source.id,
                "version": version,
                "sessions": len(records),
                "rescheduled": len(outcome.rescheduled),
                "removed": [r.session.id for r in outcome.removed],
            }, self.clock())

            result = DraftCopyResult(
                draft=to_schedule(draft),
                sessions=[persisted[id(s)] for s in outcome.sessions],
                rescheduled=[
                    RescheduledSession(original=r.original, session=persisted[id(r.session)], reason=r.reason)
                    for r in outcome.rescheduled
                ],
                removed=outcome.removed,
            )

        if result.incomplete:
            logger.warning(f"Draft {result.draft.id} dropped {len(result.removed)} session(s) that could not be repaired")
        logger.info(f"Draft v{result.draft.version} created from {schedule_id}")
        return result

    def add_session(
        self,
        schedule_id: str,
        client_id: str,
        provider_id: str,
        date: date_type,
        start_time: time_type,
        end_time: time_type,
        room_id: Optional[str] = None,
        actor: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Session:
        """Manually place a session in a draft, rejecting any hard-rule violation."""
        with self.store.transaction() as db:
            schedules = ScheduleRepository(db)
            record = self._schedule(db, schedule_id)
            if record.status != ScheduleStatus.DRAFT.value:
                raise ScheduleStateError(f"Schedule {schedule_id} is published; create a draft copy to edit it")
            if not record.week_start <= date <= week_days(record.week_start)[-1]:
                raise ScheduleStateError(f"{date} is outside the week of {record.week_start}")

            organization_id = record.organization_id
            client = self.directory.client(organization_id, client_id)
            self._lock_week(db, organization_id, record.week_start)
            LockRepository(db, self.store.supports_row_locks).acquire_many(organization_id, resource_keys(provider_id, room_id), date)

            state = SchedulerState()
            for existing in schedules.sessions_for(record.id):
                state.add_blocker(to_session(existing))
            for hold in HoldRepository(db).live_in_range(organization_id, date, date, self.clock()):
                state.add_hold(to_hold(hold))

            violations = build_checker(self.directory, organization_id).check_assignment(
                client, provider_id, room_id, date, start_time, end_time, state
            )
            if violations:
                raise InvalidAssignment(violations)

            [created] = schedules.add_sessions(record, [Session(
                provider_id=provider_id, client_id=client_id, room_id=room_id,
                date=date, start_time=start_time, end_time=end_time,
                booked_via=BookingSource.MANUAL, notes=notes,
            )])
            AuditRepository(db).record(organization_id, actor, "add_session", "session", created.id, {
                "schedule_id": record.id, "provider_id": provider_id, "client_id": client_id,
                "date": date.isoformat(), "start_time": start_time.isoformat(), "end_time": end_time.isoformat(),
            }, self.clock())
            session = to_session(created)

        return session

    # --- Rules ---

    def analyze_rules(self, organization_id: str) -> RuleAnalysisReport:
        return RuleAnalyzer().analyze(
            self.directory.rules_for(organization_id),
            self.directory.providers_for(organization_id),
            self.directory.clients_for(organization_id),
            self.directory.rooms_for(organization_id),
        )

    def review_rules(self, organization_id: str) -> List[RuleReviewResult]:
        """Re-evaluate every rule and write the review status back to the directory."""
        reviewer = RuleReviewer(
            self.directory.providers_for(organization_id),
            self.directory.clients_for(organization_id),
        )
        now = self.clock()
        results = reviewer.review(self.directory.rules_for(organization_id))
        for result in results:
            self.directory.update_rule_review(result.rule_id, result.status, result.issues, now)
        return results

    # --- Holds ---

    def acquire_hold(self, organization_id: str, date: date_type, start_time: time_type, end_time: time_type,
                     provider_id: Optional[str] = None, room_id: Optional[str] = None,
                     client_id: Optional[str] = None) -> Hold:
        return self.holds.acquire(organization_id, date, start_time, end_time, provider_id, room_id, client_id)

    def extend_hold(self, hold_id: str, minutes: Optional[int] = None) -> Hold:
        return self.holds.extend(hold_id, minutes)

    def convert_hold(self, hold_id: str, client_id: Optional[str] = None, actor: Optional[str] = None,
                     notes: Optional[str] = None) -> Session:
        return self.holds.convert(hold_id, client_id, actor, notes)

    def release_hold(self, hold_id: str) -> Hold:
        return self.holds.release(hold_id)

    def sweep_expired_holds(self) -> int:
        return self.holds.sweep_expired()

    def available_slots(self, organization_id: str, date_from: date_type, date_to: date_type,
                        duration_minutes: Optional[int] = None, provider_id: Optional[str] = None,
                        room_id: Optional[str] = None, client_id: Optional[str] = None) -> List[AvailableSlot]:
        return self.holds.available_slots(organization_id, date_from, date_to, duration_minutes,
                                          provider_id, room_id, client_id)

    # --- Reads ---

    def get_schedule(self, schedule_id: str) -> Schedule:
        with self.store.transaction() as db:
            return to_schedule(self._schedule(db, schedule_id))

    def get_sessions(self, schedule_id: str) -> List[Session]:
        with self.store.transaction() as db:
            self._schedule(db, schedule_id)
            return [to_session(r) for r in ScheduleRepository(db).sessions_for(schedule_id)]

    def get_hold(self, hold_id: str) -> Hold:
        with self.store.transaction() as db:
            record = HoldRepository(db).get(hold_id)
            if record is None:
                raise NotFound("Hold", hold_id)
            return to_hold(record)

    def audit_log(self, organization_id: str, action: Optional[str] = None):
        with self.store.transaction() as db:
            return [
                {"actor": e.actor, "action": e.action, "entity_type": e.entity_type,
                 "entity_id": e.entity_id, "changes": e.changes, "timestamp": e.created_at}
                for e in AuditRepository(db).entries(organization_id, action)
            ]

    def _schedule(self, db, schedule_id: str):
        record = ScheduleRepository(db).get(schedule_id)
        if record is None:
            raise NotFound("Schedule", schedule_id)
        return record
