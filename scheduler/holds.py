"""
Appointment Hold Manager.

A hold reserves a provider and/or room for a few minutes while a self-service
booking completes. Every mutation runs in one transaction that:
1. locks the organization week row, then the contended resource-day rows,
2. re-checks overlap against live holds and active sessions,
3. writes.
Of two racing requests for the same slot exactly one commits; the other
observes the winner and gets a HoldConflict. Generation and draft copies take
the same week row, so they never interleave with hold traffic either.
"""

import logging
from datetime import date as date_type, datetime, time as time_type, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError

from models import AvailableSlot, BookingSource, Hold, Session, SlotConflict, minutes_of
from store.database import Store
from store.directory import InMemoryDirectory
from store.repository import (
    AuditRepository,
    HoldRepository,
    LockRepository,
    ScheduleRepository,
    WEEK_LOCK,
    to_hold,
    to_session,
)
from .availability import AvailabilityResolver, SlotFinder
from .constraints import ConstraintChecker, RuleSet
from .engine import monday_of
from .errors import ConstraintViolation, HoldClosed, HoldConflict, HoldExpired, InvalidAssignment, NotFound
from .state import SchedulerState

logger = logging.getLogger(__name__)

# Suggestions attached to a HoldConflict, searched over the following week
MAX_ALTERNATIVES = 5
ALTERNATIVE_DAYS = 7


def utcnow() -> datetime:
    """Naive UTC, the form every timestamp is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resource_keys(provider_id: Optional[str], room_id: Optional[str]) -> List[str]:
    keys = []
    if provider_id:
        keys.append(f"provider:{provider_id}")
    if room_id:
        keys.append(f"room:{room_id}")
    return keys


def build_checker(directory: InMemoryDirectory, organization_id: str) -> ConstraintChecker:
    """Hard-constraint checker over the organization's current records."""
    context = directory.context(organization_id)
    return ConstraintChecker(
        AvailabilityResolver(context, directory.exceptions_for(organization_id)),
        RuleSet(directory.rules_for(organization_id)),
        directory.providers_for(organization_id),
        directory.rooms_for(organization_id),
    )


class HoldManager:
    """
    Self-service side of the store: acquire, extend, convert and release
    holds, and search for free slots to offer when a request collides.

    Holds are validated against the requesting organization only; a provider
    or room of another organization is reported as NotFound.
    """

    def __init__(self, store: Store, directory: InMemoryDirectory, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.directory = directory
        self.clock = clock

    def acquire(
        self,
        organization_id: str,
        date: date_type,
        start_time: time_type,
        end_time: time_type,
        provider_id: Optional[str] = None,
        room_id: Optional[str] = None,
        client_id: Optional[str] = None
    ) -> Hold:
        if not provider_id and not room_id:
            raise ValueError("A hold needs a provider, a room, or both")
        if start_time >= end_time:
            raise ValueError("Hold end time must be after start time")

        context = self.directory.context(organization_id)
        self._ensure_resources(organization_id, provider_id, room_id)

        now = self.clock()
        with self.store.transaction() as db:
            self._lock(db, organization_id, provider_id, room_id, date, start_time, end_time)

            conflicts = self._conflicts(db, organization_id, provider_id, room_id, date, start_time, end_time, now)
            if conflicts:
                logger.info(f"Hold refused for {conflicts[0].dimension} {conflicts[0].resource_id} on {date} {start_time:%H:%M}")
                alternatives = self._alternatives(db, organization_id, provider_id, room_id, client_id, date,
                                                  minutes_of(end_time) - minutes_of(start_time), now)
                raise HoldConflict(conflicts, alternatives)

            record = HoldRepository(db).create(
                organization_id=organization_id,
                provider_id=provider_id,
                room_id=room_id,
                client_id=client_id,
                date=date,
                start_time=start_time,
                end_time=end_time,
                expires_at=now + timedelta(minutes=context.hold_minutes),
                created_at=now,
            )
            hold = to_hold(record)

        logger.info(f"Hold {hold.id} acquired until {hold.expires_at:%H:%M:%S}")
        return hold

    def extend(self, hold_id: str, minutes: Optional[int] = None) -> Hold:
        """Push a live hold's expiry back by `minutes` (default: the organization's hold length)."""
        if minutes is not None and minutes <= 0:
            raise ValueError("Extension must be a positive number of minutes")

        with self.store.transaction() as db:
            record = self._locked_hold(db, hold_id)
            self._ensure_open(record, self.clock())

            minutes = minutes or self.directory.context(record.organization_id).hold_minutes
            record.expires_at = record.expires_at + timedelta(minutes=minutes)
            db.flush()
            hold = to_hold(record)

        logger.info(f"Hold {hold_id} extended until {hold.expires_at:%H:%M:%S}")
        return hold

    def convert(
        self,
        hold_id: str,
        client_id: Optional[str] = None,
        actor: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Session:
        """Turn a live hold into a self-service session, atomically."""
        with self.store.transaction() as db:
            record = self._locked_hold(db, hold_id)
            now = self.clock()
            self._ensure_open(record, now)

            client_id = client_id or record.client_id
            if not record.provider_id or not client_id:
                missing = "provider" if not record.provider_id else "client"
                raise InvalidAssignment([ConstraintViolation(
                    "Hold", f"Hold does not have a {missing} assigned", client_id or "",
                    record.provider_id, record.room_id, record.date, record.start_time, record.end_time,
                )])

            organization_id = record.organization_id
            client = self.directory.client(organization_id, client_id)

            conflicts = self._session_conflicts(db, organization_id, record.provider_id, record.room_id, record.date, record.start_time, record.end_time)
            if conflicts:
                raise HoldConflict(conflicts)

            violations = build_checker(self.directory, organization_id).check_assignment(
                client, record.provider_id, record.room_id, record.date, record.start_time, record.end_time
            )
            schedules = ScheduleRepository(db)
            for other in schedules.client_sessions_on(organization_id, client_id, record.date):
                if other.start_time < record.end_time and record.start_time < other.end_time:
                    violations.append(ConstraintViolation(
                        "Overlap", f"Client already booked {other.start_time:%H:%M}-{other.end_time:%H:%M}",
                        client_id, record.provider_id, record.room_id, record.date, record.start_time, record.end_time,
                    ))
            if violations:
                raise InvalidAssignment(violations)

            schedule = schedules.find_or_create_for_week(organization_id, monday_of(record.date), now, created_by=actor)
            [session_record] = schedules.add_sessions(schedule, [Session(
                provider_id=record.provider_id,
                client_id=client_id,
                room_id=record.room_id,
                date=record.date,
                start_time=record.start_time,
                end_time=record.end_time,
                booked_via=BookingSource.SELF_SERVICE,
                notes=notes,
            )])

            record.converted_session_id = session_record.id
            record.client_id = client_id
            db.flush()

            AuditRepository(db).record(organization_id, actor, "convert_hold", "session", session_record.id, {
                "hold_id": hold_id,
                "schedule_id": schedule.id,
                "provider_id": record.provider_id,
                "room_id": record.room_id,
                "client_id": client_id,
                "date": record.date.isoformat(),
                "start_time": record.start_time.isoformat(),
                "end_time": record.end_time.isoformat(),
            }, now)
            session = to_session(session_record)

        logger.info(f"Hold {hold_id} converted into session {session.id}")
        return session

    def release(self, hold_id: str) -> Hold:
        with self.store.transaction() as db:
            record = self._locked_hold(db, hold_id)
            if record.converted_session_id:
                raise HoldClosed(hold_id, "already converted")
            if record.released_at is None:
                record.released_at = self.clock()
                db.flush()
            hold = to_hold(record)

        logger.info(f"Hold {hold_id} released")
        return hold

    def sweep_expired(self) -> int:
        with self.store.transaction() as db:
            removed = HoldRepository(db).delete_expired(self.clock())
        if removed:
            logger.info(f"Swept {removed} expired holds")
        return removed

    def available_slots(
        self,
        organization_id: str,
        date_from: date_type,
        date_to: date_type,
        duration_minutes: Optional[int] = None,
        provider_id: Optional[str] = None,
        room_id: Optional[str] = None,
        client_id: Optional[str] = None
    ) -> List[AvailableSlot]:
        """Free starts in [date_from, date_to], ordered by date, time, then provider name."""
        if date_from > date_to:
            raise ValueError("date_from must not be after date_to")
        context = self.directory.context(organization_id)
        self._ensure_resources(organization_id, provider_id, room_id)
        duration = duration_minutes or context.default_session_minutes

        with self.store.transaction() as db:
            return self._find_slots(db, organization_id, date_from, date_to, duration,
                                    provider_id, room_id, client_id, self.clock())

    # --- Helpers ---

    def _ensure_resources(self, organization_id: str, provider_id: Optional[str], room_id: Optional[str]) -> None:
        if provider_id and provider_id not in {p.id for p in self.directory.providers_for(organization_id)}:
            raise NotFound("Provider", provider_id)
        if room_id and room_id not in {r.id for r in self.directory.rooms_for(organization_id)}:
            raise NotFound("Room", room_id)

    def _locked_hold(self, db, hold_id: str):
        """Load the hold, lock its slot, then re-read it: a racing writer may have closed it meanwhile."""
        record = HoldRepository(db).get(hold_id)
        if record is None:
            raise NotFound("Hold", hold_id)
        self._lock(db, record.organization_id, record.provider_id, record.room_id, record.date, record.start_time, record.end_time)
        db.refresh(record)
        return record

    def _ensure_open(self, record, now: datetime) -> None:
        if record.converted_session_id:
            raise HoldClosed(record.id, "already converted")
        if record.released_at:
            raise HoldClosed(record.id, "released")
        if record.expires_at <= now:
            raise HoldExpired(record.id, record.expires_at)

    def _lock(self, db, organization_id, provider_id, room_id, date, start_time, end_time) -> None:
        locks = LockRepository(db, self.store.supports_row_locks)
        keys = resource_keys(provider_id, room_id)
        # The week row guards every requested resource; a resource-day row only its own
        steps = [(WEEK_LOCK, monday_of(date), keys)] + [(key, date, [key]) for key in sorted(keys)]
        for lock_key, day, contended in steps:
            try:
                locks.acquire(organization_id, lock_key, day)
            except IntegrityError as exc:
                # A concurrent transaction created the same lock row first
                raise HoldConflict([
                    SlotConflict(
                        dimension=key.split(":", 1)[0], resource_id=key.split(":", 1)[1], date=date,
                        start_time=start_time, end_time=end_time, note="Concurrent booking in progress",
                    )
                    for key in contended
                ]) from exc

    def _conflicts(self, db, organization_id, provider_id, room_id, date, start_time, end_time, now) -> List[SlotConflict]:
        holds = HoldRepository(db)
        conflicts = []
        for dimension, resource_id in (("provider", provider_id), ("room", room_id)):
            if not resource_id:
                continue
            live = holds.live_overlapping(organization_id, dimension, resource_id, date, start_time, end_time, now)
            sessions = ScheduleRepository(db).overlapping_sessions(organization_id, dimension, resource_id, date, start_time, end_time)
            if live or sessions:
                conflicts.append(SlotConflict(
                    dimension=dimension, resource_id=resource_id, date=date,
                    start_time=start_time, end_time=end_time,
                    hold_ids=sorted(h.id for h in live),
                    session_ids=sorted(s.id for s in sessions),
                ))
        return conflicts

    def _session_conflicts(self, db, organization_id, provider_id, room_id, date, start_time, end_time) -> List[SlotConflict]:
        schedules = ScheduleRepository(db)
        conflicts = []
        for dimension, resource_id in (("provider", provider_id), ("room", room_id)):
            if not resource_id:
                continue
            sessions = schedules.overlapping_sessions(organization_id, dimension, resource_id, date, start_time, end_time)
            if sessions:
                conflicts.append(SlotConflict(
                    dimension=dimension, resource_id=resource_id, date=date,
                    start_time=start_time, end_time=end_time,
                    session_ids=sorted(s.id for s in sessions),
                ))
        return conflicts

    def _alternatives(self, db, organization_id, provider_id, room_id, client_id, date, duration, now) -> List[AvailableSlot]:
        # Room-only holds have no provider to search over
        if not provider_id:
            return []
        end = date + timedelta(days=ALTERNATIVE_DAYS - 1)
        return self._find_slots(db, organization_id, date, end, duration, provider_id, room_id, client_id, now,
                                limit=MAX_ALTERNATIVES)

    def _find_slots(self, db, organization_id, start, end, duration, provider_id, room_id, client_id, now,
                    limit: Optional[int] = None) -> List[AvailableSlot]:
        state = SchedulerState()
        for record in ScheduleRepository(db).active_sessions_between(organization_id, start, end):
            state.add_blocker(to_session(record))
        for record in HoldRepository(db).live_in_range(organization_id, start, end, now):
            state.add_hold(to_hold(record))

        providers = self.directory.providers_for(organization_id)
        if provider_id:
            providers = [p for p in providers if p.id == provider_id]

        context = self.directory.context(organization_id)
        finder = SlotFinder(AvailabilityResolver(context, self.directory.exceptions_for(organization_id)), state)
        return finder.find(providers, start, end, duration, room_id, client_id, limit)
