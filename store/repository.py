"""
Repositories over the transactional store.

Each repository wraps the SQLAlchemy session of the caller's transaction and
never commits on its own: the service decides the unit of work.
"""

import logging
from datetime import date as date_type, datetime, time as time_type, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from models import INACTIVE_SESSION_STATUSES, BookingSource, Hold, Schedule, ScheduleStatus, Session
from .tables import AuditLogRecord, HoldRecord, ResourceDayLock, ScheduleRecord, SessionRecord

logger = logging.getLogger(__name__)

INACTIVE_STATUS_VALUES = sorted(s.value for s in INACTIVE_SESSION_STATUSES)

# Lock row shared by every writer of sessions or holds in an organization week
WEEK_LOCK = "schedule-week"


class LockRepository:
    """Row locks on organization weeks and resource-days; the unique key makes the first insert race-safe."""

    def __init__(self, db: DbSession, row_locks: bool):
        self.db = db
        self.row_locks = row_locks

    def acquire(self, organization_id: str, resource_key: str, day: date_type) -> None:
        """Lock (creating if needed) the row. Raises IntegrityError if a concurrent insert won."""
        stmt = select(ResourceDayLock).where(
            ResourceDayLock.organization_id == organization_id,
            ResourceDayLock.resource_key == resource_key,
            ResourceDayLock.date == day,
        )
        if self.row_locks:
            stmt = stmt.with_for_update()

        row = self.db.execute(stmt).scalar_one_or_none()
        if row is None:
            row = ResourceDayLock(organization_id=organization_id, resource_key=resource_key, date=day, counter=0)
            self.db.add(row)
        row.counter += 1
        self.db.flush()

    def acquire_week(self, organization_id: str, week_start: date_type) -> None:
        """Taken before any resource-day row, so lock order is week first everywhere."""
        self.acquire(organization_id, WEEK_LOCK, week_start)

    def acquire_many(self, organization_id: str, keys: Iterable[str], day: date_type) -> None:
        # Sorted so two transactions never take the same rows in opposite order
        for key in sorted(set(keys)):
            self.acquire(organization_id, key, day)


class ScheduleRepository:

    def __init__(self, db: DbSession):
        self.db = db

    # --- Schedules ---

    def create(self, organization_id: str, week_start: date_type, now: datetime, version: int = 1,
               source_schedule_id: Optional[str] = None, created_by: Optional[str] = None) -> ScheduleRecord:
        record = ScheduleRecord(
            organization_id=organization_id,
            week_start=week_start,
            status=ScheduleStatus.DRAFT.value,
            version=version,
            source_schedule_id=source_schedule_id,
            created_by=created_by,
            created_at=now,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get(self, schedule_id: str) -> Optional[ScheduleRecord]:
        return self.db.get(ScheduleRecord, schedule_id)

    def latest_for_week(self, organization_id: str, week_start: date_type) -> Optional[ScheduleRecord]:
        stmt = (
            select(ScheduleRecord)
            .where(ScheduleRecord.organization_id == organization_id, ScheduleRecord.week_start == week_start)
            .order_by(ScheduleRecord.version.desc(), ScheduleRecord.created_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def find_or_create_for_week(self, organization_id: str, week_start: date_type, now: datetime,
                                created_by: Optional[str] = None) -> ScheduleRecord:
        """Newest version of the week's schedule, or a fresh draft v1."""
        existing = self.latest_for_week(organization_id, week_start)
        if existing is not None:
            return existing
        return self.create(organization_id, week_start, now, created_by=created_by)

    # --- Sessions ---

    def add_sessions(self, schedule: ScheduleRecord, sessions: Iterable[Session]) -> List[SessionRecord]:
        records = [
            SessionRecord(
                schedule_id=schedule.id,
                organization_id=schedule.organization_id,
                provider_id=s.provider_id,
                client_id=s.client_id,
                room_id=s.room_id,
                date=s.date,
                start_time=s.start_time,
                end_time=s.end_time,
                status=s.status.value,
                booked_via=s.booked_via.value,
                notes=s.notes,
            )
            for s in sessions
        ]
        self.db.add_all(records)
        self.db.flush()
        return records

    def sessions_for(self, schedule_id: str) -> List[SessionRecord]:
        stmt = (
            select(SessionRecord)
            .where(SessionRecord.schedule_id == schedule_id)
            .order_by(SessionRecord.date, SessionRecord.start_time, SessionRecord.provider_id, SessionRecord.id)
        )
        return list(self.db.execute(stmt).scalars())

    def overlapping_sessions(self, organization_id: str, dimension: str, resource_id: str,
                             day: date_type, start: time_type, end: time_type) -> List[SessionRecord]:
        """Active sessions in any schedule of the organization that overlap [start, end)."""
        column = SessionRecord.provider_id if dimension == "provider" else SessionRecord.room_id
        stmt = select(SessionRecord).where(
            SessionRecord.organization_id == organization_id,
            column == resource_id,
            SessionRecord.date == day,
            SessionRecord.status.not_in(INACTIVE_STATUS_VALUES),
            SessionRecord.start_time < end,
            SessionRecord.end_time > start,
        )
        return list(self.db.execute(stmt).scalars())

    def active_sessions_between(self, organization_id: str, start: date_type, end: date_type) -> List[SessionRecord]:
        stmt = select(SessionRecord).where(
            SessionRecord.organization_id == organization_id,
            SessionRecord.date >= start,
            SessionRecord.date <= end,
            SessionRecord.status.not_in(INACTIVE_STATUS_VALUES),
        )
        return list(self.db.execute(stmt).scalars())

    def client_sessions_on(self, organization_id: str, client_id: str, day: date_type) -> List[SessionRecord]:
        stmt = select(SessionRecord).where(
            SessionRecord.organization_id == organization_id,
            SessionRecord.client_id == client_id,
            SessionRecord.date == day,
            SessionRecord.status.not_in(INACTIVE_STATUS_VALUES),
        )
        return list(self.db.execute(stmt).scalars())

    def self_service_sessions(self, organization_id: str, week_start: date_type) -> List[SessionRecord]:
        """Active self-service bookings in the week, whichever schedule holds them."""
        stmt = select(SessionRecord).where(
            SessionRecord.organization_id == organization_id,
            SessionRecord.booked_via == BookingSource.SELF_SERVICE.value,
            SessionRecord.date >= week_start,
            SessionRecord.date < week_start + timedelta(days=7),
            SessionRecord.status.not_in(INACTIVE_STATUS_VALUES),
        )
        return list(self.db.execute(stmt).scalars())


class HoldRepository:

    def __init__(self, db: DbSession):
        self.db = db

    def create(self, **fields) -> HoldRecord:
        record = HoldRecord(**fields)
        self.db.add(record)
        self.db.flush()
        return record

    def get(self, hold_id: str) -> Optional[HoldRecord]:
        return self.db.get(HoldRecord, hold_id)

    def live_overlapping(self, organization_id: str, dimension: str, resource_id: str,
                         day: date_type, start: time_type, end: time_type, now: datetime) -> List[HoldRecord]:
        """Live holds on the resource overlapping [start, end). Expired holds count as absent."""
        column = HoldRecord.provider_id if dimension == "provider" else HoldRecord.room_id
        stmt = select(HoldRecord).where(
            HoldRecord.organization_id == organization_id,
            column == resource_id,
            HoldRecord.date == day,
            HoldRecord.expires_at > now,
            HoldRecord.released_at.is_(None),
            HoldRecord.converted_session_id.is_(None),
            HoldRecord.start_time < end,
            HoldRecord.end_time > start,
        )
        return list(self.db.execute(stmt).scalars())

    def live_in_range(self, organization_id: str, start: date_type, end: date_type, now: datetime) -> List[HoldRecord]:
        stmt = select(HoldRecord).where(
            HoldRecord.organization_id == organization_id,
            HoldRecord.date >= start,
            HoldRecord.date <= end,
            HoldRecord.expires_at > now,
            HoldRecord.released_at.is_(None),
            HoldRecord.converted_session_id.is_(None),
        ).order_by(HoldRecord.date, HoldRecord.start_time, HoldRecord.id)
        return list(self.db.execute(stmt).scalars())

    def delete_expired(self, now: datetime) -> int:
        """Storage reclamation only; the overlap checks already ignore expired holds."""
        stmt = select(HoldRecord).where(
            HoldRecord.expires_at <= now,
            HoldRecord.converted_session_id.is_(None),
        )
        expired = list(self.db.execute(stmt).scalars())
        for record in expired:
            self.db.delete(record)
        self.db.flush()
        return len(expired)


class AuditRepository:

    def __init__(self, db: DbSession):
        self.db = db

    def record(self, organization_id: str, actor: Optional[str], action: str, entity_type: str,
               entity_id: Optional[str], changes: Dict[str, Any], now: datetime) -> AuditLogRecord:
        entry = AuditLogRecord(
            organization_id=organization_id,
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            changes=changes,
            created_at=now,
        )
        self.db.add(entry)
        self.db.flush()
        logger.info(f"Audit: {action} {entity_type} {entity_id} by {actor or 'system'}")
        return entry

    def entries(self, organization_id: str, action: Optional[str] = None) -> List[AuditLogRecord]:
        stmt = select(AuditLogRecord).where(AuditLogRecord.organization_id == organization_id)
        if action:
            stmt = stmt.where(AuditLogRecord.action == action)
        return list(self.db.execute(stmt.order_by(AuditLogRecord.id)).scalars())


def to_schedule(record: ScheduleRecord) -> Schedule:
    return Schedule.model_validate(record)


def to_session(record: SessionRecord) -> Session:
    return Session.model_validate(record)


def to_hold(record: HoldRecord) -> Hold:
    return Hold.model_validate(record)
