import uuid

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_id():
    return str(uuid.uuid4())


class ScheduleRecord(Base):
    __tablename__ = "schedules"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(64), nullable=False, index=True)
    week_start = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="draft")  # draft, published
    version = Column(Integer, nullable=False, default=1)
    source_schedule_id = Column(String(36), ForeignKey("schedules.id"), nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False)
    published_at = Column(DateTime, nullable=True)

    sessions = relationship("SessionRecord", back_populates="schedule", order_by="SessionRecord.date")

    __table_args__ = (Index("ix_schedules_org_week", "organization_id", "week_start", "version"),)


class SessionRecord(Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    schedule_id = Column(String(36), ForeignKey("schedules.id"), nullable=False, index=True)
    organization_id = Column(String(64), nullable=False)
    provider_id = Column(String(64), nullable=False)
    client_id = Column(String(64), nullable=False)
    room_id = Column(String(64), nullable=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")
    booked_via = Column(String(20), nullable=False, default="generator")  # generator, manual, self_service
    notes = Column(Text, nullable=True)

    schedule = relationship("ScheduleRecord", back_populates="sessions")

    __table_args__ = (
        Index("ix_sessions_provider_day", "organization_id", "provider_id", "date"),
        Index("ix_sessions_room_day", "organization_id", "room_id", "date"),
    )


class HoldRecord(Base):
    __tablename__ = "appointment_holds"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(64), nullable=False)
    provider_id = Column(String(64), nullable=True)
    room_id = Column(String(64), nullable=True)
    client_id = Column(String(64), nullable=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    released_at = Column(DateTime, nullable=True)
    converted_session_id = Column(String(36), ForeignKey("sessions.id"), nullable=True)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (Index("ix_holds_org_day", "organization_id", "date"),)


class ResourceDayLock(Base):
    """
    One row per (organization, contended resource, date). Every mutation that
    creates or moves a session or hold on that resource-day locks this row first.
    """
    __tablename__ = "resource_day_locks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String(64), nullable=False)
    resource_key = Column(String(128), nullable=False)  # provider:<id>, room:<id>, schedule-week
    date = Column(Date, nullable=False)
    counter = Column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("organization_id", "resource_key", "date", name="uq_resource_day"),)


class AuditLogRecord(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String(64), nullable=False, index=True)
    actor = Column(String(64), nullable=True)
    action = Column(String(50), nullable=False)  # generate, publish, create_draft_copy, convert_hold, rule_review_block
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=True)
    changes = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False)
