"""
Schedule data models for the practice scheduler.

This module defines the 'Output' of the engine:
schedules, the sessions committed inside them, and the short-lived holds
that reserve a slot while a self-service booking completes.
"""

from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_validator
from datetime import date as date_type, time as time_type, datetime


class ScheduleStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class SessionStatus(str, Enum):
    """Lifecycle of a single session."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    LATE_CANCEL = "late_cancel"
    NO_SHOW = "no_show"


# Sessions in these states no longer hold their provider or room
INACTIVE_SESSION_STATUSES = frozenset({
    SessionStatus.CANCELLED,
    SessionStatus.LATE_CANCEL,
    SessionStatus.NO_SHOW,
})


class BookingSource(str, Enum):
    GENERATOR = "generator"
    MANUAL = "manual"
    SELF_SERVICE = "self_service"


def ranges_overlap(start_a: time_type, end_a: time_type, start_b: time_type, end_b: time_type) -> bool:
    """Half-open [start, end) overlap: back-to-back ranges do not clash."""
    return start_a < end_b and start_b < end_a


class Schedule(BaseModel):
    id: str
    organization_id: str
    week_start: date_type = Field(description="Monday of the scheduled week")
    status: ScheduleStatus = ScheduleStatus.DRAFT
    version: int = Field(default=1, ge=1)
    source_schedule_id: Optional[str] = Field(default=None, description="Published schedule this draft was copied from")
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_published(self) -> bool:
        return self.status == ScheduleStatus.PUBLISHED


class Session(BaseModel):
    """
    A committed block of time pairing one provider with one client.
    """

    # --- Core Scheduling Data ---
    id: Optional[str] = Field(default=None, description="Assigned on persistence")
    schedule_id: Optional[str] = None
    provider_id: str
    client_id: str
    room_id: Optional[str] = None
    date: date_type
    start_time: time_type
    end_time: time_type

    status: SessionStatus = Field(default=SessionStatus.SCHEDULED)
    booked_via: BookingSource = Field(default=BookingSource.GENERATOR)
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode='after')
    def validate_times(self):
        if self.start_time >= self.end_time:
            raise ValueError("Session end time must be after start time")
        return self

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_SESSION_STATUSES

    def overlaps(self, day: date_type, start: time_type, end: time_type) -> bool:
        return self.date == day and ranges_overlap(self.start_time, self.end_time, start, end)


class Hold(BaseModel):
    """
    Short-lived reservation of a provider and/or room for a time range.
    Live until it expires, is released, or is converted into a Session.
    """
    id: str
    organization_id: str
    provider_id: Optional[str] = None
    room_id: Optional[str] = None
    client_id: Optional[str] = None
    date: date_type
    start_time: time_type
    end_time: time_type
    expires_at: datetime
    released_at: Optional[datetime] = None
    converted_session_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def is_live(self, now: datetime) -> bool:
        return (
            self.expires_at > now
            and self.released_at is None
            and self.converted_session_id is None
        )
