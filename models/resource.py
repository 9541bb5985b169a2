"""
Supply-side data models for the practice scheduler.

This module defines who and what can be booked:
1. Providers (people delivering sessions, with recurring weekly hours)
2. Rooms (physical spaces tagged with capabilities)
3. Availability exceptions and holidays (date-specific overrides)
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator, ConfigDict
from datetime import date, datetime, time


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class PartyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ApprovalStatus(str, Enum):
    """Review state of a provider's time-off or override request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def minutes_of(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


class TimeWindow(BaseModel):
    """A half-open [start, end) range of wall-clock time within one day."""
    start_time: time
    end_time: time

    @model_validator(mode='after')
    def validate_times(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be strictly after start time")
        return self

    @property
    def start_minutes(self) -> int:
        return minutes_of(self.start_time)

    @property
    def end_minutes(self) -> int:
        return minutes_of(self.end_time)

    def contains(self, start: time, end: time) -> bool:
        return self.start_time <= start and end <= self.end_time

    def overlaps(self, start: time, end: time) -> bool:
        return self.start_time < end and start < self.end_time


class AvailabilityBlock(BaseModel):
    """A recurring weekly window when a provider works."""
    day_of_week: int = Field(ge=0, le=6, description="0=Monday, 6=Sunday")
    start_time: time = Field(description="Shift start")
    end_time: time = Field(description="Shift end")

    @model_validator(mode='after')
    def validate_times(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be strictly after start time")
        return self

    def to_window(self) -> TimeWindow:
        return TimeWindow(start_time=self.start_time, end_time=self.end_time)


class Provider(BaseModel):
    """
    A person who delivers sessions.
    """
    id: str = Field(description="Unique identifier")
    organization_id: str = Field(description="Owning organization")
    name: str = Field(min_length=1, description="Display name")
    gender: Gender

    certifications: List[str] = Field(default_factory=list, description="Credentials held, e.g. 'BCBA'")
    availability: List[AvailabilityBlock] = Field(
        default_factory=list,
        description="Standard weekly operating hours"
    )
    status: PartyStatus = Field(default=PartyStatus.ACTIVE)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_active(self) -> bool:
        return self.status == PartyStatus.ACTIVE

    def has_certifications(self, required: List[str]) -> bool:
        return set(required).issubset(self.certifications)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "prov_01",
            "organization_id": "org_01",
            "name": "Sarah Jones",
            "gender": "female",
            "certifications": ["BCBA"],
            "availability": [
                {"day_of_week": 0, "start_time": "09:00:00", "end_time": "17:00:00"}
            ],
            "status": "active"
        }
    })


class Room(BaseModel):
    """Physical space a session can take place in."""
    id: str = Field(description="Unique identifier")
    organization_id: str
    name: str = Field(min_length=1, description="e.g. 'Sensory Room'")
    capabilities: List[str] = Field(default_factory=list, description="Capability tags, e.g. 'sensory'")
    status: PartyStatus = Field(default=PartyStatus.ACTIVE)

    @property
    def is_active(self) -> bool:
        return self.status == PartyStatus.ACTIVE

    def has_capabilities(self, required: List[str]) -> bool:
        return set(required).issubset(self.capabilities)


class AvailabilityException(BaseModel):
    """
    Date-specific override of a provider's recurring hours.
    Only APPROVED exceptions are honoured by the resolver.
    """
    id: str
    provider_id: str
    date: date
    available: bool = Field(description="False = time off for the whole day")
    start_time: Optional[time] = Field(default=None, description="Override window start (available only)")
    end_time: Optional[time] = Field(default=None, description="Override window end (available only)")
    status: ApprovalStatus = Field(default=ApprovalStatus.PENDING)
    reason: Optional[str] = None

    @model_validator(mode='after')
    def validate_window(self):
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("Both start_time and end_time must be provided together")
        if self.start_time and self.start_time >= self.end_time:
            raise ValueError("Override end time must be after start time")
        return self

    @property
    def window(self) -> Optional[TimeWindow]:
        if self.start_time is None:
            return None
        return TimeWindow(start_time=self.start_time, end_time=self.end_time)


class Holiday(BaseModel):
    """Organization-wide closure. Recurring holidays repeat on the same month/day every year."""
    name: str
    date: date
    recurring: bool = Field(default=False)

    def falls_on(self, day: date) -> bool:
        if self.recurring:
            return (self.date.month, self.date.day) == (day.month, day.day)
        return self.date == day
