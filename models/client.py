"""
Demand-side data model for the practice scheduler.
"""

from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime, time

from .resource import Gender, PartyStatus, TimeWindow


class Client(BaseModel):
    """
    A person receiving sessions, together with everything the matcher
    needs to pick a provider and room for them.
    """

    # --- Core Identity ---
    id: str = Field(description="Unique identifier for the client")
    organization_id: str
    name: str = Field(min_length=1, description="Human-readable name")
    gender: Gender
    status: PartyStatus = Field(default=PartyStatus.ACTIVE)
    created_at: datetime = Field(default_factory=datetime.now, description="Drives generation order")

    # --- Demand ---
    sessions_per_week: int = Field(default=1, ge=0, le=21, description="Required weekly session count")
    session_minutes: Optional[int] = Field(
        default=None,
        ge=5,
        le=480,
        description="Session length; falls back to the organization default"
    )

    # --- Hard Requirements ---
    gender_preference: Optional[Gender] = Field(default=None, description="Required provider gender")
    required_certifications: List[str] = Field(default_factory=list)
    required_room_capabilities: List[str] = Field(default_factory=list)

    # --- Soft Preferences ---
    preferred_windows: List[TimeWindow] = Field(
        default_factory=list,
        description="Times of day the client would rather be seen"
    )
    preferred_room_id: Optional[str] = Field(default=None)

    @property
    def is_active(self) -> bool:
        return self.status == PartyStatus.ACTIVE

    def prefers_time(self, start: time, end: time) -> bool:
        return any(w.contains(start, end) for w in self.preferred_windows)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "cli_01",
            "organization_id": "org_01",
            "name": "Patient P",
            "gender": "male",
            "sessions_per_week": 2,
            "required_certifications": ["BCBA"],
            "preferred_windows": [{"start_time": "09:00:00", "end_time": "12:00:00"}],
            "required_room_capabilities": ["sensory"]
        }
    })
