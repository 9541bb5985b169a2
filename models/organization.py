"""
Organization-scoped configuration passed explicitly into every core call.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import date, time

from config import DEFAULT_HOLD_MINUTES, DEFAULT_SESSION_MINUTES, DEFAULT_SLOT_INTERVAL
from .resource import Holiday, TimeWindow


def default_business_hours() -> Dict[int, Optional[TimeWindow]]:
    """Monday to Friday, 08:00-18:00."""
    weekday = TimeWindow(start_time=time(8, 0), end_time=time(18, 0))
    return {day: (weekday if day < 5 else None) for day in range(7)}


class OrganizationContext(BaseModel):
    organization_id: str
    business_hours: Dict[int, Optional[TimeWindow]] = Field(
        default_factory=default_business_hours,
        description="Weekday (0=Monday) -> opening window, None when closed"
    )
    slot_interval_minutes: int = Field(default=DEFAULT_SLOT_INTERVAL, ge=5, le=240)
    default_session_minutes: int = Field(default=DEFAULT_SESSION_MINUTES, ge=5, le=480)
    late_cancel_window_hours: int = Field(default=24, ge=0)
    hold_minutes: int = Field(default=DEFAULT_HOLD_MINUTES, ge=1, le=120)
    holidays: List[Holiday] = Field(default_factory=list)

    def hours_for(self, day: date) -> Optional[TimeWindow]:
        return self.business_hours.get(day.weekday())

    def holiday_on(self, day: date) -> Optional[Holiday]:
        for holiday in self.holidays:
            if holiday.falls_on(day):
                return holiday
        return None
