"""
Error taxonomy of the scheduling core.

Every failure a caller can see carries enough structured detail (rule id,
conflicting time range, hold id) to act on it without re-deriving the cause.
"""

from datetime import date as date_type, time as time_type, datetime
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, asdict

from models import AvailableSlot, RuleReviewResult, SlotConflict


@dataclass
class ConstraintViolation:
    """Detailed reason a candidate assignment was rejected."""
    constraint_type: str  # e.g., "Certification", "Gender", "Availability", "Overlap"
    reason: str
    client_id: str
    provider_id: Optional[str] = None
    room_id: Optional[str] = None
    date: Optional[date_type] = None
    start_time: Optional[time_type] = None
    end_time: Optional[time_type] = None
    rule_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("date", "start_time", "end_time"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class SchedulingError(Exception):
    """Base class for every error raised by the core."""

    code = "scheduling_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class NotFound(SchedulingError):
    code = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ScheduleStateError(SchedulingError):
    """Operation not allowed in the schedule's current lifecycle state."""
    code = "schedule_state"


class RuleReviewRequired(SchedulingError):
    """An active rule is flagged needs_review; generation is blocked until it is resolved."""
    code = "rule_review_required"

    def __init__(self, results: List[RuleReviewResult]):
        super().__init__("Rules require review before schedule generation")
        self.results = results

    @property
    def rule_ids(self) -> List[str]:
        return [r.rule_id for r in self.results]

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "rules": [r.model_dump(mode="json") for r in self.results],
        }


class InvalidAssignment(SchedulingError):
    """A manually requested session violates one or more hard rules."""
    code = "invalid_assignment"

    def __init__(self, violations: List[ConstraintViolation]):
        reasons = "; ".join(v.reason for v in violations)
        super().__init__(f"Assignment violates hard constraints: {reasons}")
        self.violations = violations

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "violations": [v.to_dict() for v in self.violations]}


class HoldError(SchedulingError):
    code = "hold_error"


class HoldConflict(HoldError):
    """Requested slot is already held or booked; offer the caller an alternative."""
    code = "hold_conflict"

    def __init__(self, conflicts: List[SlotConflict], alternatives: Optional[List[AvailableSlot]] = None):
        first = conflicts[0]
        super().__init__(
            f"{first.dimension.title()} {first.resource_id} is not available on "
            f"{first.date.isoformat()} {first.start_time:%H:%M}-{first.end_time:%H:%M}"
        )
        self.conflicts = conflicts
        self.alternatives = alternatives or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "conflicts": [c.model_dump(mode="json") for c in self.conflicts],
            "alternatives": [a.model_dump(mode="json") for a in self.alternatives],
        }


class HoldExpired(HoldError):
    """Conversion attempted after the hold's TTL; the caller must re-acquire."""
    code = "hold_expired"

    def __init__(self, hold_id: str, expired_at: datetime):
        super().__init__(f"Hold {hold_id} expired at {expired_at.isoformat()}")
        self.hold_id = hold_id
        self.expired_at = expired_at

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "hold_id": self.hold_id, "expired_at": self.expired_at.isoformat()}


class HoldClosed(HoldError):
    """The hold was already released or converted."""
    code = "hold_closed"

    def __init__(self, hold_id: str, reason: str):
        super().__init__(f"Hold {hold_id} is no longer valid: {reason}")
        self.hold_id = hold_id
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "hold_id": self.hold_id, "reason": self.reason}
