"""
Result payloads returned by the core operations.

None of these are errors: coverage shortfalls and removed sessions are
reported here so the caller can act on them.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field
from datetime import date, time

from .rules import ReviewIssue, ReviewStatus
from .schedule import Schedule, Session

Severity = Literal["high", "medium", "low"]


class CoverageWarning(BaseModel):
    """A client left under their weekly quota (InsufficientCoverage)."""
    client_id: str
    client_name: str
    required: int
    scheduled: int

    @computed_field
    @property
    def shortfall(self) -> int:
        return self.required - self.scheduled

    @property
    def message(self) -> str:
        return (
            f"Client {self.client_name} (ID: {self.client_id}) is scheduled for "
            f"{self.scheduled} sessions instead of the requested {self.required}."
        )


class GenerationResult(BaseModel):
    schedule: Schedule
    sessions: List[Session]
    warnings: List[CoverageWarning] = Field(default_factory=list)


class RescheduledSession(BaseModel):
    original: Session
    session: Session
    reason: str


class RemovedSession(BaseModel):
    session: Session
    reason: str


class DraftCopyResult(BaseModel):
    draft: Schedule
    sessions: List[Session]
    rescheduled: List[RescheduledSession] = Field(default_factory=list)
    removed: List[RemovedSession] = Field(default_factory=list)

    @property
    def incomplete(self) -> bool:
        """ReconciliationIncomplete: the copy succeeded but dropped sessions."""
        return bool(self.removed)


class RuleConflict(BaseModel):
    rule_ids: List[str]
    kind: str
    severity: Severity
    description: str
    suggestion: str


class RuleDuplicate(BaseModel):
    rule_ids: List[str]
    similarity: float
    description: str
    recommendation: str


class RuleEnhancement(BaseModel):
    related_rule_ids: List[str] = Field(default_factory=list)
    suggestion: str
    rationale: str
    priority: Severity


class AnalysisSummary(BaseModel):
    total_rules_analyzed: int
    conflicts_found: int
    duplicates_found: int
    enhancements_suggested: int


class RuleAnalysisReport(BaseModel):
    conflicts: List[RuleConflict] = Field(default_factory=list)
    duplicates: List[RuleDuplicate] = Field(default_factory=list)
    enhancements: List[RuleEnhancement] = Field(default_factory=list)
    summary: AnalysisSummary


class RuleReviewResult(BaseModel):
    rule_id: str
    status: ReviewStatus
    issues: List[ReviewIssue] = Field(default_factory=list)


class SlotConflict(BaseModel):
    """Structured detail of a contended provider/room time range."""
    dimension: Literal["provider", "room"]
    resource_id: str
    date: date
    start_time: time
    end_time: time
    hold_ids: List[str] = Field(default_factory=list)
    session_ids: List[str] = Field(default_factory=list)
    note: Optional[str] = None


class AvailableSlot(BaseModel):
    """A free, bookable start for one provider (and room, when one was asked for)."""
    date: date
    start_time: time
    end_time: time
    provider_id: str
    provider_name: str
    room_id: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "date": "2025-03-03",
            "start_time": "10:00",
            "end_time": "11:00",
            "provider_id": "s1",
            "provider_name": "Dana Reyes",
        }
    })
