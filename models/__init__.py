"""
Data models package for the practice scheduler.

This package exports the core pillars of the data architecture:
1. Demand (Client)
2. Supply (Provider, Room, AvailabilityException, Holiday)
3. Constraints (Rule and its category-specific logic)
4. Output (Schedule, Session, Hold) and operation reports
"""

from .client import Client

from .resource import (
    Gender,
    PartyStatus,
    ApprovalStatus,
    TimeWindow,
    AvailabilityBlock,
    Provider,
    Room,
    AvailabilityException,
    Holiday,
    minutes_of,
)

from .rules import (
    RuleCategory,
    ReviewStatus,
    PairingMode,
    AvailabilityKind,
    GenderPairingLogic,
    SpecificPairingLogic,
    CertificationLogic,
    AvailabilityLogic,
    SessionLogic,
    ReviewCandidate,
    ReviewIssue,
    EntityBinding,
    Rule,
)

from .schedule import (
    ScheduleStatus,
    SessionStatus,
    BookingSource,
    INACTIVE_SESSION_STATUSES,
    Schedule,
    Session,
    Hold,
    ranges_overlap,
)

from .organization import OrganizationContext, default_business_hours

from .report import (
    CoverageWarning,
    GenerationResult,
    RescheduledSession,
    RemovedSession,
    DraftCopyResult,
    RuleConflict,
    RuleDuplicate,
    RuleEnhancement,
    AnalysisSummary,
    RuleAnalysisReport,
    RuleReviewResult,
    SlotConflict,
    AvailableSlot,
)

__all__ = [
    # --- Demand Models ---
    "Client",

    # --- Supply Models ---
    "Gender",
    "PartyStatus",
    "ApprovalStatus",
    "TimeWindow",
    "AvailabilityBlock",
    "Provider",
    "Room",
    "AvailabilityException",
    "Holiday",
    "minutes_of",

    # --- Rule Models ---
    "RuleCategory",
    "ReviewStatus",
    "PairingMode",
    "AvailabilityKind",
    "GenderPairingLogic",
    "SpecificPairingLogic",
    "CertificationLogic",
    "AvailabilityLogic",
    "SessionLogic",
    "ReviewCandidate",
    "ReviewIssue",
    "EntityBinding",
    "Rule",

    # --- Output Models ---
    "ScheduleStatus",
    "SessionStatus",
    "BookingSource",
    "INACTIVE_SESSION_STATUSES",
    "Schedule",
    "Session",
    "Hold",
    "ranges_overlap",

    # --- Context & Reports ---
    "OrganizationContext",
    "default_business_hours",
    "CoverageWarning",
    "GenerationResult",
    "RescheduledSession",
    "RemovedSession",
    "DraftCopyResult",
    "RuleConflict",
    "RuleDuplicate",
    "RuleEnhancement",
    "AnalysisSummary",
    "RuleAnalysisReport",
    "RuleReviewResult",
    "SlotConflict",
    "AvailableSlot",
]
