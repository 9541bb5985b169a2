"""
Scheduling engine package.

Pure decision logic (resolver, checker, scorer, matcher, generator,
reconciler, analyzer, reviewer). The transactional entry points live in
scheduler.service and scheduler.holds, which depend on the store.
"""

from .errors import (
    ConstraintViolation,
    SchedulingError,
    NotFound,
    ScheduleStateError,
    RuleReviewRequired,
    InvalidAssignment,
    HoldError,
    HoldConflict,
    HoldExpired,
    HoldClosed,
)
from .availability import AvailabilityResolver, SlotFinder, federal_holidays, merge_windows
from .constraints import ConstraintChecker, RuleSet
from .scoring import SlotScorer, SoftScore
from .state import SchedulerState
from .matcher import Candidate, ConstraintMatcher
from .engine import GenerationOutcome, ScheduleGenerator, monday_of, week_days
from .reconcile import ReconcileOutcome, ScheduleReconciler
from .analyzer import RuleAnalyzer
from .review import RuleReviewer

__all__ = [
    # --- Errors ---
    "ConstraintViolation",
    "SchedulingError",
    "NotFound",
    "ScheduleStateError",
    "RuleReviewRequired",
    "InvalidAssignment",
    "HoldError",
    "HoldConflict",
    "HoldExpired",
    "HoldClosed",

    # --- Engine ---
    "AvailabilityResolver",
    "federal_holidays",
    "merge_windows",
    "SlotFinder",
    "ConstraintChecker",
    "RuleSet",
    "SlotScorer",
    "SoftScore",
    "SchedulerState",
    "Candidate",
    "ConstraintMatcher",
    "GenerationOutcome",
    "ScheduleGenerator",
    "monday_of",
    "week_days",
    "ReconcileOutcome",
    "ScheduleReconciler",

    # --- Rule Quality ---
    "RuleAnalyzer",
    "RuleReviewer",
]
