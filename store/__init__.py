"""
Transactional store for schedules, sessions, holds and the audit trail,
plus the in-memory directory of parties and rules.
"""

from .database import Base, Store, create_store_engine
from .tables import AuditLogRecord, HoldRecord, ResourceDayLock, ScheduleRecord, SessionRecord
from .repository import (
    AuditRepository,
    HoldRepository,
    LockRepository,
    ScheduleRepository,
    WEEK_LOCK,
    to_hold,
    to_schedule,
    to_session,
)
from .directory import InMemoryDirectory

__all__ = [
    # --- Engine & Units of Work ---
    "Base",
    "Store",
    "create_store_engine",

    # --- Tables ---
    "AuditLogRecord",
    "HoldRecord",
    "ResourceDayLock",
    "ScheduleRecord",
    "SessionRecord",

    # --- Repositories ---
    "AuditRepository",
    "HoldRepository",
    "LockRepository",
    "ScheduleRepository",
    "WEEK_LOCK",
    "to_hold",
    "to_schedule",
    "to_session",

    # --- Collaborators ---
    "InMemoryDirectory",
]
