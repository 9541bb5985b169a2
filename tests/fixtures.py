"""
Shared builders for test data.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, List, Tuple

from models import (
    AvailabilityBlock,
    Client,
    Gender,
    OrganizationContext,
    Provider,
    Room,
    Rule,
)

ORG = "org_test"
MONDAY = date(2025, 3, 3)
TUESDAY = MONDAY + timedelta(days=1)
WEDNESDAY = MONDAY + timedelta(days=2)
THURSDAY = MONDAY + timedelta(days=3)

CREATED = datetime(2025, 1, 1, 12, 0)


class FakeClock:
    """Controllable naive-UTC clock."""

    def __init__(self, now: datetime = datetime(2025, 3, 1, 10, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def hours(*blocks: Tuple[int, int, int]) -> List[AvailabilityBlock]:
    """hours((0, 9, 10), (2, 9, 10)) -> Monday and Wednesday 09:00-10:00."""
    return [AvailabilityBlock(day_of_week=d, start_time=time(s), end_time=time(e)) for d, s, e in blocks]


def provider(id: str, availability=None, gender: Gender = Gender.FEMALE, certifications=(), name: str = None, **kwargs) -> Provider:
    return Provider(
        id=id,
        organization_id=ORG,
        name=name or id.upper(),
        gender=gender,
        certifications=list(certifications),
        availability=availability if availability is not None else hours(*[(d, 9, 17) for d in range(5)]),
        created_at=CREATED,
        **kwargs,
    )


def client(id: str, sessions_per_week: int = 1, gender: Gender = Gender.MALE, created_offset: int = 0, name: str = None, **kwargs) -> Client:
    return Client(
        id=id,
        organization_id=ORG,
        name=name or id.upper(),
        gender=gender,
        sessions_per_week=sessions_per_week,
        created_at=CREATED + timedelta(minutes=created_offset),
        **kwargs,
    )


def room(id: str, capabilities=(), name: str = None, **kwargs) -> Room:
    return Room(id=id, organization_id=ORG, name=name or id.upper(), capabilities=list(capabilities), **kwargs)


def rule(id: str, category: str, logic: Dict, description: str = "", **kwargs) -> Rule:
    return Rule(id=id, organization_id=ORG, category=category, logic=logic, description=description, **kwargs)


def context(**kwargs) -> OrganizationContext:
    return OrganizationContext(organization_id=ORG, **kwargs)


def no_overlaps(sessions, key: str) -> bool:
    """True when no two active sessions share a resource at overlapping times."""
    active = [s for s in sessions if s.is_active and getattr(s, key)]
    for i, a in enumerate(active):
        for b in active[i + 1:]:
            if getattr(a, key) == getattr(b, key) and a.overlaps(b.date, b.start_time, b.end_time):
                return False
    return True
