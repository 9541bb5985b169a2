"""
Rule data models.

Rule logic is a closed tagged union keyed by category. Each category has its
own validated payload, so the engine never interprets an untyped dict at
match time:

    gender_pairing    -> GenderPairingLogic    (hard)
    specific_pairing  -> SpecificPairingLogic  (hard)
    certification     -> CertificationLogic    (hard)
    availability      -> AvailabilityLogic     (hard)
    session           -> SessionLogic          (soft)
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict, model_validator
from datetime import date, datetime, time

from .resource import Gender


class RuleCategory(str, Enum):
    GENDER_PAIRING = "gender_pairing"
    SESSION = "session"
    AVAILABILITY = "availability"
    SPECIFIC_PAIRING = "specific_pairing"
    CERTIFICATION = "certification"


class ReviewStatus(str, Enum):
    OK = "ok"
    NEEDS_REVIEW = "needs_review"


class PairingMode(str, Enum):
    REQUIRE = "require"   # client may only be seen by the named provider(s)
    PREVENT = "prevent"   # client must never be seen by the named provider


class AvailabilityKind(str, Enum):
    TIME_WINDOW = "time_window"
    DAY_RESTRICTION = "day_restriction"
    EXCLUDE_DATES = "exclude_dates"


class GenderPairingLogic(BaseModel):
    """Clients of `client_gender` (all clients when None) must see a provider of `provider_gender`."""
    category: Literal["gender_pairing"] = "gender_pairing"
    client_gender: Optional[Gender] = None
    provider_gender: Gender


class SpecificPairingLogic(BaseModel):
    category: Literal["specific_pairing"] = "specific_pairing"
    client_id: str
    provider_id: str
    mode: PairingMode = PairingMode.REQUIRE


class CertificationLogic(BaseModel):
    """
    Clients requiring any of `client_requires` (every client when empty)
    must see a provider holding at least one of `provider_must_have`.
    """
    category: Literal["certification"] = "certification"
    client_requires: List[str] = Field(default_factory=list)
    provider_must_have: List[str] = Field(min_length=1)


class AvailabilityLogic(BaseModel):
    """
    Organization-wide limits on when sessions may take place.

    time_window      sessions must fit inside [start_time, end_time] on every day
    day_restriction  on `day_of_week`, sessions must fit inside the given bounds
                     (either bound may be omitted); with no bounds the day is closed
    exclude_dates    no sessions on `dates` (and on US federal holidays if flagged)
    """
    category: Literal["availability"] = "availability"
    kind: AvailabilityKind
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    dates: List[date] = Field(default_factory=list)
    exclude_federal_holidays: bool = False

    @model_validator(mode='after')
    def validate_kind(self):
        if self.kind == AvailabilityKind.TIME_WINDOW:
            if self.start_time is None or self.end_time is None:
                raise ValueError("time_window rules need start_time and end_time")
        if self.kind == AvailabilityKind.DAY_RESTRICTION and self.day_of_week is None:
            raise ValueError("day_restriction rules need day_of_week")
        if self.kind == AvailabilityKind.EXCLUDE_DATES and not (self.dates or self.exclude_federal_holidays):
            raise ValueError("exclude_dates rules need at least one date or exclude_federal_holidays")
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValueError("Window end time must be after start time")
        return self


class SessionLogic(BaseModel):
    """Soft preferences about how sessions are laid out. Never eliminates a candidate."""
    category: Literal["session"] = "session"
    max_sessions_per_day: Optional[int] = Field(default=None, ge=1, description="Per provider")
    min_gap_minutes: Optional[int] = Field(default=None, ge=0, description="Between a provider's sessions")
    spread_across_days: bool = Field(default=False, description="At most one session per client per day")
    start_minute_marks: List[int] = Field(default_factory=list, description="Allowed start minutes, e.g. [0, 30]")

    @model_validator(mode='after')
    def validate_marks(self):
        if any(m < 0 or m > 59 for m in self.start_minute_marks):
            raise ValueError("start_minute_marks must be within 0-59")
        return self


RuleLogic = Annotated[
    Union[GenderPairingLogic, SpecificPairingLogic, CertificationLogic, AvailabilityLogic, SessionLogic],
    Field(discriminator="category")
]


class ReviewCandidate(BaseModel):
    entity_type: Literal["provider", "client"]
    id: str
    name: str


class ReviewIssue(BaseModel):
    type: Literal["ambiguous_entity_reference", "duplicate_full_name", "unknown_entity_reference"]
    mention: str
    candidates: List[ReviewCandidate] = Field(default_factory=list)
    detail: str


class EntityBinding(BaseModel):
    """Admin-confirmed meaning of a name mentioned in a rule description."""
    mention: str
    entity_type: Literal["provider", "client"]
    entity_id: str


class Rule(BaseModel):
    """
    An organization-level scheduling constraint.
    Created and edited by admins; read-only to the generator.
    """
    id: str
    organization_id: str
    category: RuleCategory
    description: str = Field(default="")
    logic: RuleLogic
    priority: int = Field(default=0, description="Higher = more important")
    is_active: bool = True
    entity_bindings: List[EntityBinding] = Field(default_factory=list)

    review_status: ReviewStatus = ReviewStatus.OK
    review_issues: List[ReviewIssue] = Field(default_factory=list)
    reviewed_at: Optional[datetime] = None

    @model_validator(mode='before')
    @classmethod
    def tag_logic(cls, data):
        # Let callers omit the discriminator inside the payload
        if isinstance(data, dict) and isinstance(data.get("logic"), dict):
            logic = dict(data["logic"])
            category = data.get("category")
            logic.setdefault("category", category.value if isinstance(category, Enum) else category)
            data = {**data, "logic": logic}
        return data

    @model_validator(mode='after')
    def validate_category(self):
        if self.logic.category != self.category.value:
            raise ValueError(f"Logic payload is '{self.logic.category}' but rule category is '{self.category.value}'")
        return self

    @property
    def is_hard(self) -> bool:
        return self.category != RuleCategory.SESSION

    @property
    def needs_review(self) -> bool:
        return self.review_status == ReviewStatus.NEEDS_REVIEW

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "rule_01",
            "organization_id": "org_01",
            "category": "gender_pairing",
            "description": "Female clients are seen by female providers",
            "logic": {"client_gender": "female", "provider_gender": "female"},
            "priority": 10
        }
    })
