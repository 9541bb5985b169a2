"""
Hard Constraint Validation Logic.

This module answers the binary question: "Can Provider X see Client Y in Room Z at Time T?"
It enforces physical reality (a provider, room or client can't be in two
sessions at once) and competency (gender, certification, pairing, availability rules).

Hard and soft rules are partitioned once into a RuleSet; soft 'session' rules
never reach this module.
"""

import logging
from datetime import date as date_type, time as time_type
from typing import Dict, Iterator, List, Optional
from collections import defaultdict

from models import (
    AvailabilityKind,
    AvailabilityLogic,
    Client,
    PairingMode,
    Provider,
    Room,
    Rule,
    RuleCategory,
)
from .availability import AvailabilityResolver, federal_holidays
from .errors import ConstraintViolation
from .state import SchedulerState

logger = logging.getLogger(__name__)


class RuleSet:
    """
    Active rules of one organization, split by class and indexed for lookup.
    """

    def __init__(self, rules: List[Rule]):
        active = sorted((r for r in rules if r.is_active), key=lambda r: (-r.priority, r.id))
        self.hard: List[Rule] = [r for r in active if r.is_hard]
        self.soft: List[Rule] = [r for r in active if not r.is_hard]

        self.gender: List[Rule] = []
        self.certification: List[Rule] = []
        self.availability: List[Rule] = []
        # client_id -> provider_id -> rule
        self.required: Dict[str, Dict[str, Rule]] = defaultdict(dict)
        self.prevented: Dict[str, Dict[str, Rule]] = defaultdict(dict)

        for rule in self.hard:
            if rule.category == RuleCategory.GENDER_PAIRING:
                self.gender.append(rule)
            elif rule.category == RuleCategory.CERTIFICATION:
                self.certification.append(rule)
            elif rule.category == RuleCategory.AVAILABILITY:
                self.availability.append(rule)
            elif rule.category == RuleCategory.SPECIFIC_PAIRING:
                target = self.required if rule.logic.mode == PairingMode.REQUIRE else self.prevented
                target[rule.logic.client_id].setdefault(rule.logic.provider_id, rule)

    def is_pinned(self, client_id: str, provider_id: str) -> bool:
        """A 'require' pairing names this exact pair."""
        return provider_id in self.required.get(client_id, {})


class ConstraintChecker:
    """
    Validates hard constraints for a proposed session.
    """

    def __init__(
        self,
        resolver: AvailabilityResolver,
        rules: RuleSet,
        providers: List[Provider],
        rooms: List[Room]
    ):
        self.resolver = resolver
        self.rules = rules
        # Index resources for O(1) lookup
        self.providers = {p.id: p for p in providers}
        self.rooms = {r.id: r for r in rooms}
        self._federal: Dict[int, set] = {}

    # --- Public API ---

    def check_provider(self, client: Client, provider: Provider, date: date_type, start: time_type, end: time_type, state: Optional[SchedulerState] = None) -> Optional[ConstraintViolation]:
        """First violation of the provider-side filters, or None if valid."""
        return next(self._provider_violations(client, provider, date, start, end, state), None)

    def check_room(self, client: Client, room: Room, date: date_type, start: time_type, end: time_type, state: Optional[SchedulerState] = None) -> Optional[ConstraintViolation]:
        return next(self._room_violations(client, room, date, start, end, state), None)

    def check_slot(self, client: Client, date: date_type, start: time_type, end: time_type) -> Optional[ConstraintViolation]:
        """Organization-wide availability rules, independent of provider and room."""
        return next(self._slot_violations(client, date, start, end), None)

    def check_assignment(
        self,
        client: Client,
        provider_id: str,
        room_id: Optional[str],
        date: date_type,
        start: time_type,
        end: time_type,
        state: Optional[SchedulerState] = None
    ) -> List[ConstraintViolation]:
        """
        Every hard violation of one proposed session (empty list = valid).
        Used for manual sessions, hold conversion and re-validating copies.
        """
        violations = list(self._slot_violations(client, date, start, end))

        if not client.is_active:
            violations.append(ConstraintViolation("Client", f"Client {client.name} is inactive", client.id, provider_id, room_id, date, start, end))

        provider = self.providers.get(provider_id)
        if provider is None:
            violations.append(ConstraintViolation("Provider", f"Unknown provider {provider_id}", client.id, provider_id, room_id, date, start, end))
        else:
            violations.extend(self._provider_violations(client, provider, date, start, end, state))

        if room_id is not None:
            room = self.rooms.get(room_id)
            if room is None:
                violations.append(ConstraintViolation("Room", f"Unknown room {room_id}", client.id, provider_id, room_id, date, start, end))
            else:
                violations.extend(self._room_violations(client, room, date, start, end, state))
        elif client.required_room_capabilities:
            violations.append(ConstraintViolation(
                "Room", "Client requires a room with " + ", ".join(sorted(client.required_room_capabilities)),
                client.id, provider_id, None, date, start, end
            ))

        if state is not None:
            busy = state.client_conflict(client.id, date, start, end)
            if busy:
                violations.append(ConstraintViolation("Overlap", f"Client already booked {busy.start_time:%H:%M}-{busy.end_time:%H:%M}", client.id, provider_id, room_id, date, start, end))

        return violations

    # --- Filters ---

    def _provider_violations(self, client: Client, provider: Provider, date: date_type, start: time_type, end: time_type, state: Optional[SchedulerState]) -> Iterator[ConstraintViolation]:
        def violation(kind: str, reason: str, rule: Optional[Rule] = None) -> ConstraintViolation:
            return ConstraintViolation(kind, reason, client.id, provider.id, None, date, start, end, rule.id if rule else None)

        if not provider.is_active:
            yield violation("Provider", f"{provider.name} is inactive")
            return

        # 1. Specific pairing (require / prevent)
        prevented = self.rules.prevented.get(client.id, {}).get(provider.id)
        if prevented:
            yield violation("SpecificPairing", f"{provider.name} is excluded for client {client.name}", prevented)
        required = self.rules.required.get(client.id, {})
        if required and provider.id not in required:
            rule = next(iter(required.values()))
            yield violation("SpecificPairing", f"Client {client.name} is pinned to other providers", rule)

        # 2. Gender (client preference always applies; rules yield to a pinned pair)
        if client.gender_preference and provider.gender != client.gender_preference:
            yield violation("Gender", f"Client {client.name} prefers a {client.gender_preference.value} provider")
        if not self.rules.is_pinned(client.id, provider.id):
            for rule in self.rules.gender:
                logic = rule.logic
                if logic.client_gender in (None, client.gender) and provider.gender != logic.provider_gender:
                    yield violation("Gender", f"Rule requires a {logic.provider_gender.value} provider", rule)

        # 3. Certifications
        if not provider.has_certifications(client.required_certifications):
            missing = sorted(set(client.required_certifications) - set(provider.certifications))
            yield violation("Certification", f"{provider.name} lacks {', '.join(missing)}")
        for rule in self.rules.certification:
            logic = rule.logic
            applies = not logic.client_requires or set(logic.client_requires) & set(client.required_certifications)
            if applies and not set(logic.provider_must_have) & set(provider.certifications):
                yield violation("Certification", f"Rule requires one of {', '.join(logic.provider_must_have)}", rule)

        # 4. Resolved availability
        if not self.resolver.is_available(provider, date, start, end):
            yield violation("Availability", f"{provider.name} is not working at this time")

        # 5. Already consumed in this run
        if state is not None:
            busy = state.provider_conflict(provider.id, date, start, end)
            if busy:
                yield violation("Overlap", f"{provider.name} already booked {busy.start_time:%H:%M}-{busy.end_time:%H:%M}")

    def _room_violations(self, client: Client, room: Room, date: date_type, start: time_type, end: time_type, state: Optional[SchedulerState]) -> Iterator[ConstraintViolation]:
        if not room.is_active:
            yield ConstraintViolation("Room", f"{room.name} is inactive", client.id, None, room.id, date, start, end)
            return
        if not room.has_capabilities(client.required_room_capabilities):
            missing = sorted(set(client.required_room_capabilities) - set(room.capabilities))
            yield ConstraintViolation("Room", f"{room.name} lacks {', '.join(missing)}", client.id, None, room.id, date, start, end)
        if state is not None:
            busy = state.room_conflict(room.id, date, start, end)
            if busy:
                yield ConstraintViolation("Overlap", f"{room.name} already booked {busy.start_time:%H:%M}-{busy.end_time:%H:%M}", client.id, None, room.id, date, start, end)

    def _slot_violations(self, client: Client, date: date_type, start: time_type, end: time_type) -> Iterator[ConstraintViolation]:
        for rule in self.rules.availability:
            reason = self._availability_reason(rule.logic, date, start, end)
            if reason:
                yield ConstraintViolation("AvailabilityRule", reason, client.id, None, None, date, start, end, rule.id)

    def _availability_reason(self, logic: AvailabilityLogic, date: date_type, start: time_type, end: time_type) -> Optional[str]:
        if logic.kind == AvailabilityKind.TIME_WINDOW:
            if start < logic.start_time or end > logic.end_time:
                return f"Sessions must fall within {logic.start_time:%H:%M}-{logic.end_time:%H:%M}"

        elif logic.kind == AvailabilityKind.DAY_RESTRICTION:
            if date.weekday() != logic.day_of_week:
                return None
            if logic.start_time is None and logic.end_time is None:
                return f"No sessions on {date:%A}"
            if logic.start_time and start < logic.start_time:
                return f"Sessions on {date:%A} start at {logic.start_time:%H:%M} or later"
            if logic.end_time and end > logic.end_time:
                return f"Sessions on {date:%A} end by {logic.end_time:%H:%M}"

        elif logic.kind == AvailabilityKind.EXCLUDE_DATES:
            if date in logic.dates:
                return f"{date.isoformat()} is excluded"
            if logic.exclude_federal_holidays and date in self._federal_dates(date.year):
                return f"{date.isoformat()} is a federal holiday"

        return None

    def _federal_dates(self, year: int) -> set:
        if year not in self._federal:
            self._federal[year] = {h.date for h in federal_holidays(year)}
        return self._federal[year]
