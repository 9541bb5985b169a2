"""
Rule Analysis.

Inspects an organization's active rule set, independent of any generation run,
and reports:
- conflicts: rule pairs whose hard constraints cannot both hold for some client
- duplicates: same-category rules with near-identical logic
- enhancements: coverage gaps (e.g. a certification nobody holds)

The analysis never blocks generation (only review status does) and is
deterministic: findings are sorted, so an unchanged rule set always yields
an identical report.
"""

import logging
from itertools import combinations
from typing import Any, Dict, List, Optional
from collections import defaultdict

from config import DUPLICATE_SIMILARITY_THRESHOLD
from models import (
    AnalysisSummary,
    AvailabilityKind,
    Client,
    PairingMode,
    Provider,
    Room,
    Rule,
    RuleAnalysisReport,
    RuleCategory,
    RuleConflict,
    RuleDuplicate,
    RuleEnhancement,
)

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _normalize(value: Any) -> Any:
    if isinstance(value, list):
        return sorted(_normalize(v) for v in value)
    return value


def logic_similarity(a: Rule, b: Rule) -> float:
    """Share of logic fields with equal values, over the fields set on either rule."""
    left = a.logic.model_dump(mode="json", exclude={"category"})
    right = b.logic.model_dump(mode="json", exclude={"category"})
    keys = {k for k in left.keys() | right.keys() if left.get(k) is not None or right.get(k) is not None}
    if not keys:
        return 1.0
    equal = sum(1 for k in keys if _normalize(left.get(k)) == _normalize(right.get(k)))
    return equal / len(keys)


class RuleAnalyzer:

    def __init__(self, threshold: float = DUPLICATE_SIMILARITY_THRESHOLD):
        self.threshold = threshold

    def analyze(
        self,
        rules: List[Rule],
        providers: List[Provider],
        clients: List[Client],
        rooms: List[Room]
    ) -> RuleAnalysisReport:
        active = sorted((r for r in rules if r.is_active), key=lambda r: r.id)
        self.providers = {p.id: p for p in providers}
        self.clients = {c.id: c for c in clients}
        self.active_providers = [p for p in providers if p.is_active]
        self.active_rooms = [r for r in rooms if r.is_active]

        by_category: Dict[RuleCategory, List[Rule]] = defaultdict(list)
        for rule in active:
            by_category[rule.category].append(rule)

        conflicts = self._conflicts(by_category)
        duplicates = self._duplicates(by_category)
        enhancements = self._enhancements(by_category, clients)

        conflicts.sort(key=lambda c: (SEVERITY_ORDER[c.severity], c.kind, c.rule_ids))
        duplicates.sort(key=lambda d: d.rule_ids)
        enhancements.sort(key=lambda e: (SEVERITY_ORDER[e.priority], e.suggestion))

        logger.info(f"Analyzed {len(active)} rules: {len(conflicts)} conflicts, {len(duplicates)} duplicates, {len(enhancements)} enhancements")

        return RuleAnalysisReport(
            conflicts=conflicts,
            duplicates=duplicates,
            enhancements=enhancements,
            summary=AnalysisSummary(
                total_rules_analyzed=len(active),
                conflicts_found=len(conflicts),
                duplicates_found=len(duplicates),
                enhancements_suggested=len(enhancements),
            ),
        )

    # --- Conflicts ---

    def _conflicts(self, by_category: Dict[RuleCategory, List[Rule]]) -> List[RuleConflict]:
        found = []
        pairing = by_category[RuleCategory.SPECIFIC_PAIRING]
        requires = [r for r in pairing if r.logic.mode == PairingMode.REQUIRE]
        prevents = [r for r in pairing if r.logic.mode == PairingMode.PREVENT]

        # 1. Require vs prevent on the same pair
        for req in requires:
            for prev in prevents:
                if (req.logic.client_id, req.logic.provider_id) == (prev.logic.client_id, prev.logic.provider_id):
                    found.append(RuleConflict(
                        rule_ids=sorted([req.id, prev.id]),
                        kind="pairing_contradiction",
                        severity="high",
                        description=f"Client {req.logic.client_id} is both required and prevented from seeing provider {req.logic.provider_id}",
                        suggestion="Deactivate one of the two pairing rules",
                    ))

        # 2. Require vs the client's own needs and the gender rules
        for req in requires:
            client = self.clients.get(req.logic.client_id)
            provider = self.providers.get(req.logic.provider_id)
            if client is None or provider is None:
                continue

            for rule in by_category[RuleCategory.GENDER_PAIRING]:
                logic = rule.logic
                if logic.client_gender in (None, client.gender) and provider.gender != logic.provider_gender:
                    found.append(RuleConflict(
                        rule_ids=sorted([req.id, rule.id]),
                        kind="pairing_overrides_gender",
                        severity="medium",
                        description=(
                            f"{provider.name} is required for {client.name} but the gender rule asks for a "
                            f"{logic.provider_gender.value} provider; the pairing wins for this pair only"
                        ),
                        suggestion="Confirm the exception is intended or add a note to the gender rule",
                    ))

            if client.gender_preference and provider.gender != client.gender_preference:
                found.append(RuleConflict(
                    rule_ids=[req.id],
                    kind="pairing_vs_preference",
                    severity="high",
                    description=f"{client.name} prefers a {client.gender_preference.value} provider but is pinned to {provider.name}",
                    suggestion="Update the client's gender preference or pin a different provider",
                ))

            missing = sorted(set(client.required_certifications) - set(provider.certifications))
            if missing:
                found.append(RuleConflict(
                    rule_ids=[req.id],
                    kind="pairing_vs_certification",
                    severity="high",
                    description=f"{client.name} requires {', '.join(missing)} which {provider.name} does not hold",
                    suggestion="Pin a certified provider or update the client's requirements",
                ))

        # 3. Clients pinned only to providers who cannot work
        by_client: Dict[str, List[Rule]] = defaultdict(list)
        for req in requires:
            by_client[req.logic.client_id].append(req)
        for client_id, reqs in sorted(by_client.items()):
            usable = [
                r for r in reqs
                if r.logic.provider_id in self.providers and self.providers[r.logic.provider_id].is_active
            ]
            if not usable:
                found.append(RuleConflict(
                    rule_ids=sorted(r.id for r in reqs),
                    kind="pinned_to_unavailable",
                    severity="medium",
                    description=f"Client {client_id} is pinned only to inactive or unknown providers",
                    suggestion="Pin an active provider or deactivate the pairing rules",
                ))

        # 4. Gender rules that disagree for the same clients
        for a, b in combinations(by_category[RuleCategory.GENDER_PAIRING], 2):
            overlap = a.logic.client_gender is None or b.logic.client_gender is None or a.logic.client_gender == b.logic.client_gender
            if overlap and a.logic.provider_gender != b.logic.provider_gender:
                scope = (a.logic.client_gender or b.logic.client_gender)
                found.append(RuleConflict(
                    rule_ids=sorted([a.id, b.id]),
                    kind="gender_contradiction",
                    severity="high",
                    description=(
                        f"{scope.value + ' clients' if scope else 'All clients'} would need both a "
                        f"{a.logic.provider_gender.value} and a {b.logic.provider_gender.value} provider"
                    ),
                    suggestion="Keep only one of the gender rules",
                ))

        # 5. Time windows that never intersect
        windows = [r for r in by_category[RuleCategory.AVAILABILITY] if r.logic.kind == AvailabilityKind.TIME_WINDOW]
        for a, b in combinations(windows, 2):
            if a.logic.end_time <= b.logic.start_time or b.logic.end_time <= a.logic.start_time:
                found.append(RuleConflict(
                    rule_ids=sorted([a.id, b.id]),
                    kind="disjoint_windows",
                    severity="high",
                    description=(
                        f"Windows {a.logic.start_time:%H:%M}-{a.logic.end_time:%H:%M} and "
                        f"{b.logic.start_time:%H:%M}-{b.logic.end_time:%H:%M} never overlap, so no session can satisfy both"
                    ),
                    suggestion="Merge the windows into one rule",
                ))

        return found

    # --- Duplicates ---

    def _duplicates(self, by_category: Dict[RuleCategory, List[Rule]]) -> List[RuleDuplicate]:
        found = []
        for category in sorted(by_category, key=lambda c: c.value):
            for a, b in combinations(by_category[category], 2):
                similarity = logic_similarity(a, b)
                if similarity >= self.threshold:
                    found.append(RuleDuplicate(
                        rule_ids=sorted([a.id, b.id]),
                        similarity=round(similarity, 2),
                        description=f"Rules '{a.description or a.id}' and '{b.description or b.id}' express the same {category.value} constraint",
                        recommendation="Keep the higher-priority rule and deactivate the other",
                    ))
        return found

    # --- Enhancements ---

    def _enhancements(self, by_category: Dict[RuleCategory, List[Rule]], clients: List[Client]) -> List[RuleEnhancement]:
        found = []
        active_clients = [c for c in clients if c.is_active]
        held = {cert for p in self.active_providers for cert in p.certifications}
        offered = {cap for r in self.active_rooms for cap in r.capabilities}
        genders = {p.gender for p in self.active_providers}

        needed_certs: Dict[str, List[str]] = defaultdict(list)
        needed_caps: Dict[str, List[str]] = defaultdict(list)
        for client in active_clients:
            for cert in client.required_certifications:
                needed_certs[cert].append(client.id)
            for cap in client.required_room_capabilities:
                needed_caps[cap].append(client.id)

        for cert in sorted(set(needed_certs) - held):
            found.append(RuleEnhancement(
                suggestion=f"Add an active provider certified in {cert}",
                rationale=f"{len(needed_certs[cert])} client(s) require {cert} but no active provider holds it",
                priority="high",
            ))

        for rule in by_category[RuleCategory.CERTIFICATION]:
            if not set(rule.logic.provider_must_have) & held:
                found.append(RuleEnhancement(
                    related_rule_ids=[rule.id],
                    suggestion=f"Add an active provider holding one of {', '.join(rule.logic.provider_must_have)}",
                    rationale="The certification rule cannot be satisfied by any active provider",
                    priority="high",
                ))

        for cap in sorted(set(needed_caps) - offered):
            found.append(RuleEnhancement(
                suggestion=f"Tag an active room with '{cap}'",
                rationale=f"{len(needed_caps[cap])} client(s) need a {cap} room but no active room offers it",
                priority="high",
            ))

        unmet = sorted({c.gender_preference.value for c in active_clients if c.gender_preference and c.gender_preference not in genders})
        for gender in unmet:
            found.append(RuleEnhancement(
                suggestion=f"Add an active {gender} provider",
                rationale=f"Some clients prefer a {gender} provider but none is active",
                priority="high",
            ))

        for rule in by_category[RuleCategory.SPECIFIC_PAIRING]:
            problem = self._pairing_reference_problem(rule)
            if problem:
                found.append(RuleEnhancement(
                    related_rule_ids=[rule.id],
                    suggestion="Update or deactivate the pairing rule",
                    rationale=problem,
                    priority="medium",
                ))

        if not by_category[RuleCategory.SESSION]:
            found.append(RuleEnhancement(
                suggestion="Add a session rule (e.g. maximum sessions per day or a minimum gap)",
                rationale="Without session rules every valid slot ranks equally on workload",
                priority="low",
            ))

        return found

    def _pairing_reference_problem(self, rule: Rule) -> Optional[str]:
        client = self.clients.get(rule.logic.client_id)
        provider = self.providers.get(rule.logic.provider_id)
        if client is None:
            return f"References unknown client {rule.logic.client_id}"
        if provider is None:
            return f"References unknown provider {rule.logic.provider_id}"
        if not client.is_active:
            return f"References inactive client {client.name}"
        if not provider.is_active:
            return f"References inactive provider {provider.name}"
        return None
