"""
Rule Review Gate.

Flags rules whose free-text description cannot be tied to exactly one
provider or client, or whose logic points at a party that does not exist.
A flagged rule gets status needs_review and blocks schedule generation
until an admin binds the mention or edits the rule.
"""

import re
import logging
from typing import Dict, List, Optional, Set

from models import (
    Client,
    Provider,
    ReviewCandidate,
    ReviewIssue,
    ReviewStatus,
    Rule,
    RuleReviewResult,
    SpecificPairingLogic,
)

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return text.lower().strip()


def _first_name(full_name: str) -> Optional[str]:
    parts = _normalize(full_name).split()
    return parts[0] if parts else None


def _mentions(haystack: str, phrase: str) -> bool:
    return bool(phrase) and re.search(rf"\b{re.escape(phrase)}\b", haystack) is not None


class RuleReviewer:

    def __init__(self, providers: List[Provider], clients: List[Client]):
        self.provider_ids = {p.id for p in providers}
        self.client_ids = {c.id for c in clients}

        # name -> every party carrying it
        self.by_full_name: Dict[str, List[ReviewCandidate]] = {}
        self.by_first_name: Dict[str, List[ReviewCandidate]] = {}
        parties = [("provider", p) for p in providers] + [("client", c) for c in clients]
        for entity_type, party in parties:
            candidate = ReviewCandidate(entity_type=entity_type, id=party.id, name=party.name)
            self.by_full_name.setdefault(_normalize(party.name), []).append(candidate)
            first = _first_name(party.name)
            if first:
                self.by_first_name.setdefault(first, []).append(candidate)

    def review(self, rules: List[Rule]) -> List[RuleReviewResult]:
        results = [self.review_rule(rule) for rule in rules]
        flagged = [r.rule_id for r in results if r.status == ReviewStatus.NEEDS_REVIEW]
        if flagged:
            logger.warning(f"{len(flagged)} rule(s) need review: {', '.join(flagged)}")
        return results

    def review_rule(self, rule: Rule) -> RuleReviewResult:
        haystack = _normalize(rule.description)
        issues: List[ReviewIssue] = []

        bound, resolved_first = self._bindings(rule)

        # Unique full names settle their own first-name token
        for full_name, candidates in self.by_full_name.items():
            if len(candidates) == 1 and _mentions(haystack, full_name):
                first = _first_name(full_name)
                if first:
                    resolved_first.add(first)

        # 1. One full name, several parties
        for full_name, candidates in sorted(self.by_full_name.items()):
            if len(candidates) > 1 and full_name not in bound and _mentions(haystack, full_name):
                issues.append(ReviewIssue(
                    type="duplicate_full_name",
                    mention=full_name,
                    candidates=candidates,
                    detail=f'The name "{full_name}" matches multiple entities.',
                ))

        # 2. Bare first names shared by several parties
        tokens = sorted(set(re.split(r"[^a-z0-9]+", haystack)) - {""})
        for token in tokens:
            if token in resolved_first or token in bound:
                continue
            candidates = self.by_first_name.get(token, [])
            if len(candidates) > 1:
                issues.append(ReviewIssue(
                    type="ambiguous_entity_reference",
                    mention=token,
                    candidates=candidates,
                    detail=f'The mention "{token}" matches multiple entities.',
                ))

        # 3. Logic pointing at parties that do not exist
        if isinstance(rule.logic, SpecificPairingLogic):
            if rule.logic.client_id not in self.client_ids:
                issues.append(ReviewIssue(
                    type="unknown_entity_reference",
                    mention=rule.logic.client_id,
                    detail=f"Client {rule.logic.client_id} does not exist.",
                ))
            if rule.logic.provider_id not in self.provider_ids:
                issues.append(ReviewIssue(
                    type="unknown_entity_reference",
                    mention=rule.logic.provider_id,
                    detail=f"Provider {rule.logic.provider_id} does not exist.",
                ))

        status = ReviewStatus.NEEDS_REVIEW if issues else ReviewStatus.OK
        return RuleReviewResult(rule_id=rule.id, status=status, issues=issues)

    def _bindings(self, rule: Rule):
        """Mentions an admin already resolved, ignoring bindings to missing parties."""
        bound: Set[str] = set()
        resolved_first: Set[str] = set()
        for binding in rule.entity_bindings:
            known = self.provider_ids if binding.entity_type == "provider" else self.client_ids
            if binding.entity_id not in known:
                continue
            mention = _normalize(binding.mention)
            bound.add(mention)
            first = _first_name(mention)
            if first:
                resolved_first.add(first)
        return bound, resolved_first
