"""
In-memory party directory.

Stands in for the surrounding services that own organizations, providers,
clients, rooms, rules and availability exceptions. The core reads from it and
writes back only rule review metadata.
"""

import logging
from datetime import datetime
from typing import Dict, List

from models import (
    ApprovalStatus,
    AvailabilityException,
    Client,
    OrganizationContext,
    Provider,
    ReviewIssue,
    ReviewStatus,
    Room,
    Rule,
)
from scheduler.errors import NotFound

logger = logging.getLogger(__name__)


class InMemoryDirectory:

    def __init__(self):
        self.contexts: Dict[str, OrganizationContext] = {}
        self.providers: Dict[str, Provider] = {}
        self.clients: Dict[str, Client] = {}
        self.rooms: Dict[str, Room] = {}
        self.rules: Dict[str, Rule] = {}
        self.exceptions: Dict[str, AvailabilityException] = {}

    # --- Writes (admin side) ---

    def add_organization(self, context: OrganizationContext) -> OrganizationContext:
        self.contexts[context.organization_id] = context
        return context

    def add_provider(self, provider: Provider) -> Provider:
        self.providers[provider.id] = provider
        return provider

    def add_client(self, client: Client) -> Client:
        self.clients[client.id] = client
        return client

    def add_room(self, room: Room) -> Room:
        self.rooms[room.id] = room
        return room

    def add_rule(self, rule: Rule) -> Rule:
        self.rules[rule.id] = rule
        return rule

    def add_exception(self, exception: AvailabilityException) -> AvailabilityException:
        self.exceptions[exception.id] = exception
        return exception

    def set_exception_status(self, exception_id: str, status: ApprovalStatus) -> AvailabilityException:
        if exception_id not in self.exceptions:
            raise NotFound("AvailabilityException", exception_id)
        updated = self.exceptions[exception_id].model_copy(update={"status": status})
        self.exceptions[exception_id] = updated
        return updated

    def update_rule_review(self, rule_id: str, status: ReviewStatus, issues: List[ReviewIssue], reviewed_at: datetime) -> Rule:
        if rule_id not in self.rules:
            raise NotFound("Rule", rule_id)
        updated = self.rules[rule_id].model_copy(update={
            "review_status": status,
            "review_issues": issues,
            "reviewed_at": reviewed_at,
        })
        self.rules[rule_id] = updated
        return updated

    # --- Reads (core side) ---

    def context(self, organization_id: str) -> OrganizationContext:
        if organization_id not in self.contexts:
            raise NotFound("Organization", organization_id)
        return self.contexts[organization_id]

    def providers_for(self, organization_id: str) -> List[Provider]:
        return sorted((p for p in self.providers.values() if p.organization_id == organization_id), key=lambda p: p.id)

    def clients_for(self, organization_id: str) -> List[Client]:
        return sorted((c for c in self.clients.values() if c.organization_id == organization_id), key=lambda c: c.id)

    def rooms_for(self, organization_id: str) -> List[Room]:
        return sorted((r for r in self.rooms.values() if r.organization_id == organization_id), key=lambda r: r.id)

    def rules_for(self, organization_id: str) -> List[Rule]:
        return sorted((r for r in self.rules.values() if r.organization_id == organization_id), key=lambda r: r.id)

    def exceptions_for(self, organization_id: str) -> List[AvailabilityException]:
        provider_ids = {p.id for p in self.providers_for(organization_id)}
        return [e for e in self.exceptions.values() if e.provider_id in provider_ids]

    def client(self, organization_id: str, client_id: str) -> Client:
        client = self.clients.get(client_id)
        if client is None or client.organization_id != organization_id:
            raise NotFound("Client", client_id)
        return client
