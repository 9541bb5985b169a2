from datetime import time

import pytest
from sqlalchemy import select

from models import BookingSource, Gender, PartyStatus, ReviewStatus, ScheduleStatus, Session
from scheduler import (
    AvailabilityResolver,
    ConstraintChecker,
    RuleReviewRequired,
    RuleSet,
    ScheduleGenerator,
)
from scheduler.holds import build_checker
from store import ScheduleRecord
from tests.fixtures import (
    MONDAY,
    ORG,
    TUESDAY,
    WEDNESDAY,
    client,
    context,
    hours,
    no_overlaps,
    provider,
    room,
    rule,
)


def generate(providers, clients, rooms=(), rules=(), **kwargs):
    return ScheduleGenerator(context(), MONDAY, list(providers), list(clients), list(rooms), list(rules), **kwargs).run()


def slots(sessions):
    return [(s.client_id, s.provider_id, s.date, s.start_time) for s in sessions]


class TestScheduleGenerator:
    """Weekly quota filling."""

    def test_certified_provider_on_separate_days(self):
        s1 = provider("s1", certifications=["BCBA"], availability=hours((0, 9, 10), (2, 9, 10)))
        s2 = provider("s2")
        patient = client("p", sessions_per_week=2, required_certifications=["BCBA"])

        outcome = generate([s1, s2], [patient])

        assert slots(outcome.sessions) == [("p", "s1", MONDAY, time(9)), ("p", "s1", WEDNESDAY, time(9))]
        assert outcome.warnings == []

    def test_shortfall_becomes_a_warning(self):
        s1 = provider("s1", certifications=["BCBA"], availability=hours((0, 9, 10)))
        patient = client("p", sessions_per_week=2, required_certifications=["BCBA"])

        outcome = generate([s1], [patient])

        assert slots(outcome.sessions) == [("p", "s1", MONDAY, time(9))]
        [warning] = outcome.warnings
        assert (warning.client_id, warning.required, warning.scheduled, warning.shortfall) == ("p", 2, 1, 1)

        assert warning.model_dump(mode="json")["shortfall"] == 1
        assert outcome.state.get_statistics()["total_sessions"] == 1
        [failure] = outcome.state.get_failure_report()
        assert failure["client_id"] == "p"
        assert failure["violation_breakdown"]["Exhaustion"] == 1

    def test_earlier_clients_are_served_first(self):
        s1 = provider("s1", availability=hours((0, 9, 10)))
        late = client("c_late", created_offset=10)
        early = client("c_early", created_offset=0)

        outcome = generate([s1], [late, early])

        assert [s.client_id for s in outcome.sessions] == ["c_early"]
        assert [w.client_id for w in outcome.warnings] == ["c_late"]

    def test_inactive_and_zero_quota_clients_are_skipped(self):
        outcome = generate([provider("s1")], [client("c_off", status=PartyStatus.INACTIVE), client("c_zero", sessions_per_week=0)])

        assert outcome.sessions == []
        assert outcome.warnings == []

    def test_doubles_up_on_a_day_before_falling_short(self):
        s1 = provider("s1", availability=hours((0, 9, 12)))
        outcome = generate([s1], [client("c1", sessions_per_week=2)])

        assert slots(outcome.sessions) == [("c1", "s1", MONDAY, time(9)), ("c1", "s1", MONDAY, time(10))]
        assert outcome.warnings == []

    def test_uses_client_session_length(self):
        outcome = generate([provider("s1")], [client("c1", session_minutes=90)])
        [session] = outcome.sessions
        assert (session.start_time, session.end_time) == (time(9), time(10, 30))

    def test_blocking_sessions_are_routed_around(self):
        walk_in = Session(client_id="c_walk", provider_id="s1", date=MONDAY, start_time=time(9), end_time=time(10),
                          booked_via=BookingSource.SELF_SERVICE)
        s1 = provider("s1", availability=hours((0, 9, 11)))

        outcome = generate([s1], [client("c1")], blocking_sessions=[walk_in])
        assert slots(outcome.sessions) == [("c1", "s1", MONDAY, time(10))]

    def test_output_is_valid_and_reproducible(self):
        providers = [
            provider("s1", certifications=["BCBA"], gender=Gender.FEMALE),
            provider("s2", certifications=["RBT"], gender=Gender.MALE, availability=hours((0, 8, 12), (1, 8, 12), (3, 13, 18))),
            provider("s3", certifications=["BCBA", "RBT"], gender=Gender.FEMALE, availability=hours((1, 9, 17), (2, 9, 17))),
        ]
        rooms = [room("r_sensory", capabilities=["sensory"]), room("r_quiet", capabilities=["quiet"])]
        clients = [
            client("c1", sessions_per_week=3, required_certifications=["BCBA"]),
            client("c2", sessions_per_week=4, gender=Gender.FEMALE, required_room_capabilities=["sensory"]),
            client("c3", sessions_per_week=2, gender_preference=Gender.MALE),
            client("c4", sessions_per_week=5, required_room_capabilities=["sensory"], created_offset=5),
        ]
        rules = [
            rule("r_gender", "gender_pairing", {"client_gender": "female", "provider_gender": "female"}),
            rule("r_load", "session", {"max_sessions_per_day": 3, "min_gap_minutes": 15}),
        ]

        first = generate(providers, clients, rooms, rules)
        second = generate(providers, clients, rooms, rules)

        assert slots(first.sessions) == slots(second.sessions)
        assert no_overlaps(first.sessions, "provider_id")
        assert no_overlaps(first.sessions, "client_id")
        assert no_overlaps(first.sessions, "room_id")

        checker = ConstraintChecker(AvailabilityResolver(context()), RuleSet(rules), providers, rooms)
        by_id = {c.id: c for c in clients}
        for s in first.sessions:
            assert checker.check_assignment(by_id[s.client_id], s.provider_id, s.room_id, s.date, s.start_time, s.end_time) == []

        counts = {c.id: sum(1 for s in first.sessions if s.client_id == c.id) for c in clients}
        for c in clients:
            assert counts[c.id] <= c.sessions_per_week
        assert {w.client_id for w in first.warnings} == {c.id for c in clients if counts[c.id] < c.sessions_per_week}


class TestGenerateService:
    """Generation through the transactional service."""

    @pytest.fixture
    def practice(self, directory):
        directory.add_provider(provider("s1", certifications=["BCBA"], availability=hours((0, 9, 10), (2, 9, 10))))
        directory.add_provider(provider("s2"))
        directory.add_client(client("p", sessions_per_week=2, required_certifications=["BCBA"]))
        return directory

    def test_persists_a_draft_version_one(self, service, practice):
        result = service.generate(ORG, MONDAY, actor="admin")

        assert result.schedule.status == ScheduleStatus.DRAFT
        assert result.schedule.version == 1
        assert result.schedule.created_by == "admin"
        assert all(s.id and s.schedule_id == result.schedule.id for s in result.sessions)
        assert all(s.booked_via == BookingSource.GENERATOR for s in result.sessions)
        assert [s.date for s in service.get_sessions(result.schedule.id)] == [MONDAY, WEDNESDAY]

        [entry] = service.audit_log(ORG, action="generate")
        assert entry["entity_id"] == result.schedule.id
        assert entry["changes"]["sessions"] == 2

    def test_week_start_is_normalized_to_monday(self, service, practice):
        assert service.generate(ORG, WEDNESDAY).schedule.week_start == MONDAY

    def test_rule_needing_review_blocks_generation(self, service, practice, store):
        practice.add_rule(rule(
            "r_flagged", "gender_pairing", {"provider_gender": "female"},
            review_status=ReviewStatus.NEEDS_REVIEW,
        ))

        with pytest.raises(RuleReviewRequired) as exc_info:
            service.generate(ORG, MONDAY, actor="admin")

        assert exc_info.value.rule_ids == ["r_flagged"]
        with store.transaction() as db:
            assert db.execute(select(ScheduleRecord)).scalars().all() == []
        [entry] = service.audit_log(ORG, action="rule_review_block")
        assert entry["changes"]["rule_ids"] == ["r_flagged"]

    def test_inactive_flagged_rule_does_not_block(self, service, practice):
        practice.add_rule(rule(
            "r_flagged", "gender_pairing", {"provider_gender": "female"},
            review_status=ReviewStatus.NEEDS_REVIEW, is_active=False,
        ))
        assert len(service.generate(ORG, MONDAY).sessions) == 2

    def test_live_hold_blocks_its_slot(self, service, practice):
        service.acquire_hold(ORG, MONDAY, time(9), time(10), provider_id="s1")

        result = service.generate(ORG, MONDAY)

        assert [(s.date, s.start_time) for s in result.sessions] == [(WEDNESDAY, time(9))]
        assert result.warnings[0].shortfall == 1

        [entry] = service.audit_log(ORG, action="generate")
        assert entry["changes"]["warnings"][0]["shortfall"] == 1

    def test_self_service_booking_is_respected(self, service, practice, directory):
        directory.add_client(client("c_walk", sessions_per_week=0))
        hold = service.acquire_hold(ORG, MONDAY, time(9), time(10), provider_id="s1", client_id="c_walk")
        service.convert_hold(hold.id)

        result = service.generate(ORG, MONDAY)

        s1_sessions = [s for s in result.sessions if s.provider_id == "s1"]
        assert [(s.client_id, s.date) for s in s1_sessions] == [("p", WEDNESDAY)]

    def test_every_generated_session_passes_the_checker(self, service, practice, directory):
        directory.add_client(client("c2", sessions_per_week=3, gender=Gender.FEMALE))
        result = service.generate(ORG, TUESDAY)

        checker = build_checker(directory, ORG)
        for s in result.sessions:
            assert checker.check_assignment(directory.clients[s.client_id], s.provider_id, s.room_id, s.date, s.start_time, s.end_time) == []
