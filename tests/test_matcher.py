from datetime import time, timedelta

from models import Session, TimeWindow
from scheduler import (
    AvailabilityResolver,
    ConstraintChecker,
    ConstraintMatcher,
    RuleSet,
    SchedulerState,
    SlotScorer,
)
from tests.fixtures import MONDAY, client, context, hours, provider, room, rule


def matcher(providers, rooms=(), rules=()):
    ctx = context()
    rule_set = RuleSet(list(rules))
    check = ConstraintChecker(AvailabilityResolver(ctx), rule_set, list(providers), list(rooms))
    return ConstraintMatcher(ctx, check, SlotScorer(rule_set.soft), list(providers), list(rooms))


def booked(client_id, provider_id, start, end, room_id=None):
    return Session(client_id=client_id, provider_id=provider_id, room_id=room_id, date=MONDAY,
                   start_time=time(start), end_time=time(end))


class TestCandidateStarts:

    def test_steps_through_business_hours(self):
        starts = matcher([]).candidate_starts(MONDAY, 60)

        assert starts[0] == time(8)
        assert starts[-1] == time(17)
        assert len(starts) == 19

    def test_closed_day_has_no_starts(self):
        assert matcher([]).candidate_starts(MONDAY + timedelta(days=5), 60) == []


class TestRanking:
    """Soft scoring and deterministic tie-breaking."""

    def test_ties_break_on_provider_id_then_time(self):
        best = matcher([provider("p_b"), provider("p_a")]).best(client("c1"), [MONDAY], 60, SchedulerState())

        assert (best.provider_id, best.start_time) == ("p_a", time(9))

    def test_preferred_window_beats_earlier_start(self):
        c = client("c1", preferred_windows=[TimeWindow(start_time=time(14), end_time=time(16))])
        best = matcher([provider("p1")]).best(c, [MONDAY], 60, SchedulerState())

        assert best.start_time == time(14)
        assert best.score.preferred_window

    def test_lower_load_wins(self):
        state = SchedulerState()
        state.add_blocker(booked("c_other", "p_a", 13, 14))

        best = matcher([provider("p_a"), provider("p_b")]).best(client("c1"), [MONDAY], 60, state)
        assert best.provider_id == "p_b"

    def test_session_rule_marks_shape_start_times(self):
        rules = [rule("r_marks", "session", {"start_minute_marks": [30]})]
        best = matcher([provider("p1")], rules=rules).best(client("c1"), [MONDAY], 60, SchedulerState())

        assert best.start_time == time(9, 30)
        assert best.score.satisfied_rules == 1

    def test_min_gap_rule_spaces_provider_sessions(self):
        rules = [rule("r_gap", "session", {"min_gap_minutes": 30})]
        state = SchedulerState()
        state.add_session(booked("c_other", "p1", 9, 10))

        best = matcher([provider("p1")], rules=rules).best(client("c1"), [MONDAY], 60, state)
        assert best.start_time == time(10, 30)

    def test_hard_filters_run_before_scoring(self):
        c = client("c1", required_certifications=["BCBA"])
        found = matcher([provider("p_rbt", certifications=["RBT"]), provider("p_bcba", certifications=["BCBA"])]).match(
            c, MONDAY, 60, SchedulerState()
        )

        assert found
        assert {cand.provider_id for cand in found} == {"p_bcba"}

    def test_no_candidates_records_failures(self):
        state = SchedulerState()
        c = client("c1", required_certifications=["BCBA"])

        assert matcher([provider("p1")]).best(c, [MONDAY], 60, state) is None
        report = state.get_failure_report()
        assert report[0]["primary_failure_cause"] == "Certification"

    def test_client_already_busy_is_skipped(self):
        state = SchedulerState()
        state.add_blocker(booked("c1", "p_other", 8, 17))

        assert matcher([provider("p1")]).match(client("c1"), MONDAY, 60, state) == []


class TestRoomSelection:

    def test_capability_client_gets_a_capable_room(self):
        rooms = [room("r_quiet", capabilities=["quiet"]), room("r_sensory", capabilities=["sensory"])]
        c = client("c1", required_room_capabilities=["sensory"])

        found = matcher([provider("p1")], rooms).match(c, MONDAY, 60, SchedulerState())
        assert {cand.room_id for cand in found} == {"r_sensory"}

    def test_busy_capable_room_leaves_no_candidate(self):
        state = SchedulerState()
        state.add_blocker(booked("c_other", "p_other", 8, 18, room_id="r_sensory"))
        c = client("c1", required_room_capabilities=["sensory"])

        assert matcher([provider("p1")], [room("r_sensory", capabilities=["sensory"])]).match(c, MONDAY, 60, state) == []

    def test_preferred_room_is_used_when_free(self):
        c = client("c1", preferred_room_id="r_quiet")
        best = matcher([provider("p1")], [room("r_quiet")]).best(c, [MONDAY], 60, SchedulerState())

        assert best.room_id == "r_quiet"
        assert best.score.preferred_room

    def test_no_room_needed_otherwise(self):
        best = matcher([provider("p1")], [room("r_quiet")]).best(client("c1"), [MONDAY], 60, SchedulerState())
        assert best.room_id is None
