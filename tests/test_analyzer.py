from models import Gender, PartyStatus
from scheduler import RuleAnalyzer
from scheduler.analyzer import logic_similarity
from tests.fixtures import ORG, client, provider, room, rule


def analyze(rules, providers=(), clients=(), rooms=(), **kwargs):
    return RuleAnalyzer(**kwargs).analyze(list(rules), list(providers), list(clients), list(rooms))


def conflict_kinds(report):
    return [c.kind for c in report.conflicts]


LOAD_RULE = rule("r_load", "session", {"max_sessions_per_day": 4})


class TestConflicts:
    """Rule pairs that cannot both hold."""

    def test_require_and_prevent_on_the_same_pair(self):
        report = analyze([
            rule("r_req", "specific_pairing", {"client_id": "c1", "provider_id": "p1"}),
            rule("r_prev", "specific_pairing", {"client_id": "c1", "provider_id": "p1", "mode": "prevent"}),
        ], [provider("p1")], [client("c1")])

        [conflict] = report.conflicts
        assert conflict.kind == "pairing_contradiction"
        assert conflict.severity == "high"
        assert conflict.rule_ids == ["r_prev", "r_req"]

    def test_pairing_overriding_a_gender_rule(self):
        report = analyze([
            rule("r_gender", "gender_pairing", {"client_gender": "female", "provider_gender": "female"}),
            rule("r_pin", "specific_pairing", {"client_id": "c_f", "provider_id": "p_m"}),
        ], [provider("p_m", gender=Gender.MALE)], [client("c_f", gender=Gender.FEMALE)])

        assert conflict_kinds(report) == ["pairing_overrides_gender"]
        assert report.conflicts[0].severity == "medium"

    def test_pairing_against_client_needs(self):
        report = analyze(
            [rule("r_pin", "specific_pairing", {"client_id": "c1", "provider_id": "p_m"})],
            [provider("p_m", gender=Gender.MALE, certifications=["RBT"])],
            [client("c1", gender_preference=Gender.FEMALE, required_certifications=["BCBA"])],
        )
        assert conflict_kinds(report) == ["pairing_vs_certification", "pairing_vs_preference"]

    def test_pinned_only_to_inactive_providers(self):
        report = analyze(
            [rule("r_pin", "specific_pairing", {"client_id": "c1", "provider_id": "p1"})],
            [provider("p1", status=PartyStatus.INACTIVE)],
            [client("c1")],
        )
        assert "pinned_to_unavailable" in conflict_kinds(report)

    def test_contradicting_gender_rules(self):
        report = analyze([
            rule("r_f", "gender_pairing", {"client_gender": "female", "provider_gender": "female"}),
            rule("r_m", "gender_pairing", {"provider_gender": "male"}),
        ])
        assert conflict_kinds(report) == ["gender_contradiction"]

    def test_gender_rules_for_different_clients_coexist(self):
        report = analyze([
            rule("r_f", "gender_pairing", {"client_gender": "female", "provider_gender": "female"}),
            rule("r_m", "gender_pairing", {"client_gender": "male", "provider_gender": "male"}),
        ])
        assert report.conflicts == []

    def test_disjoint_time_windows(self):
        report = analyze([
            rule("r_am", "availability", {"kind": "time_window", "start_time": "08:00", "end_time": "12:00"}),
            rule("r_pm", "availability", {"kind": "time_window", "start_time": "13:00", "end_time": "18:00"}),
        ])
        assert conflict_kinds(report) == ["disjoint_windows"]

    def test_inactive_rules_are_ignored(self):
        report = analyze([
            rule("r_f", "gender_pairing", {"provider_gender": "female"}),
            rule("r_m", "gender_pairing", {"provider_gender": "male"}, is_active=False),
        ])
        assert report.conflicts == []
        assert report.summary.total_rules_analyzed == 1


class TestDuplicates:

    def test_identical_logic_is_a_duplicate(self):
        report = analyze([
            rule("r_a", "availability", {"kind": "time_window", "start_time": "08:00", "end_time": "18:00"}, description="Open hours"),
            rule("r_b", "availability", {"kind": "time_window", "start_time": "08:00", "end_time": "18:00"}, description="Clinic hours"),
        ])

        [duplicate] = report.duplicates
        assert duplicate.rule_ids == ["r_a", "r_b"]
        assert duplicate.similarity == 1.0

    def test_list_order_does_not_matter(self):
        a = rule("r_a", "certification", {"provider_must_have": ["BCBA", "RBT"]})
        b = rule("r_b", "certification", {"provider_must_have": ["RBT", "BCBA"]})
        assert logic_similarity(a, b) == 1.0

    def test_partly_similar_rules_fall_below_the_threshold(self):
        a = rule("r_a", "session", {"max_sessions_per_day": 4, "min_gap_minutes": 15})
        b = rule("r_b", "session", {"max_sessions_per_day": 4, "min_gap_minutes": 30})

        assert logic_similarity(a, b) < 0.85
        assert analyze([a, b]).duplicates == []
        assert len(analyze([a, b], threshold=0.5).duplicates) == 1


class TestEnhancements:
    """Coverage gaps in the current parties."""

    def test_unheld_certification(self):
        report = analyze([LOAD_RULE], [provider("p1", certifications=["RBT"])], [client("c1", required_certifications=["BCBA"])])

        [enhancement] = report.enhancements
        assert enhancement.priority == "high"
        assert "BCBA" in enhancement.suggestion

    def test_unsatisfiable_certification_rule(self):
        report = analyze(
            [LOAD_RULE, rule("r_cert", "certification", {"provider_must_have": ["QBA"]})],
            [provider("p1", certifications=["RBT"])],
        )
        assert [e.related_rule_ids for e in report.enhancements] == [["r_cert"]]

    def test_room_capability_and_gender_preference(self):
        report = analyze(
            [LOAD_RULE],
            [provider("p1", gender=Gender.FEMALE)],
            [client("c1", required_room_capabilities=["sensory"], gender_preference=Gender.MALE)],
            [room("r1", capabilities=["quiet"])],
        )
        suggestions = [e.suggestion for e in report.enhancements]
        assert "Add an active male provider" in suggestions
        assert "Tag an active room with 'sensory'" in suggestions

    def test_pairing_with_unknown_party(self):
        report = analyze(
            [LOAD_RULE, rule("r_pin", "specific_pairing", {"client_id": "c1", "provider_id": "ghost"})],
            [provider("p1")],
            [client("c1")],
        )
        [enhancement] = report.enhancements
        assert enhancement.priority == "medium"
        assert "ghost" in enhancement.rationale

    def test_missing_session_rules(self):
        report = analyze([])
        assert [e.priority for e in report.enhancements] == ["low"]


class TestReport:

    def test_summary_counts(self):
        report = analyze([
            rule("r_am", "availability", {"kind": "time_window", "start_time": "08:00", "end_time": "12:00"}),
            rule("r_pm", "availability", {"kind": "time_window", "start_time": "13:00", "end_time": "18:00"}),
        ])

        summary = report.summary
        assert (summary.total_rules_analyzed, summary.conflicts_found, summary.duplicates_found, summary.enhancements_suggested) == (2, 1, 0, 1)

    def test_analysis_is_deterministic(self):
        rules = [
            rule("r_gender", "gender_pairing", {"provider_gender": "female"}),
            rule("r_pin", "specific_pairing", {"client_id": "c1", "provider_id": "p_m"}),
            rule("r_prev", "specific_pairing", {"client_id": "c1", "provider_id": "p_m", "mode": "prevent"}),
            rule("r_am", "availability", {"kind": "time_window", "start_time": "08:00", "end_time": "12:00"}),
            rule("r_pm", "availability", {"kind": "time_window", "start_time": "13:00", "end_time": "18:00"}),
        ]
        providers = [provider("p_m", gender=Gender.MALE)]
        clients = [client("c1", required_certifications=["BCBA"])]

        first = analyze(rules, providers, clients)
        second = analyze(list(reversed(rules)), providers, clients)

        assert first.model_dump() == second.model_dump()
        assert [c.severity for c in first.conflicts] == sorted((c.severity for c in first.conflicts), key=["high", "medium", "low"].index)

    def test_service_analyzes_the_organization(self, service, directory):
        directory.add_rule(rule("r_f", "gender_pairing", {"provider_gender": "female"}))
        directory.add_rule(rule("r_m", "gender_pairing", {"provider_gender": "male"}))

        report = service.analyze_rules(ORG)
        assert conflict_kinds(report) == ["gender_contradiction"]
