from datetime import date, datetime, time, timedelta

from models import ApprovalStatus, AvailabilityException, Hold, Holiday, PartyStatus, Session, TimeWindow
from scheduler import AvailabilityResolver, SchedulerState, SlotFinder, federal_holidays, merge_windows
from tests.fixtures import MONDAY, ORG, TUESDAY, context, hours, provider


def window(start: int, end: int) -> TimeWindow:
    return TimeWindow(start_time=time(start), end_time=time(end))


def exception(id: str, day: date, available: bool, status=ApprovalStatus.APPROVED, start=None, end=None, provider_id="p1"):
    return AvailabilityException(
        id=id, provider_id=provider_id, date=day, available=available, status=status,
        start_time=time(start) if start is not None else None,
        end_time=time(end) if end is not None else None,
    )


class TestMergeWindows:
    """Window normalization."""

    def test_overlapping_and_adjacent_windows_merge(self):
        merged = merge_windows([window(13, 15), window(9, 11), window(11, 12), window(10, 11)])
        assert merged == [window(9, 12), window(13, 15)]

    def test_empty_input(self):
        assert merge_windows([]) == []


class TestAvailabilityResolver:
    """Recurring hours combined with exceptions and holidays."""

    def test_recurring_hours_for_worked_day(self):
        resolver = AvailabilityResolver(context())
        p = provider("p1", availability=hours((0, 9, 12), (0, 13, 17)))

        assert resolver.windows_for(p, MONDAY) == [window(9, 12), window(13, 17)]
        assert resolver.windows_for(p, TUESDAY) == []

    def test_approved_time_off_closes_the_day(self):
        resolver = AvailabilityResolver(context(), [exception("e1", MONDAY, available=False)])
        assert resolver.windows_for(provider("p1"), MONDAY) == []

    def test_pending_and_rejected_exceptions_are_ignored(self):
        resolver = AvailabilityResolver(context(), [
            exception("e1", MONDAY, available=False, status=ApprovalStatus.PENDING),
            exception("e2", MONDAY, available=False, status=ApprovalStatus.REJECTED),
        ])
        assert resolver.windows_for(provider("p1"), MONDAY) == [window(9, 17)]

    def test_override_window_replaces_recurring_hours(self):
        resolver = AvailabilityResolver(context(), [exception("e1", MONDAY, available=True, start=14, end=19)])
        assert resolver.windows_for(provider("p1"), MONDAY) == [window(14, 19)]

    def test_time_off_beats_an_override_on_the_same_day(self):
        resolver = AvailabilityResolver(context(), [
            exception("e1", MONDAY, available=True, start=14, end=19),
            exception("e2", MONDAY, available=False),
        ])
        assert resolver.windows_for(provider("p1"), MONDAY) == []

    def test_holiday_closes_the_day(self):
        ctx = context(holidays=[Holiday(name="Founders Day", date=MONDAY)])
        assert AvailabilityResolver(ctx).windows_for(provider("p1"), MONDAY) == []

    def test_recurring_holiday_applies_every_year(self):
        ctx = context(holidays=[Holiday(name="Founders Day", date=date(2020, 3, 3), recurring=True)])
        assert AvailabilityResolver(ctx).windows_for(provider("p1"), MONDAY) == []

    def test_approved_exception_reopens_a_holiday(self):
        ctx = context(holidays=[Holiday(name="Founders Day", date=MONDAY)])
        resolver = AvailabilityResolver(ctx, [exception("e1", MONDAY, available=True)])
        assert resolver.windows_for(provider("p1"), MONDAY) == [window(9, 17)]

    def test_inactive_provider_has_no_windows(self):
        p = provider("p1", status=PartyStatus.INACTIVE)
        assert AvailabilityResolver(context()).windows_for(p, MONDAY) == []

    def test_exceptions_are_scoped_to_their_provider(self):
        resolver = AvailabilityResolver(context(), [exception("e1", MONDAY, available=False, provider_id="p2")])
        assert resolver.windows_for(provider("p1"), MONDAY) == [window(9, 17)]

    def test_resolve_yields_every_date_in_range(self):
        resolver = AvailabilityResolver(context())
        days = list(resolver.resolve(provider("p1"), MONDAY, MONDAY + timedelta(days=6)))

        assert [d for d, _ in days] == [MONDAY + timedelta(days=i) for i in range(7)]
        assert [bool(w) for _, w in days] == [True] * 5 + [False] * 2

    def test_is_available_requires_full_containment(self):
        resolver = AvailabilityResolver(context())
        p = provider("p1")

        assert resolver.is_available(p, MONDAY, time(16), time(17))
        assert not resolver.is_available(p, MONDAY, time(16, 30), time(17, 30))


class TestFederalHolidays:

    def test_floating_holidays_2025(self):
        dates = {h.name: h.date for h in federal_holidays(2025)}

        assert len(dates) == 11
        assert dates["Martin Luther King Jr. Day"] == date(2025, 1, 20)
        assert dates["Presidents' Day"] == date(2025, 2, 17)
        assert dates["Memorial Day"] == date(2025, 5, 26)
        assert dates["Labor Day"] == date(2025, 9, 1)
        assert dates["Columbus Day"] == date(2025, 10, 13)
        assert dates["Thanksgiving Day"] == date(2025, 11, 27)

    def test_fixed_holidays(self):
        dates = {h.date for h in federal_holidays(2026)}
        assert {date(2026, 1, 1), date(2026, 6, 19), date(2026, 7, 4), date(2026, 11, 11), date(2026, 12, 25)} <= dates


class TestSlotFinder:
    """Free starts left once sessions and holds are subtracted."""

    def finder(self, state=None):
        return SlotFinder(AvailabilityResolver(context()), state or SchedulerState())

    def test_steps_through_the_window_by_slot_interval(self):
        slots = self.finder().find([provider("p1", availability=hours((0, 9, 11)))], MONDAY, MONDAY, 60)
        assert [(s.start_time, s.end_time) for s in slots] == [(time(9), time(10)), (time(9, 30), time(10, 30)), (time(10), time(11))]

    def test_holds_and_sessions_are_subtracted(self):
        state = SchedulerState()
        state.add_hold(Hold(id="h1", organization_id=ORG, provider_id="p1", date=MONDAY,
                            start_time=time(10), end_time=time(11), expires_at=datetime(2025, 3, 3, 10)))
        state.add_blocker(Session(client_id="c1", provider_id="p1", date=MONDAY, start_time=time(12), end_time=time(13)))

        slots = self.finder(state).find([provider("p1", availability=hours((0, 9, 14)))], MONDAY, MONDAY, 60)

        assert [s.start_time for s in slots] == [time(9), time(11), time(13)]

    def test_client_and_room_filters(self):
        state = SchedulerState()
        state.add_blocker(Session(client_id="c1", provider_id="p2", room_id="r1", date=MONDAY, start_time=time(9), end_time=time(10)))
        p1 = provider("p1", availability=hours((0, 9, 10)))

        assert self.finder(state).find([p1], MONDAY, MONDAY, 60) != []
        assert self.finder(state).find([p1], MONDAY, MONDAY, 60, client_id="c1") == []
        assert self.finder(state).find([p1], MONDAY, MONDAY, 60, room_id="r1") == []

    def test_ordered_by_date_time_then_provider_name(self):
        providers = [provider("p_b", name="Blake", availability=hours((0, 9, 10), (1, 9, 10))), provider("p_a", name="Avery", availability=hours((1, 9, 10)))]

        slots = self.finder().find(providers, MONDAY, TUESDAY, 60)

        assert [(s.date, s.provider_name) for s in slots] == [(MONDAY, "Blake"), (TUESDAY, "Avery"), (TUESDAY, "Blake")]

    def test_closed_days_and_limit(self):
        saturday = MONDAY + timedelta(days=5)
        always = provider("p1", availability=hours(*[(d, 9, 17) for d in range(7)]))

        assert self.finder().find([always], saturday, saturday, 60) == []
        assert len(self.finder().find([always], MONDAY, MONDAY, 60, limit=3)) == 3
