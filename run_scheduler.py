"""
Main Execution Script for the Practice Scheduler.

Seeds a small practice, then walks the full weekly cycle:
review rules -> analyze -> generate -> publish -> time-off arrives ->
draft copy with repairs -> self-service booking through a hold.
"""

import logging
from datetime import date, time, timedelta

from config import LOG_LEVEL
from models import (
    ApprovalStatus,
    AvailabilityBlock,
    AvailabilityException,
    Client,
    Gender,
    OrganizationContext,
    Provider,
    Room,
    Rule,
    TimeWindow,
)
from scheduler import HoldConflict, SchedulingError, federal_holidays, monday_of
from scheduler.service import SchedulingService
from store import InMemoryDirectory, Store

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("Main")

ORG = "org_demo"


def weekdays(start: time, end: time, days=range(5)):
    return [AvailabilityBlock(day_of_week=d, start_time=start, end_time=end) for d in days]


def seed_directory(week_start: date) -> InMemoryDirectory:
    directory = InMemoryDirectory()
    directory.add_organization(OrganizationContext(
        organization_id=ORG,
        holidays=federal_holidays(week_start.year),
    ))

    # --- Supply ---
    directory.add_provider(Provider(id="prov_amy", organization_id=ORG, name="Amy Smith", gender=Gender.FEMALE,
                                    certifications=["BCBA", "RBT"], availability=weekdays(time(9), time(17))))
    directory.add_provider(Provider(id="prov_ben", organization_id=ORG, name="Ben Carter", gender=Gender.MALE,
                                    certifications=["RBT"], availability=weekdays(time(8), time(14))))
    directory.add_provider(Provider(id="prov_cara", organization_id=ORG, name="Cara Lopez", gender=Gender.FEMALE,
                                    certifications=["BCBA"], availability=weekdays(time(12), time(18), days=[0, 2, 4])))
    directory.add_room(Room(id="room_sensory", organization_id=ORG, name="Sensory Room", capabilities=["sensory"]))
    directory.add_room(Room(id="room_quiet", organization_id=ORG, name="Quiet Room", capabilities=["quiet"]))

    # --- Demand ---
    directory.add_client(Client(id="cli_pat", organization_id=ORG, name="Pat Jordan", gender=Gender.MALE,
                                sessions_per_week=2, required_certifications=["BCBA"],
                                preferred_windows=[TimeWindow(start_time=time(9), end_time=time(12))]))
    directory.add_client(Client(id="cli_rae", organization_id=ORG, name="Rae Kim", gender=Gender.FEMALE,
                                sessions_per_week=3, required_room_capabilities=["sensory"]))
    directory.add_client(Client(id="cli_sam", organization_id=ORG, name="Sam Ortiz", gender=Gender.MALE,
                                sessions_per_week=2, gender_preference=Gender.MALE, session_minutes=90))

    # --- Rules ---
    directory.add_rule(Rule(id="rule_gender", organization_id=ORG, category="gender_pairing",
                            description="Female clients are seen by female providers",
                            logic={"client_gender": "female", "provider_gender": "female"}, priority=10))
    directory.add_rule(Rule(id="rule_hours", organization_id=ORG, category="availability",
                            description="Sessions between 08:00 and 18:00",
                            logic={"kind": "time_window", "start_time": "08:00", "end_time": "18:00"}))
    directory.add_rule(Rule(id="rule_friday", organization_id=ORG, category="availability",
                            description="Early close on Fridays",
                            logic={"kind": "day_restriction", "day_of_week": 4, "end_time": "16:00"}))
    directory.add_rule(Rule(id="rule_load", organization_id=ORG, category="session",
                            description="At most 4 sessions per provider per day, 30 minutes apart",
                            logic={"max_sessions_per_day": 4, "min_gap_minutes": 30}))
    return directory


def print_sessions(title, sessions, directory):
    print(f"\n{title}")
    for s in sessions:
        provider = directory.providers[s.provider_id].name
        client = directory.clients[s.client_id].name
        room = directory.rooms[s.room_id].name if s.room_id else "-"
        print(f"  {s.date:%a %d %b} {s.start_time:%H:%M}-{s.end_time:%H:%M}  {client:<12} with {provider:<12} room: {room}")


def main():
    logger.info("🚀 Starting Practice Scheduler demo...")
    week_start = monday_of(date.today()) + timedelta(weeks=1)

    store = Store()
    store.create_all()
    directory = seed_directory(week_start)
    service = SchedulingService(store, directory)

    # --- PHASE 1: RULE QUALITY ---
    reviews = service.review_rules(ORG)
    flagged = [r for r in reviews if r.issues]
    logger.info(f"🔎 Reviewed {len(reviews)} rules, {len(flagged)} need attention")

    report = service.analyze_rules(ORG)
    print("\n" + "=" * 50)
    print("📋 RULE ANALYSIS")
    print("=" * 50)
    print(report.summary.model_dump())
    for conflict in report.conflicts:
        print(f"⚠️  [{conflict.severity}] {conflict.description}")
    for enhancement in report.enhancements:
        print(f"💡 [{enhancement.priority}] {enhancement.suggestion}")

    # --- PHASE 2: GENERATION ---
    generated = service.generate(ORG, week_start, actor="admin")
    print_sessions(f"📅 Draft v{generated.schedule.version} for week of {week_start}", generated.sessions, directory)
    for warning in generated.warnings:
        print(f"❌ {warning.message}")

    service.publish(generated.schedule.id, actor="admin")

    # --- PHASE 3: CHANGE & RECONCILE ---
    first = generated.sessions[0]
    directory.add_exception(AvailabilityException(
        id="exc_demo", provider_id=first.provider_id, date=first.date,
        available=False, status=ApprovalStatus.APPROVED, reason="Sick day",
    ))
    copy = service.create_draft_copy(generated.schedule.id, actor="admin")
    print_sessions(f"📝 Draft v{copy.draft.version} after time-off", copy.sessions, directory)
    for moved in copy.rescheduled:
        print(f"🔁 Moved {moved.original.date} {moved.original.start_time:%H:%M} -> {moved.session.date} {moved.session.start_time:%H:%M}: {moved.reason}")
    for dropped in copy.removed:
        print(f"🗑️  Removed {dropped.session.date} {dropped.session.start_time:%H:%M}: {dropped.reason}")

    # --- PHASE 4: SELF-SERVICE BOOKING ---
    thursday = week_start + timedelta(days=3)
    open_slots = service.available_slots(ORG, thursday, thursday, provider_id="prov_amy", client_id="cli_pat")
    logger.info(f"🔎 {len(open_slots)} open slot(s) with prov_amy on {thursday}")
    slot = (thursday, time(16), time(17))
    try:
        hold = service.acquire_hold(ORG, *slot, provider_id="prov_amy", client_id="cli_pat")
        try:
            service.acquire_hold(ORG, *slot, provider_id="prov_amy")
        except HoldConflict as exc:
            offers = ", ".join(f"{a.date} {a.start_time:%H:%M}" for a in exc.alternatives) or "none"
            logger.info(f"🔒 Second hold refused as expected: {exc} (alternatives: {offers})")
        hold = service.extend_hold(hold.id)
        logger.info(f"⏳ Hold extended until {hold.expires_at:%H:%M:%S}")
        booked = service.convert_hold(hold.id, actor="portal")
        logger.info(f"✅ Self-service session {booked.id} booked for {booked.date} {booked.start_time:%H:%M}")
    except SchedulingError as exc:
        logger.error(f"❌ Booking failed: {exc.to_dict()}")

    print("\n✅ Demo Complete.")


if __name__ == "__main__":
    main()
