import pytest

from models import ResourceType, Role, SignupRecord
from service_calendar import generate_slots, parse_period
from slot_assembler import assemble_slots, summarize_slots
from conftest import FOOD_DATES


def record(record_id, service_date, role, name="Ann Smith", display_date="", **extra):
    return SignupRecord(
        record_id=record_id,
        service_date=service_date,
        display_date=display_date,
        name=name,
        email=f"{name.split()[0].lower()}@gmail.com",
        role=role,
        **extra,
    )


def liturgist_template():
    return generate_slots(ResourceType.LITURGISTS, parse_period("Q4-2025"))


def by_date(slots):
    return {slot.date: slot for slot in slots}


@pytest.mark.parametrize("raw_role", ["Liturgist", "liturgist", " LITURGIST "])
def test_role_spellings_fill_the_same_field(raw_role):
    slots = by_date(assemble_slots(liturgist_template(), [record("rec1", "2025-12-07", raw_role)]))

    occupant = slots["2025-12-07"].to_dict()["liturgist"]
    assert occupant == {
        "id": "rec1",
        "name": "Ann Smith",
        "email": "ann@gmail.com",
        "phone": None,
        "preferredContact": "email",
    }


def test_legacy_display_date_matches_slot():
    records = [
        record("rec1", "December 7, 2025", "Liturgist"),
        record("rec2", "garbage", "Backup", name="Bob Jones", display_date="December 14, 2025"),
    ]
    slots = by_date(assemble_slots(liturgist_template(), records))

    assert slots["2025-12-07"].role_slots[Role.LITURGIST].record_id == "rec1"
    assert slots["2025-12-14"].role_slots[Role.BACKUP].name == "Bob Jones"


def test_attendance_goes_to_the_attendance_list():
    records = [
        record("rec1", "2025-12-07", "Attendance", attendance_status="No"),
        record("rec2", "2025-12-07", "attendance", name="Cara Diaz"),
    ]
    slot = by_date(assemble_slots(liturgist_template(), records))["2025-12-07"]

    assert slot.attendance == [
        {"name": "Ann Smith", "status": "no"},
        {"name": "Cara Diaz", "status": "yes"},
    ]
    assert slot.filled_roles() == []


def test_unknown_and_unoffered_roles_are_ignored():
    records = [
        record("rec1", "2025-12-07", "Usher"),
        # Second liturgist only exists on Christmas Eve
        record("rec2", "2025-12-07", "liturgist2"),
        record("rec3", "2025-12-24", "Second Liturgist", name="Dee Park"),
    ]
    slots = by_date(assemble_slots(liturgist_template(), records))

    assert slots["2025-12-07"].filled_roles() == []
    assert "liturgist2" not in slots["2025-12-07"].to_dict()
    assert slots["2025-12-24"].role_slots[Role.SECOND_LITURGIST].name == "Dee Park"


def test_records_outside_the_period_are_dropped():
    slots = assemble_slots(liturgist_template(), [record("rec1", "2026-01-04", "liturgist")])
    assert all(not slot.filled_roles() for slot in slots)
    assert len(slots) == 14


def test_double_booking_keeps_the_last_record():
    records = [
        record("rec1", "2025-12-07", "liturgist"),
        record("rec2", "2025-12-07", "Liturgist", name="Bob Jones"),
    ]
    slot = by_date(assemble_slots(liturgist_template(), records))["2025-12-07"]
    assert slot.role_slots[Role.LITURGIST].record_id == "rec2"


def test_empty_slot_serializes_every_role_as_none():
    slot = assemble_slots(generate_slots(ResourceType.FOOD, parse_period("Q4-2025"), FOOD_DATES), [])[0]
    data = slot.to_dict()

    assert data["id"] == data["date"] == "2025-12-06"
    assert data["displayDate"] == "December 6, 2025"
    for role in ("volunteer1", "volunteer2", "volunteer3", "volunteer4"):
        assert data[role] is None
    assert data["attendance"] == []


def test_summary_counts_filled_and_open_roles():
    template = generate_slots(ResourceType.FOOD, parse_period("Q4-2025"), FOOD_DATES)
    records = [
        record("rec1", "2025-12-06", "volunteer1"),
        record("rec2", "2025-12-06", "volunteer2", name="Bob Jones"),
        record("rec3", "2025-12-06", "volunteer3", name="Cara Diaz"),
        record("rec4", "2025-12-06", "volunteer4", name="Dee Park"),
        record("rec5", "2025-12-13", "volunteer1", name="Eli Ford"),
    ]
    summary = summarize_slots(assemble_slots(template, records))

    first = summary["slots"][0]
    assert first["fullyStaffed"] is True
    assert first["filled"]["volunteer2"] == "Bob Jones"
    assert summary["slots"][1]["open"] == ["volunteer2", "volunteer3", "volunteer4"]
    assert summary["totals"] == {"slots": 4, "filled": 5, "open": 11, "fullyStaffed": 1}
