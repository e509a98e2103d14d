from datetime import date, timedelta

import pytest

from models import CHRISTMAS_EVE_ROLES, FOOD_ROLES, GREETER_ROLES, LITURGIST_ROLES, ResourceType
from service_calendar import (
    ADVENT_NOTES,
    CHRISTMAS_EVE_NOTE,
    Period,
    advent_sundays,
    format_display_date,
    generate_slots,
    parse_period,
    quarter_sundays,
)
from conftest import FOOD_DATES


def test_q4_2025_liturgists_has_thirteen_sundays_and_christmas_eve():
    slots = generate_slots(ResourceType.LITURGISTS, parse_period("Q4-2025"))

    assert len(slots) == 14
    assert slots[0].date == "2025-10-05"
    assert slots[-1].date == "2025-12-28"

    christmas_eve = next(s for s in slots if s.date == "2025-12-24")
    assert christmas_eve.display_date == "December 24, 2025 (Christmas Eve)"
    assert christmas_eve.roles == CHRISTMAS_EVE_ROLES
    assert christmas_eve.notes == CHRISTMAS_EVE_NOTE

    sundays = [s for s in slots if s.date != "2025-12-24"]
    assert len(sundays) == 13
    assert all(date.fromisoformat(s.date).weekday() == 6 for s in sundays)
    assert all(s.roles == LITURGIST_ROLES for s in sundays)


@pytest.mark.parametrize("token", ["Q1-2025", "Q2-2026", "Q3-2024", "Q4-2025", "Q4-2022", "Q4-2030"])
@pytest.mark.parametrize("resource_type", [ResourceType.LITURGISTS, ResourceType.GREETERS])
def test_template_is_sorted_and_unique(token, resource_type):
    period = parse_period(token)
    slots = generate_slots(resource_type, period)
    dates = [s.date for s in slots]

    assert dates == sorted(dates)
    assert len(dates) == len(set(dates))
    assert all(date.fromisoformat(d) in period for d in dates)

    expected = len(quarter_sundays(period))
    if resource_type is ResourceType.LITURGISTS and period.quarter == 4:
        expected += 1
    assert len(slots) == expected


def test_christmas_eve_only_in_fourth_quarter():
    slots = generate_slots(ResourceType.LITURGISTS, parse_period("Q1-2026"))
    assert not any(s.date.endswith("-12-24") for s in slots)
    assert all(s.roles == LITURGIST_ROLES for s in slots)


def test_advent_2025():
    assert advent_sundays(2025) == [
        date(2025, 11, 30), date(2025, 12, 7), date(2025, 12, 14), date(2025, 12, 21),
    ]


def test_advent_when_christmas_is_a_sunday():
    # Christmas 2022 fell on a Sunday, so the 4th Sunday is a week earlier
    assert advent_sundays(2022)[-1] == date(2022, 12, 18)


@pytest.mark.parametrize("year", range(2020, 2041))
def test_advent_sundays_properties(year):
    sundays = advent_sundays(year)
    christmas = date(year, 12, 25)

    assert len(sundays) == 4
    assert all(day.weekday() == 6 for day in sundays)
    assert all(day < christmas for day in sundays)
    assert [b - a for a, b in zip(sundays, sundays[1:])] == [timedelta(days=7)] * 3
    assert christmas - sundays[-1] <= timedelta(days=7)


def test_greeter_sundays_carry_advent_notes():
    slots = {s.date: s for s in generate_slots(ResourceType.GREETERS, parse_period("Q4-2025"))}

    assert len(slots) == 13
    assert "2025-12-24" not in slots
    assert slots["2025-11-30"].notes == ADVENT_NOTES[0]
    assert slots["2025-12-21"].notes == ADVENT_NOTES[3]
    assert slots["2025-11-23"].notes is None
    assert slots["2025-10-05"].roles == GREETER_ROLES


def test_food_slots_come_from_configured_dates():
    slots = generate_slots(ResourceType.FOOD, parse_period("Q4-2025"), FOOD_DATES)

    assert [s.date for s in slots] == FOOD_DATES
    assert all(s.roles == FOOD_ROLES for s in slots)
    assert slots[0].display_date == "December 6, 2025"


def test_food_slots_outside_the_period_are_dropped():
    dates = FOOD_DATES + ["2026-01-03", "not-a-date", "2025-12-06"]
    assert generate_slots(ResourceType.FOOD, parse_period("Q1-2026"), dates)[0].date == "2026-01-03"
    assert len(generate_slots(ResourceType.FOOD, parse_period("Q4-2025"), dates)) == 4


@pytest.mark.parametrize("token", [None, "", "Q5-2025", "2025-Q4", "q4-2025x", "Q0-2025"])
def test_malformed_period_falls_back_to_default(token):
    assert parse_period(token) == Period(4, 2025)


def test_period_bounds():
    period = parse_period("Q1-2024")
    assert period.start == date(2024, 1, 1)
    assert period.end == date(2024, 3, 31)
    assert str(period) == "Q1-2024"
    assert date(2024, 4, 1) not in period


def test_format_display_date_has_no_leading_zero():
    assert format_display_date(date(2025, 12, 7)) == "December 7, 2025"
