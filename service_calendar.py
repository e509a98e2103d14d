"""
Service calendar generation.

Builds the empty slot templates for a quarter: every Sunday for liturgists
and greeters (with Advent candle notes and the Christmas Eve service), and a
fixed list of Saturdays for food distribution.
"""
import calendar
import logging
import re
from collections import namedtuple
from datetime import date, timedelta

from models import (
    CHRISTMAS_EVE_ROLES,
    FOOD_ROLES,
    GREETER_ROLES,
    LITURGIST_ROLES,
    ResourceType,
    ServiceSlot,
)

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = "Q4-2025"
SUNDAY = 6  # date.weekday()

PERIOD_PATTERN = re.compile(r"^Q([1-4])-(\d{4})$")

ADVENT_NOTES = (
    "Advent Week 1 - Light the Hope candle (1 candle)",
    "Advent Week 2 - Light the Hope and Peace candles (2 candles)",
    "Advent Week 3 - Light the Hope, Peace, and Joy candles (3 candles)",
    "Advent Week 4 - Light the Hope, Peace, Joy, and Love candles (4 candles)",
)
CHRISTMAS_EVE_NOTE = "Christmas Eve Service - Light the Christ Candle (white center candle) + all 4 Advent candles"


class Period(namedtuple("Period", ["quarter", "year"])):
    """A calendar quarter such as Q4-2025."""

    __slots__ = ()

    @property
    def token(self) -> str:
        return f"Q{self.quarter}-{self.year}"

    @property
    def first_month(self) -> int:
        return (self.quarter - 1) * 3 + 1

    @property
    def last_month(self) -> int:
        return self.first_month + 2

    @property
    def start(self) -> date:
        return date(self.year, self.first_month, 1)

    @property
    def end(self) -> date:
        last_day = calendar.monthrange(self.year, self.last_month)[1]
        return date(self.year, self.last_month, last_day)

    def __contains__(self, day) -> bool:
        return self.start <= day <= self.end

    def __str__(self):
        return self.token


def parse_period(token, default=DEFAULT_PERIOD) -> Period:
    """Parse a "Q{1-4}-{year}" token.

    Malformed tokens fall back to `default` instead of raising, so the
    schedule always renders something.
    """
    match = PERIOD_PATTERN.match((token or "").strip())
    if not match:
        logger.warning(f"Malformed period {token!r}, falling back to {default}")
        match = PERIOD_PATTERN.match(default)
    return Period(int(match.group(1)), int(match.group(2)))


def format_display_date(day: date) -> str:
    """Render a date the way the signup pages show it, e.g. 'December 7, 2025'."""
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def advent_sundays(year: int):
    """Return the four Advent Sundays of `year`, earliest first.

    The fourth is the last Sunday before Christmas Day (a Sunday Christmas
    pushes it back a full week), and the others follow at 7-day steps back.
    """
    christmas = date(year, 12, 25)
    days_back = (christmas.weekday() - SUNDAY) % 7 or 7
    fourth = christmas - timedelta(days=days_back)
    return [fourth - timedelta(weeks=3 - week) for week in range(4)]


def quarter_sundays(period: Period):
    """Every Sunday from the 1st of the quarter through its last day."""
    current = period.start
    current += timedelta(days=(SUNDAY - current.weekday()) % 7)
    sundays = []
    while current <= period.end:
        sundays.append(current)
        current += timedelta(weeks=1)
    return sundays


def _sunday_slots(period: Period, roles):
    advent_notes = {day: note for day, note in zip(advent_sundays(period.year), ADVENT_NOTES)}
    return [
        ServiceSlot(
            date=day.isoformat(),
            display_date=format_display_date(day),
            roles=roles,
            notes=advent_notes.get(day),
        )
        for day in quarter_sundays(period)
    ]


def _christmas_eve_slot(period: Period):
    christmas_eve = date(period.year, 12, 24)
    if christmas_eve not in period:
        return None
    return ServiceSlot(
        date=christmas_eve.isoformat(),
        display_date=f"{format_display_date(christmas_eve)} (Christmas Eve)",
        roles=CHRISTMAS_EVE_ROLES,
        notes=CHRISTMAS_EVE_NOTE,
    )


def _food_slots(period: Period, food_dates):
    slots = []
    for raw in food_dates:
        try:
            day = date.fromisoformat(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed food distribution date {raw!r}")
            continue
        if day in period:
            slots.append(ServiceSlot(
                date=day.isoformat(),
                display_date=format_display_date(day),
                roles=FOOD_ROLES,
            ))
    return slots


def generate_slots(resource_type: ResourceType, period: Period, food_dates=()):
    """Build the empty slot template for one resource type and quarter.

    Returned slots are sorted by date with no duplicate dates.
    """
    if resource_type is ResourceType.FOOD:
        slots = _food_slots(period, food_dates)
    elif resource_type is ResourceType.GREETERS:
        slots = _sunday_slots(period, GREETER_ROLES)
    else:
        slots = _sunday_slots(period, LITURGIST_ROLES)
        # Christmas Eve is appended out of order; the sort below fixes it
        christmas_eve = _christmas_eve_slot(period)
        if christmas_eve is not None:
            slots.append(christmas_eve)

    unique = {slot.date: slot for slot in slots}
    return sorted(unique.values(), key=lambda slot: slot.date)
