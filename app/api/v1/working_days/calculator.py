"""Pure working-days arithmetic. No I/O: callers pass in the calendar entries for the month."""

import calendar
from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, Protocol, Sequence

from app.core.enums import CalendarEntryType, EventScope
from app.core.exceptions import FieldError, raise_if_errors

from .schemas import WorkingDaysBreakdown

WEEKLY_OFF = "WEEKLY_OFF"
HOLIDAY = "HOLIDAY"
EVENT = "EVENT"
EXAM = "EXAM"

# Lower rank wins when several entries fall on the same date.
_PRECEDENCE = {WEEKLY_OFF: 0, HOLIDAY: 1, EVENT: 2, EXAM: 3}


class CalendarSpan(Protocol):
    type: str
    event_scope: object
    start_date: date
    end_date: date


def validate_month(month: int, year: int) -> None:
    errors = []
    if not 1 <= month <= 12:
        errors.append(FieldError("month", "Month must be between 1 and 12"))
    if not 1900 <= year <= 9999:
        errors.append(FieldError("year", "Year must be between 1900 and 9999"))
    raise_if_errors(errors)


def month_bounds(month: int, year: int) -> tuple:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def _category(entry: CalendarSpan):
    entry_type = getattr(entry.type, "value", entry.type)
    scope = getattr(entry.event_scope, "value", entry.event_scope)
    if entry_type in (CalendarEntryType.HOLIDAY.value, CalendarEntryType.EMERGENCY_CLOSURE.value):
        return HOLIDAY
    if entry_type == CalendarEntryType.EVENT.value:
        # Partial events never suspend instruction
        return EVENT if scope == EventScope.SCHOOL_WIDE.value else None
    if entry_type == CalendarEntryType.EXAM.value:
        return EXAM
    return None


def classify_month(
    month: int,
    year: int,
    entries: Iterable[CalendarSpan],
    weekly_off_days: Sequence[int] = (6,),
) -> Dict[date, str]:
    """Map every non-teaching date of the month to the single category it is counted in."""
    validate_month(month, year)
    first, last = month_bounds(month, year)
    off_days = set(weekly_off_days)

    classified: Dict[date, str] = {}
    for day in _days(first, last):
        if day.isoweekday() in off_days:
            classified[day] = WEEKLY_OFF

    for entry in entries:
        category = _category(entry)
        if category is None:
            continue
        start = max(entry.start_date, first)
        end = min(entry.end_date, last)
        for day in _days(start, end):
            current = classified.get(day)
            if current is None or _PRECEDENCE[category] < _PRECEDENCE[current]:
                classified[day] = category
    return classified


def compute_breakdown(
    month: int,
    year: int,
    entries: Iterable[CalendarSpan],
    weekly_off_days: Sequence[int] = (6,),
) -> WorkingDaysBreakdown:
    classified = classify_month(month, year, entries, weekly_off_days)
    total_days = calendar.monthrange(year, month)[1]
    counts = {WEEKLY_OFF: 0, HOLIDAY: 0, EVENT: 0, EXAM: 0}
    for category in classified.values():
        counts[category] += 1
    return WorkingDaysBreakdown(
        month=month,
        year=year,
        total_days=total_days,
        saturdays=counts[WEEKLY_OFF],
        holidays=counts[HOLIDAY],
        events=counts[EVENT],
        exams=counts[EXAM],
        available_days=total_days - len(classified),
    )


def affected_months(start: date, end: date) -> list:
    """(month, year) pairs touched by the inclusive range."""
    months = []
    current = date(start.year, start.month, 1)
    while current <= end:
        months.append((current.month, current.year))
        if current.month == 12:
            current = date(current.year + 1, 1, 1)
        else:
            current = date(current.year, current.month + 1, 1)
    return months
