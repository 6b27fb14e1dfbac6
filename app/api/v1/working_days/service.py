"""Working days per month from the academic calendar, cached in working_days_trackers."""

import logging
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import CalendarEntryType, EventScope
from app.core.models import CalendarEntry, WorkingDaysTracker
from app.db.session import utcnow

from .calculator import affected_months, compute_breakdown, month_bounds, validate_month
from .schemas import DateEventInfo, DateStatusResponse, WorkingDaysBreakdown

logger = logging.getLogger(__name__)


def _policy_key(weekly_off_days: Sequence[int]) -> str:
    return ",".join(str(d) for d in sorted(set(weekly_off_days)))


async def list_entries_in_range(db: AsyncSession, start: date, end: date) -> List[CalendarEntry]:
    """Active calendar entries overlapping [start, end]."""
    result = await db.execute(
        select(CalendarEntry)
        .where(
            CalendarEntry.deleted_at.is_(None),
            CalendarEntry.start_date <= end,
            CalendarEntry.end_date >= start,
        )
        .order_by(CalendarEntry.start_date)
    )
    return list(result.scalars().all())


async def calculate(
    db: AsyncSession,
    month: int,
    year: int,
    weekly_off_days: Optional[Sequence[int]] = None,
) -> WorkingDaysBreakdown:
    """Compute without touching the cache."""
    validate_month(month, year)
    off_days = weekly_off_days if weekly_off_days is not None else settings.weekly_off_days
    first, last = month_bounds(month, year)
    entries = await list_entries_in_range(db, first, last)
    return compute_breakdown(month, year, entries, off_days)


async def get_breakdown(
    db: AsyncSession,
    month: int,
    year: int,
    weekly_off_days: Optional[Sequence[int]] = None,
) -> WorkingDaysBreakdown:
    """Cached breakdown; recomputed when missing or computed under a different weekly-off policy."""
    validate_month(month, year)
    off_days = weekly_off_days if weekly_off_days is not None else settings.weekly_off_days
    policy = _policy_key(off_days)

    tracker = (
        await db.execute(
            select(WorkingDaysTracker).where(
                WorkingDaysTracker.month == month,
                WorkingDaysTracker.year == year,
            )
        )
    ).scalar_one_or_none()
    if tracker and tracker.weekly_off_days == policy:
        return WorkingDaysBreakdown.model_validate(tracker)

    breakdown = await calculate(db, month, year, off_days)
    now = utcnow()
    if tracker is None:
        tracker = WorkingDaysTracker(month=month, year=year)
        db.add(tracker)
    tracker.weekly_off_days = policy
    tracker.total_days = breakdown.total_days
    tracker.saturdays = breakdown.saturdays
    tracker.holidays = breakdown.holidays
    tracker.events = breakdown.events
    tracker.exams = breakdown.exams
    tracker.available_days = breakdown.available_days
    tracker.last_calculated = now
    try:
        await db.commit()
    except IntegrityError:
        # Another request cached the same month first; the computed value is still correct.
        await db.rollback()
    logger.info("Calculated working days for %s/%s: %s available", month, year, breakdown.available_days)
    return breakdown.model_copy(update={"last_calculated": now})


async def current_month_breakdown(db: AsyncSession, today: Optional[date] = None) -> WorkingDaysBreakdown:
    today = today or date.today()
    return await get_breakdown(db, today.month, today.year)


async def invalidate_range(db: AsyncSession, start: date, end: date) -> None:
    """Drop cached trackers for every month touched by [start, end]. Caller commits."""
    months = affected_months(start, end)
    if not months:
        return
    await db.execute(
        delete(WorkingDaysTracker).where(
            or_(*(and_(WorkingDaysTracker.month == m, WorkingDaysTracker.year == y) for m, y in months))
        )
    )
    logger.info("Invalidated working days cache for %s", ", ".join(f"{m}/{y}" for m, y in months))


async def check_date_status(db: AsyncSession, target: date) -> DateStatusResponse:
    """Whether attendance is expected on a date, and why."""
    if target.isoweekday() in set(settings.weekly_off_days):
        return DateStatusResponse(
            date=target,
            is_working_day=False,
            is_holiday=True,
            is_emergency_closure=False,
            message=f"{target.strftime('%A')} - Weekly holiday, no attendance required",
        )

    entries = await list_entries_in_range(db, target, target)
    if not entries:
        return DateStatusResponse(
            date=target,
            is_working_day=True,
            is_holiday=False,
            is_emergency_closure=False,
            message="Regular school day - attendance required",
        )

    # Entries that close the school take priority over ones that do not.
    def _rank(e: CalendarEntry) -> int:
        order = {
            CalendarEntryType.EMERGENCY_CLOSURE.value: 0,
            CalendarEntryType.HOLIDAY.value: 1,
            CalendarEntryType.EVENT.value: 2 if e.event_scope == EventScope.SCHOOL_WIDE.value else 4,
            CalendarEntryType.EXAM.value: 3,
        }
        return order.get(e.type, 5)

    entry = sorted(entries, key=_rank)[0]
    is_holiday = entry.type == CalendarEntryType.HOLIDAY.value
    is_emergency_closure = entry.type == CalendarEntryType.EMERGENCY_CLOSURE.value

    if is_holiday:
        message = f"Holiday: {entry.name} - no attendance required"
        is_working_day = False
    elif is_emergency_closure:
        message = f"Emergency closure: {entry.name} - no attendance required"
        is_working_day = False
    elif entry.type == CalendarEntryType.EVENT.value and entry.event_scope == EventScope.SCHOOL_WIDE.value:
        message = f"School-wide event: {entry.name} - no attendance required"
        is_working_day = False
    elif entry.type == CalendarEntryType.EVENT.value:
        message = f"Partial event: {entry.name} - regular attendance still required"
        is_working_day = True
    else:
        # Exams are not teaching days, but students attend to sit them.
        message = f"Exam day: {entry.name} - attendance required"
        is_working_day = True

    return DateStatusResponse(
        date=target,
        is_working_day=is_working_day,
        is_holiday=is_holiday,
        is_emergency_closure=is_emergency_closure,
        message=message,
        event=DateEventInfo(
            id=entry.id,
            name=entry.name,
            type=entry.type,
            event_scope=entry.event_scope,
            description=entry.description or entry.name,
        ),
    )
