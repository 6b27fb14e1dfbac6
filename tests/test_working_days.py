from dataclasses import dataclass
from datetime import date
from typing import Optional

import pytest

from app.api.v1.working_days import calculator
from app.api.v1.working_days.calculator import affected_months, classify_month, compute_breakdown
from app.core.exceptions import ValidationError


@dataclass
class Entry:
    type: str
    start_date: date
    end_date: date
    event_scope: Optional[str] = None


def test_february_2025_with_one_holiday():
    entries = [Entry("HOLIDAY", date(2025, 2, 14), date(2025, 2, 14))]
    b = compute_breakdown(2, 2025, entries)
    assert (b.total_days, b.saturdays, b.holidays, b.events, b.exams, b.available_days) == (28, 4, 1, 0, 0, 23)


def test_holiday_on_weekly_off_counts_once():
    # 2025-02-08 is a Saturday.
    b = compute_breakdown(2, 2025, [Entry("HOLIDAY", date(2025, 2, 8), date(2025, 2, 8))])
    assert b.saturdays == 4
    assert b.holidays == 0
    assert b.available_days == 24


def test_partial_events_do_not_reduce_available_days():
    entries = [Entry("EVENT", date(2025, 2, 10), date(2025, 2, 12), event_scope="PARTIAL")]
    assert compute_breakdown(2, 2025, entries).available_days == 24


def test_precedence_holiday_over_event_over_exam():
    entries = [
        Entry("EXAM", date(2025, 2, 10), date(2025, 2, 13)),
        Entry("EVENT", date(2025, 2, 12), date(2025, 2, 12), event_scope="SCHOOL_WIDE"),
        Entry("EMERGENCY_CLOSURE", date(2025, 2, 13), date(2025, 2, 13)),
    ]
    classified = classify_month(2, 2025, entries)
    assert classified[date(2025, 2, 10)] == calculator.EXAM
    assert classified[date(2025, 2, 12)] == calculator.EVENT
    assert classified[date(2025, 2, 13)] == calculator.HOLIDAY

    b = compute_breakdown(2, 2025, entries)
    assert (b.holidays, b.events, b.exams) == (1, 1, 2)
    assert b.available_days == 20


def test_entries_spanning_months_only_count_in_month_days():
    entries = [Entry("HOLIDAY", date(2024, 12, 30), date(2025, 1, 2))]
    b = compute_breakdown(1, 2025, entries)
    # 2025-01-01 and 2025-01-02 are a Wednesday and Thursday.
    assert b.holidays == 2


@pytest.mark.parametrize("month,year", [(2, 2024), (2, 2025), (7, 2025), (12, 2030)])
def test_categories_partition_the_month(month, year):
    entries = [
        Entry("HOLIDAY", date(year, month, 3), date(year, month, 5)),
        Entry("EVENT", date(year, month, 4), date(year, month, 9), event_scope="SCHOOL_WIDE"),
        Entry("EXAM", date(year, month, 8), date(year, month, 20)),
        Entry("EVENT", date(year, month, 21), date(year, month, 22), event_scope="PARTIAL"),
    ]
    b = compute_breakdown(month, year, entries)
    assert b.saturdays + b.holidays + b.events + b.exams + b.available_days == b.total_days
    assert b.available_days == b.total_days - len(classify_month(month, year, entries))


def test_configurable_weekly_off_days():
    b = compute_breakdown(2, 2025, [], weekly_off_days=(6, 7))
    assert b.saturdays == 8
    assert b.available_days == 20


def test_invalid_month_is_validation_error():
    with pytest.raises(ValidationError) as exc:
        compute_breakdown(13, 2025, [])
    assert exc.value.errors[0].field == "month"


def test_affected_months_crosses_year():
    assert affected_months(date(2024, 12, 20), date(2025, 2, 1)) == [(12, 2024), (1, 2025), (2, 2025)]


async def test_breakdown_is_cached_and_invalidated_by_calendar(client, factory, headers):
    admin_headers = headers((await factory.admin()).id)

    first = await client.get("/api/v1/working-days?month=2&year=2025", headers=admin_headers)
    assert first.status_code == 200
    assert first.json()["available_days"] == 24
    assert first.json()["last_calculated"] is not None

    resp = await client.post(
        "/api/v1/calendar",
        json={"name": "Founders Day", "type": "HOLIDAY", "start_date": "2025-02-14", "end_date": "2025-02-14"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    entry_id = resp.json()["id"]

    body = (await client.get("/api/v1/working-days?month=2&year=2025", headers=admin_headers)).json()
    assert (body["total_days"], body["saturdays"], body["holidays"], body["available_days"]) == (28, 4, 1, 23)

    assert (await client.delete(f"/api/v1/calendar/{entry_id}", headers=admin_headers)).status_code == 204
    body = (await client.get("/api/v1/working-days?month=2&year=2025", headers=admin_headers)).json()
    assert body["available_days"] == 24


async def test_date_status(client, factory, headers):
    admin_headers = headers((await factory.admin()).id)
    await client.post(
        "/api/v1/calendar",
        json={"name": "Flood", "type": "EMERGENCY_CLOSURE", "start_date": "2025-02-12", "end_date": "2025-02-12"},
        headers=admin_headers,
    )

    saturday = (await client.get("/api/v1/working-days/date-status?date=2025-02-08", headers=admin_headers)).json()
    assert saturday["is_working_day"] is False

    closed = (await client.get("/api/v1/working-days/date-status?date=2025-02-12", headers=admin_headers)).json()
    assert closed["is_emergency_closure"] is True
    assert closed["event"]["name"] == "Flood"

    regular = (await client.get("/api/v1/working-days/date-status?date=2025-02-11", headers=admin_headers)).json()
    assert regular["is_working_day"] is True
    assert regular["event"] is None


async def test_bad_month_over_http_is_400(client, factory, headers):
    admin_headers = headers((await factory.admin()).id)
    resp = await client.get("/api/v1/working-days?month=0&year=2025", headers=admin_headers)
    assert resp.status_code == 400
