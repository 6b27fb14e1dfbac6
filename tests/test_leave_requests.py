from datetime import date

import pytest
from fastapi import BackgroundTasks

from app.api.v1.leaves import service, usage
from app.api.v1.leaves.schemas import AdminLeaveRequestAction, CreateLeaveRequest, CreateTeacherLeaveRequestByAdmin
from app.core.config import settings
from app.core.enums import LeaveDecision, LeaveRequestStatus
from app.core.exceptions import AuthorizationError, InvalidStateError, ValidationError

SICK_LEAVE = {
    "type": "SICK",
    "title": "Flu",
    "description": "Doctor advised rest",
    "start_date": "2025-06-02",
    "end_date": "2025-06-04",
    "days": 3,
}


async def _submit(client, headers, **overrides):
    body = {**SICK_LEAVE, **overrides}
    return await client.post("/api/v1/leave-requests", json=body, headers=headers)


@pytest.fixture()
async def school(factory):
    teacher = await factory.teacher("Class Teacher")
    cls = await factory.school_class(class_teacher=teacher)
    student = await factory.student(cls, "Asha Rao", roll_number=1)
    admin = await factory.admin()
    return {"teacher": teacher, "class": cls, "student": student, "admin": admin}


async def test_student_submit_then_reject(client, school, headers, notifier):
    student_headers = headers(school["student"].user_id)
    resp = await _submit(client, student_headers)
    assert resp.status_code == 201
    leave = resp.json()
    assert leave["status"] == "PENDING_ADMINISTRATION"
    assert leave["requester_type"] == "STUDENT"
    assert leave["student"]["full_name"] == "Asha Rao"
    assert leave["days"] == 3

    resp = await client.post(
        f"/api/v1/leave-requests/{leave['id']}/decision",
        json={"status": "REJECTED", "rejection_reason": "Insufficient documentation"},
        headers=headers(school["admin"].id),
    )
    assert resp.status_code == 200
    decided = resp.json()
    assert decided["status"] == "REJECTED"
    assert decided["rejection_reason"] == "Insufficient documentation"
    assert decided["rejected_at"] is not None
    assert decided["approved_at"] is None
    assert decided["approver"]["id"] == str(school["admin"].id)

    recipients = [e.user_id for e in notifier.events]
    assert school["admin"].id in recipients
    assert school["student"].user_id in recipients


async def test_approve_sets_approver_and_timestamp(client, school, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    resp = await client.post(
        f"/api/v1/leave-requests/{leave['id']}/decision",
        json={"status": "APPROVED"},
        headers=headers(school["admin"].id),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "APPROVED"
    assert body["approved_at"] is not None
    assert body["rejected_at"] is None


async def test_decide_non_pending_is_invalid_state(client, school, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    admin_headers = headers(school["admin"].id)
    url = f"/api/v1/leave-requests/{leave['id']}/decision"
    assert (await client.post(url, json={"status": "APPROVED"}, headers=admin_headers)).status_code == 200

    resp = await client.post(
        url,
        json={"status": "REJECTED", "rejection_reason": "Changed my mind"},
        headers=admin_headers,
    )
    assert resp.status_code == 409

    current = (await client.get(f"/api/v1/leave-requests/{leave['id']}", headers=admin_headers)).json()
    assert current["status"] == "APPROVED"
    assert current["rejection_reason"] is None


async def test_decide_missing_request_is_not_found(client, school, headers):
    resp = await client.post(
        "/api/v1/leave-requests/00000000-0000-0000-0000-000000000001/decision",
        json={"status": "APPROVED"},
        headers=headers(school["admin"].id),
    )
    assert resp.status_code == 404


async def test_teacher_cannot_decide(client, school, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    resp = await client.post(
        f"/api/v1/leave-requests/{leave['id']}/decision",
        json={"status": "APPROVED"},
        headers=headers(school["teacher"].user_id),
    )
    assert resp.status_code == 403


async def test_reject_requires_reason(client, school, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    resp = await client.post(
        f"/api/v1/leave-requests/{leave['id']}/decision",
        json={"status": "REJECTED", "rejection_reason": "  "},
        headers=headers(school["admin"].id),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["errors"][0]["field"] == "rejection_reason"


async def test_decision_checks_capability_then_status_then_reason(client, school, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    url = f"/api/v1/leave-requests/{leave['id']}/decision"
    admin_headers = headers(school["admin"].id)
    assert (await client.post(url, json={"status": "APPROVED"}, headers=admin_headers)).status_code == 200

    # Decided already, but a teacher is refused before the status is looked at.
    resp = await client.post(url, json={"status": "APPROVED"}, headers=headers(school["teacher"].user_id))
    assert resp.status_code == 403

    # A missing reason is only reported for a pending request.
    resp = await client.post(url, json={"status": "REJECTED"}, headers=admin_headers)
    assert resp.status_code == 409


async def test_submit_then_cancel(client, school, headers):
    student_headers = headers(school["student"].user_id)
    leave = (await _submit(client, student_headers)).json()
    resp = await client.post(f"/api/v1/leave-requests/{leave['id']}/cancel", headers=student_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "CANCELLED"
    assert body["cancelled_at"] is not None
    assert body["approved_at"] is None
    assert body["rejected_at"] is None

    again = await client.post(f"/api/v1/leave-requests/{leave['id']}/cancel", headers=student_headers)
    assert again.status_code == 409


async def test_cancel_by_someone_else_is_refused(client, school, factory, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    other = await factory.student(school["class"], "Other Student")
    resp = await client.post(f"/api/v1/leave-requests/{leave['id']}/cancel", headers=headers(other.user_id))
    assert resp.status_code == 409


async def test_days_must_match_date_span(client, school, headers):
    resp = await _submit(client, headers(school["student"].user_id), days=5)
    assert resp.status_code == 400
    errors = resp.json()["detail"]["errors"]
    assert [e["field"] for e in errors] == ["days"]


async def test_end_before_start_is_rejected(client, school, headers):
    resp = await _submit(
        client, headers(school["student"].user_id), start_date="2025-06-04", end_date="2025-06-02", days=1
    )
    assert resp.status_code == 400
    assert "end_date" in [e["field"] for e in resp.json()["detail"]["errors"]]


async def test_schema_errors_are_friendly(client, school, headers):
    body = {k: v for k, v in SICK_LEAVE.items() if k != "title"}
    resp = await client.post("/api/v1/leave-requests", json=body, headers=headers(school["student"].user_id))
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["message"] == "Validation failed"
    assert detail["errors"][0]["field"] == "title"
    assert "Title" in detail["errors"][0]["message"]


async def test_overlapping_request_is_conflict(client, school, headers):
    student_headers = headers(school["student"].user_id)
    assert (await _submit(client, student_headers)).status_code == 201
    resp = await _submit(client, student_headers, start_date="2025-06-04", end_date="2025-06-05", days=2)
    assert resp.status_code == 409


async def test_overlap_allowed_when_policy_disabled(client, school, headers, monkeypatch):
    monkeypatch.setattr(settings, "leave_block_overlapping", False)
    student_headers = headers(school["student"].user_id)
    assert (await _submit(client, student_headers)).status_code == 201
    assert (await _submit(client, student_headers)).status_code == 201


async def test_admin_without_profile_cannot_submit(client, school, headers):
    resp = await _submit(client, headers(school["admin"].id))
    assert resp.status_code == 403


async def test_admin_creates_teacher_leave_auto_approved(client, school, headers, notifier):
    resp = await client.post(
        "/api/v1/leave-requests/teacher/by-admin",
        json={
            "teacher_id": str(school["teacher"].id),
            "type": "CONFERENCE",
            "title": "State science conference",
            "start_date": "2025-07-01",
            "end_date": "2025-07-03",
            "days": 2,
            "admin_creation_reason": "Nominated by the principal",
        },
        headers=headers(school["admin"].id),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "APPROVED"
    assert body["requester_type"] == "TEACHER"
    assert body["days"] == 2
    assert body["approver"]["id"] == str(school["admin"].id)
    assert body["admin_creation_reason"] == "Nominated by the principal"
    assert [e.user_id for e in notifier.events] == [school["teacher"].user_id]


async def test_admin_created_leave_can_stay_pending(client, school, headers):
    resp = await client.post(
        "/api/v1/leave-requests/teacher/by-admin",
        json={
            "teacher_id": str(school["teacher"].id),
            "type": "WORKSHOP",
            "title": "Workshop",
            "start_date": "2025-07-01",
            "end_date": "2025-07-01",
            "days": 1,
            "admin_creation_reason": "Training",
            "auto_approve": False,
        },
        headers=headers(school["admin"].id),
    )
    assert resp.status_code == 201
    assert resp.json()["status"] == "PENDING_ADMINISTRATION"
    assert resp.json()["approved_at"] is None


async def test_teacher_cannot_use_admin_create(client, school, headers):
    resp = await client.post(
        "/api/v1/leave-requests/teacher/by-admin",
        json={
            "teacher_id": str(school["teacher"].id),
            "type": "SICK",
            "title": "x",
            "start_date": "2025-07-01",
            "end_date": "2025-07-01",
            "days": 1,
            "admin_creation_reason": "x",
        },
        headers=headers(school["teacher"].user_id),
    )
    assert resp.status_code == 403


async def test_notification_failure_does_not_undo_decision(client, school, headers, notifier):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    notifier.fail = True
    resp = await client.post(
        f"/api/v1/leave-requests/{leave['id']}/decision",
        json={"status": "APPROVED"},
        headers=headers(school["admin"].id),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "APPROVED"


async def test_visibility_rules(client, school, factory, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    url = f"/api/v1/leave-requests/{leave['id']}"

    assert (await client.get(url, headers=headers(school["teacher"].user_id))).status_code == 200

    other_teacher = await factory.teacher("Other Teacher")
    assert (await client.get(url, headers=headers(other_teacher.user_id))).status_code == 403

    other_student = await factory.student(school["class"], "Classmate")
    assert (await client.get(url, headers=headers(other_student.user_id))).status_code == 403


async def test_list_is_paginated_and_scoped(client, school, factory, headers):
    first = school["student"]
    second = await factory.student(school["class"], "Second")
    await _submit(client, headers(first.user_id))
    await _submit(client, headers(second.user_id), start_date="2025-06-10", end_date="2025-06-10", days=1)
    await _submit(client, headers(second.user_id), start_date="2025-06-12", end_date="2025-06-12", days=1)

    resp = await client.get("/api/v1/leave-requests?limit=2&page=1", headers=headers(school["admin"].id))
    page = resp.json()
    assert page["total"] == 3
    assert page["total_pages"] == 2
    assert len(page["items"]) == 2

    own = (await client.get("/api/v1/leave-requests", headers=headers(second.user_id))).json()
    assert own["total"] == 2

    by_teacher = (await client.get("/api/v1/leave-requests", headers=headers(school["teacher"].user_id))).json()
    assert by_teacher["total"] == 3


async def test_statistics_counts_by_status(client, school, headers):
    student_headers = headers(school["student"].user_id)
    a = (await _submit(client, student_headers)).json()
    b = (await _submit(client, student_headers, start_date="2025-06-10", end_date="2025-06-10", days=1)).json()
    await client.post(f"/api/v1/leave-requests/{b['id']}/cancel", headers=student_headers)
    await client.post(
        f"/api/v1/leave-requests/{a['id']}/decision",
        json={"status": "APPROVED"},
        headers=headers(school["admin"].id),
    )

    stats = (await client.get("/api/v1/leave-requests/statistics", headers=headers(school["admin"].id))).json()
    assert stats == {"total": 2, "pending": 0, "approved": 1, "rejected": 0, "cancelled": 1}


async def test_attachments_follow_request_status(client, school, headers):
    student_headers = headers(school["student"].user_id)
    leave = (await _submit(client, student_headers)).json()
    url = f"/api/v1/leave-requests/{leave['id']}/attachments"
    pdf = {
        "filename": "note-1.pdf",
        "original_name": "medical note.pdf",
        "mime_type": "application/pdf",
        "size": 2048,
        "url": "https://files.example.com/note-1.pdf",
    }

    resp = await client.post(url, json={"files": [pdf]}, headers=student_headers)
    assert resp.status_code == 201
    attachment_id = resp.json()[0]["id"]

    bad = {**pdf, "mime_type": "application/x-msdownload"}
    resp = await client.post(url, json={"files": [bad]}, headers=student_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["errors"][0]["field"] == "files[0].mime_type"

    detail = (await client.get(f"/api/v1/leave-requests/{leave['id']}", headers=student_headers)).json()
    assert [a["original_name"] for a in detail["attachments"]] == ["medical note.pdf"]

    await client.post(
        f"/api/v1/leave-requests/{leave['id']}/decision",
        json={"status": "APPROVED"},
        headers=headers(school["admin"].id),
    )
    resp = await client.delete(f"{url}/{attachment_id}", headers=student_headers)
    assert resp.status_code == 409


async def test_attachment_limit(client, school, headers, monkeypatch):
    monkeypatch.setattr(settings, "leave_attachment_max_files", 1)
    student_headers = headers(school["student"].user_id)
    leave = (await _submit(client, student_headers)).json()
    image = {
        "filename": "a.png",
        "original_name": "a.png",
        "mime_type": "image/png",
        "size": 10,
        "url": "https://files.example.com/a.png",
    }
    resp = await client.post(
        f"/api/v1/leave-requests/{leave['id']}/attachments",
        json={"files": [image, image]},
        headers=student_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["errors"][0]["field"] == "files"


async def test_losing_concurrent_decision_is_invalid_state(db_session, school, make_actor):
    student = school["student"]
    admin = make_actor(school["admin"].id, "ADMIN")
    req = await service.submit_leave_request(
        db_session,
        make_actor(student.user_id, "STUDENT", student_id=student.id),
        CreateLeaveRequest(**SICK_LEAVE),
    )
    await service.decide_leave_request(db_session, req.id, admin, AdminLeaveRequestAction(status=LeaveDecision.APPROVED))

    # A second decider that read the request before the first committed reaches the guarded update.
    with pytest.raises(InvalidStateError) as exc:
        await service._transition_from_pending(db_session, req.id, {"status": LeaveRequestStatus.REJECTED.value})
    assert exc.value.current_status == "APPROVED"


def test_validate_leave_fields_collects_every_error():
    errors = service.validate_leave_fields("", "x" * 1001, date(2025, 6, 5), date(2025, 6, 1), 400)
    assert {e.field for e in errors} == {"title", "description", "end_date", "days"}


def test_admin_days_need_not_match_span():
    errors = service.validate_leave_fields("Conference", None, date(2025, 7, 1), date(2025, 7, 3), 2, enforce_span=False)
    assert errors == []


async def test_service_validation_error_lists_fields(db_session, school, make_actor):
    student = school["student"]
    payload = CreateLeaveRequest(**{**SICK_LEAVE, "title": " ", "days": 2})
    with pytest.raises(ValidationError) as exc:
        await service.submit_leave_request(
            db_session, make_actor(student.user_id, "STUDENT", student_id=student.id), payload
        )
    assert {e.field for e in exc.value.errors} == {"title", "days"}


async def test_requester_edits_pending_request(client, school, headers):
    student_headers = headers(school["student"].user_id)
    leave = (await _submit(client, student_headers)).json()
    url = f"/api/v1/leave-requests/{leave['id']}"

    resp = await client.patch(url, json={"end_date": "2025-06-06"}, headers=student_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["days"] == 5
    assert body["title"] == "Flu"
    assert body["status"] == "PENDING_ADMINISTRATION"

    resp = await client.patch(url, json={"title": "Fever", "type": "MEDICAL"}, headers=student_headers)
    assert resp.status_code == 200
    assert (resp.json()["title"], resp.json()["type"], resp.json()["days"]) == ("Fever", "MEDICAL", 5)

    resp = await client.patch(url, json={"end_date": "2025-06-01"}, headers=student_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["errors"][0]["field"] == "end_date"


async def test_edit_is_for_requester_and_pending_only(client, school, headers):
    leave = (await _submit(client, headers(school["student"].user_id))).json()
    url = f"/api/v1/leave-requests/{leave['id']}"

    resp = await client.patch(url, json={"title": "Mine now"}, headers=headers(school["teacher"].user_id))
    assert resp.status_code == 403

    await client.post(f"{url}/decision", json={"status": "APPROVED"}, headers=headers(school["admin"].id))
    resp = await client.patch(url, json={"title": "Too late"}, headers=headers(school["student"].user_id))
    assert resp.status_code == 409


async def test_edit_into_another_request_overlaps(client, school, headers):
    student_headers = headers(school["student"].user_id)
    await _submit(client, student_headers)
    later = (
        await _submit(client, student_headers, start_date="2025-06-10", end_date="2025-06-11", days=2)
    ).json()
    resp = await client.patch(
        f"/api/v1/leave-requests/{later['id']}", json={"start_date": "2025-06-04"}, headers=student_headers
    )
    assert resp.status_code == 409


async def _admin_leave(db_session, school, make_actor, leave_type, start, end, days, auto_approve=True):
    return await service.create_teacher_leave_by_admin(
        db_session,
        make_actor(school["admin"].id, "ADMIN"),
        CreateTeacherLeaveRequestByAdmin(
            teacher_id=school["teacher"].id,
            type=leave_type,
            title=f"{leave_type} leave",
            start_date=start,
            end_date=end,
            days=days,
            admin_creation_reason="Recorded by the office",
            auto_approve=auto_approve,
        ),
    )


async def test_teacher_leave_usage_sums_approved_days(db_session, school, make_actor):
    await _admin_leave(db_session, school, make_actor, "SICK", date(2025, 6, 2), date(2025, 6, 3), 2)
    await _admin_leave(db_session, school, make_actor, "PERSONAL", date(2025, 1, 10), date(2025, 1, 10), 1)
    await _admin_leave(db_session, school, make_actor, "SICK", date(2024, 12, 30), date(2024, 12, 31), 2)
    await _admin_leave(
        db_session, school, make_actor, "VACATION", date(2025, 6, 20), date(2025, 6, 20), 1, auto_approve=False
    )
    teacher = school["teacher"]
    teacher_actor = make_actor(teacher.user_id, "TEACHER", teacher_id=teacher.id)

    result = await usage.get_teacher_leave_usage(db_session, teacher_actor, teacher.id, today=date(2025, 6, 15))
    by_type = {u.type.value: u for u in result.usage}
    assert (by_type["SICK"].total_days, by_type["SICK"].yearly_days, by_type["SICK"].monthly_days) == (4, 2, 2)
    assert (by_type["PERSONAL"].total_days, by_type["PERSONAL"].monthly_days) == (1, 0)
    assert by_type["VACATION"].total_days == 0
    assert (result.total_days, result.yearly_days, result.monthly_days) == (5, 3, 2)
    assert result.teacher.full_name == "Class Teacher"


async def test_teacher_leave_usage_access(client, db_session, school, factory, make_actor, headers):
    await _admin_leave(db_session, school, make_actor, "SICK", date(2025, 6, 2), date(2025, 6, 3), 2)
    teacher = school["teacher"]
    url = f"/api/v1/leave-requests/teacher/{teacher.id}/usage"

    resp = await client.get(url, headers=headers(teacher.user_id))
    assert resp.status_code == 200
    assert resp.json()["total_days"] == 2

    other = await factory.teacher("Other Teacher")
    assert (await client.get(url, headers=headers(other.user_id))).status_code == 403

    resp = await client.get("/api/v1/leave-requests/teacher/usage", headers=headers(school["admin"].id))
    assert resp.status_code == 200
    totals = {row["teacher"]["full_name"]: row["total_days"] for row in resp.json()}
    assert totals == {"Class Teacher": 2, "Other Teacher": 0}
    assert (
        await client.get("/api/v1/leave-requests/teacher/usage", headers=headers(teacher.user_id))
    ).status_code == 403

    with pytest.raises(AuthorizationError):
        await usage.list_teachers_leave_usage(db_session, make_actor(teacher.user_id, "TEACHER", teacher_id=teacher.id))


async def test_notifications_wait_for_background_tasks(db_session, school, make_actor, notifier):
    tasks = BackgroundTasks()
    student = school["student"]
    await service.submit_leave_request(
        db_session,
        make_actor(student.user_id, "STUDENT", student_id=student.id),
        CreateLeaveRequest(**SICK_LEAVE),
        notifier=notifier,
        background_tasks=tasks,
    )
    assert notifier.events == []

    await tasks()
    assert [e.user_id for e in notifier.events] == [school["admin"].id]
