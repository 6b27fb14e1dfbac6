async def test_create_class_and_assign_teacher(client, factory, headers):
    admin_headers = headers((await factory.admin()).id)
    first = await factory.teacher("First")
    second = await factory.teacher("Second")

    resp = await client.post(
        "/api/v1/classes",
        json={"grade": 6, "section": "b", "capacity": 30, "class_teacher_id": str(first.id)},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    cls = resp.json()
    assert cls["name"] == "6-B"
    assert cls["class_teacher_id"] == str(first.id)

    dup = await client.post("/api/v1/classes", json={"grade": 6, "section": "B"}, headers=admin_headers)
    assert dup.status_code == 409

    other = (await client.post("/api/v1/classes", json={"grade": 7, "section": "A"}, headers=admin_headers)).json()
    taken = await client.put(
        f"/api/v1/classes/{other['id']}/class-teacher", json={"teacher_id": str(first.id)}, headers=admin_headers
    )
    assert taken.status_code == 409

    resp = await client.put(
        f"/api/v1/classes/{cls['id']}/class-teacher", json={"teacher_id": str(second.id)}, headers=admin_headers
    )
    assert resp.status_code == 200
    assert resp.json()["class_teacher_id"] == str(second.id)


async def test_replaced_class_teacher_loses_attendance_rights(client, factory, headers):
    admin_headers = headers((await factory.admin()).id)
    old = await factory.teacher("Old")
    new = await factory.teacher("New")
    cls = await factory.school_class(class_teacher=old)
    student = await factory.student(cls, "Kiran", roll_number=1)

    await client.put(f"/api/v1/classes/{cls.id}/class-teacher", json={"teacher_id": str(new.id)}, headers=admin_headers)

    body = {
        "class_id": str(cls.id),
        "date": "2025-03-10",
        "entries": [{"student_id": str(student.id), "status": "PRESENT"}],
    }
    assert (await client.post("/api/v1/attendance", json=body, headers=headers(old.user_id))).status_code == 403
    assert (await client.post("/api/v1/attendance", json=body, headers=headers(new.user_id))).status_code == 201


async def test_teacher_cannot_manage_classes(client, factory, headers):
    teacher = await factory.teacher()
    resp = await client.post("/api/v1/classes", json={"grade": 1, "section": "A"}, headers=headers(teacher.user_id))
    assert resp.status_code == 403


async def test_missing_token_is_unauthorized(client):
    assert (await client.get("/api/v1/classes")).status_code == 401


async def test_class_students_and_capacity(client, factory, headers):
    admin_headers = headers((await factory.admin()).id)
    cls = await factory.school_class(capacity=1)
    await factory.student(cls, "Only Seat", roll_number=1)

    listing = (await client.get(f"/api/v1/classes/{cls.id}/students", headers=admin_headers)).json()
    assert [s["full_name"] for s in listing["students"]] == ["Only Seat"]

    resp = await client.post(
        "/api/v1/students",
        json={"full_name": "Late Joiner", "email": "late@example.com", "class_id": str(cls.id)},
        headers=admin_headers,
    )
    assert resp.status_code == 409

    resp = await client.put(f"/api/v1/classes/{cls.id}", json={"capacity": 2}, headers=admin_headers)
    assert resp.status_code == 200
    resp = await client.post(
        "/api/v1/students",
        json={"full_name": "Late Joiner", "email": "late@example.com", "class_id": str(cls.id), "roll_number": 2},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["class_id"] == str(cls.id)


async def test_teacher_profile_additional_data(client, factory, headers):
    admin_headers = headers((await factory.admin()).id)
    resp = await client.post(
        "/api/v1/teachers",
        json={
            "full_name": "Meera Iyer",
            "email": "meera@example.com",
            "designation": "PGT Physics",
            "additional_data": {
                "qualifications": ["M.Sc", "B.Ed"],
                "experience_years": 8,
                "emergency_contact": {"name": "Ravi", "phone": "9000000000"},
            },
        },
        headers=admin_headers,
    )
    assert resp.status_code == 201
    teacher = resp.json()
    assert teacher["additional_data"]["qualifications"] == ["M.Sc", "B.Ed"]

    resp = await client.put(
        f"/api/v1/teachers/{teacher['id']}/profile",
        json={"additional_data": {"unknown_key": 1}},
        headers=admin_headers,
    )
    assert resp.status_code == 400

    dup = await client.post(
        "/api/v1/teachers", json={"full_name": "Copy", "email": "MEERA@example.com"}, headers=admin_headers
    )
    assert dup.status_code == 409
