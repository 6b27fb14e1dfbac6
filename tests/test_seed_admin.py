from app.db.seed_admin import seed_admin


async def test_seed_admin_is_idempotent(db_session, client, headers):
    admin = await seed_admin(db_session, "Principal@Example.com", "Principal")
    again = await seed_admin(db_session, "principal@example.com", "Principal")
    assert again.id == admin.id
    assert admin.email == "principal@example.com"

    resp = await client.get("/api/v1/classes", headers=headers(admin.id))
    assert resp.status_code == 200
