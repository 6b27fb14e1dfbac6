import logging

from httpx import ASGITransport, AsyncClient

from app.core.log import RequestIdFilter
from app.main import create_app


async def test_unhandled_error_is_logged_with_request_id(caplog):
    app = create_app()

    @app.get("/explode")
    async def explode():
        raise RuntimeError("boom")

    caplog.handler.addFilter(RequestIdFilter())
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        with caplog.at_level(logging.ERROR, logger="app.main"):
            resp = await ac.get("/explode", headers={"X-Request-ID": "trace-123"})

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error"}
    assert resp.headers["X-Request-ID"] == "trace-123"
    errors = [r for r in caplog.records if r.levelno == logging.ERROR and r.name == "app.main"]
    assert len(errors) == 1
    assert errors[0].request_id == "trace-123"
    assert errors[0].exc_info[0] is RuntimeError


async def test_error_responses_carry_generated_request_id(client):
    resp = await client.get("/api/v1/leave-requests")
    assert resp.status_code in (401, 403)
    assert len(resp.headers["X-Request-ID"]) == 32
