from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # Tests run without PostgreSQL or Redis configured.
    assert data["checks"] == {"database": "not_configured", "redis": "not_configured"}


def test_ready_returns_200_without_database(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200


def test_health_reports_degraded_database(client: TestClient, monkeypatch) -> None:
    from app.api import health

    async def broken_ping() -> bool:
        raise ConnectionError("connection refused")

    monkeypatch.setattr(health, "async_session_factory", object())
    monkeypatch.setattr(health, "ping_database", broken_ping)

    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["checks"]["database"] == "degraded"

    assert client.get("/ready").status_code == 503
