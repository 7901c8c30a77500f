"""Tests for app factory and role-based routing."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from staydesk.api.factory import create_app


def _mounted(app, method: str, path: str) -> bool:
    """True if the app routes the request anywhere.

    Requests are unauthenticated, so a mounted route answers 401 or 422.
    """
    response = TestClient(app).request(method, path)
    return response.status_code != 404


class TestPublicRole:
    """Tests for APP_ROLE=public."""

    def test_health_available(self):
        client = TestClient(create_app(role="public"))
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_front_desk_routes_mounted(self):
        app = create_app(role="public")
        assert _mounted(app, "POST", "/folios/folio-1/charges?property_id=prop-1")
        assert _mounted(app, "POST", "/reservations/res-1/actions/check-out?property_id=prop-1")
        assert _mounted(app, "POST", "/housekeeping/tasks/task-1/complete?property_id=prop-1")
        assert _mounted(app, "POST", "/night-audit/start?property_id=prop-1")

    def test_unknown_path_not_mounted(self):
        assert not _mounted(create_app(role="public"), "GET", "/no-such-route")

    def test_role_from_environment(self):
        with patch.dict("os.environ", {"APP_ROLE": "worker"}):
            app = create_app()
        assert not _mounted(app, "POST", "/folios/folio-1/charges?property_id=prop-1")


class TestWorkerRole:
    """Tests for APP_ROLE=worker."""

    def test_health_available(self):
        client = TestClient(create_app(role="worker"))
        assert client.get("/health").status_code == 200

    def test_front_desk_not_mounted(self):
        client = TestClient(create_app(role="worker"))
        response = client.post("/folios/folio-1/charges?property_id=prop-1", json={})
        assert response.status_code == 404

    def test_night_audit_mounted(self):
        app = create_app(role="worker")
        assert _mounted(app, "GET", "/night-audit/stats?property_id=prop-1")
        assert _mounted(app, "POST", "/night-audit/post-room-charges?property_id=prop-1")


class TestAsgiEntrypoint:
    def test_module_app_serves_health(self):
        from staydesk.api.app import app

        response = TestClient(app).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestCorrelationId:
    """Tests for correlation ID middleware."""

    def test_generates_correlation_id(self):
        client = TestClient(create_app(role="public"))
        response = client.get("/health")
        assert len(response.headers["X-Correlation-ID"]) == 36

    def test_preserves_incoming_correlation_id(self):
        client = TestClient(create_app(role="public"))
        response = client.get("/health", headers={"X-Correlation-ID": "test-123"})
        assert response.headers["X-Correlation-ID"] == "test-123"
