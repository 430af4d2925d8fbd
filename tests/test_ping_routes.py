from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from servicedesk.main import create_app
from servicedesk.metrics import metrics_registry


def test_ping():
    client = TestClient(create_app())

    assert client.get("/ping").json() == {"status": "ok"}


def test_ready_reports_database_state():
    app = create_app()
    client = TestClient(app)

    assert client.get("/ping/ready").status_code == 503

    app.state.postgres_tester = AsyncMock()
    app.state.postgres_tester.test_connection = AsyncMock(return_value=True)
    assert client.get("/ping/ready").json() == {"status": "ok", "database": "ok"}

    app.state.postgres_tester.test_connection = AsyncMock(side_effect=OSError("down"))
    response = client.get("/ping/ready")
    assert response.status_code == 503
    assert response.json()["detail"] == "Database is unreachable"


def test_metrics_endpoint_exposes_registry():
    metrics_registry.counter("tracking_requests_total").inc(labels={"outcome": "found"})
    client = TestClient(create_app())

    response = client.get("/ping/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "# TYPE tracking_requests_total counter" in response.text
