from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from factories import BASE_TIME

from servicedesk.dependencies import services as service_deps
from servicedesk.main import create_app
from servicedesk.metrics import MetricsRegistry
from servicedesk.security import RateLimiter, RateLimitExceededError, RateLimitPolicy
from servicedesk.tickets import (
    TicketPersistenceError,
    TicketType,
    TimelineStep,
    TrackingNotFoundError,
    TrackingResult,
    TrackingService,
    TrackingValidationError,
)
from servicedesk.tickets.tracking import GENERIC_NOT_FOUND_MESSAGE


@pytest.fixture
def tracking_client():
    app = create_app()
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[service_deps.get_tracking_service] = override_service

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_track_success_returns_projection(tracking_client):
    client, service = tracking_client
    service.track = AsyncMock(
        return_value=TrackingResult(
            folio="CON-2024-000001",
            type=TicketType.CONTRACT,
            type_label="Contratación",
            current_status="SCHEDULED",
            status_label="Cita agendada",
            created_at=BASE_TIME,
            scheduled_time="09:00 - 13:00",
            timeline=[TimelineStep(status="NEW", label="Recibida", completed=True, current=False)],
        )
    )

    response = client.post(
        "/tickets/track",
        json={"folio": "CON-2024-000001", "phone_last4": "1234"},
        headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is True
    assert body["type"] == "contract"
    assert body["scheduled_time"] == "09:00 - 13:00"
    assert body["timeline"][0]["label"] == "Recibida"
    for hidden in ("full_name", "phone", "email", "address", "assigned_to"):
        assert hidden not in body
    service.track.assert_awaited_once_with("CON-2024-000001", "1234", "198.51.100.7")


@pytest.mark.parametrize("error", [TrackingNotFoundError(), TrackingValidationError()])
def test_not_found_and_invalid_input_look_identical(tracking_client, error):
    client, service = tracking_client
    service.track = AsyncMock(side_effect=error)

    response = client.post("/tickets/track", json={"folio": "CON-2024-000001", "phone_last4": "9999"})

    assert response.status_code == 404
    assert response.json() == {"error": GENERIC_NOT_FOUND_MESSAGE, "found": False}


def test_missing_fields_reach_the_service_instead_of_a_422(tracking_client):
    client, service = tracking_client
    service.track = AsyncMock(side_effect=TrackingValidationError())

    response = client.post("/tickets/track", json={})

    assert response.status_code == 404
    assert service.track.await_args.args[:2] == (None, None)


def test_rate_limited_response_has_retry_after(tracking_client):
    client, service = tracking_client
    service.track = AsyncMock(side_effect=RateLimitExceededError("track_folio", 42))

    response = client.post("/tickets/track", json={"folio": "CON-2024-000001", "phone_last4": "1234"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "42"
    assert response.json()["retry_after"] == 42
    assert "error" in response.json()


def test_storage_failure_returns_generic_500(tracking_client):
    client, service = tracking_client
    service.track = AsyncMock(side_effect=TicketPersistenceError("Failed to look up ticket by folio"))

    response = client.post("/tickets/track", json={"folio": "CON-2024-000001", "phone_last4": "1234"})

    assert response.status_code == 500
    assert response.json() == {"error": "Error al consultar. Intenta de nuevo."}


def test_tracking_service_unavailable_returns_503():
    client = TestClient(create_app())

    response = client.post("/tickets/track", json={"folio": "CON-2024-000001", "phone_last4": "1234"})

    assert response.status_code == 503


@pytest.mark.parametrize(
    "kwargs",
    [
        {"json": {"folio": 123, "phone_last4": 1234}},
        {"json": {"folio": "CON-2024-000001", "phone_last4": 1234}},
        {"json": ["CON-2024-000001", "1234"]},
        {"content": b'{"folio": "CON-2024-', "headers": {"Content-Type": "application/json"}},
    ],
)
def test_wrongly_typed_or_malformed_body_gets_generic_404(tracking_client, kwargs):
    client, service = tracking_client
    service.track = AsyncMock(side_effect=TrackingValidationError())

    response = client.post("/tickets/track", **kwargs)

    assert response.status_code == 404
    assert response.json() == {"error": GENERIC_NOT_FOUND_MESSAGE, "found": False}
    service.track.assert_awaited_once()
    assert service.track.await_args.args[1] is None


def test_malformed_bodies_count_against_the_rate_limit():
    app = create_app()
    repository = AsyncMock()
    policy = RateLimitPolicy("track_folio", max_requests=1, interval_seconds=60)
    limiter = RateLimiter(policies={"track_folio": policy, "default": policy}, metrics=MetricsRegistry())
    service = TrackingService(repository, limiter, metrics=MetricsRegistry())

    async def override_service():
        return service

    app.dependency_overrides[service_deps.get_tracking_service] = override_service
    client = TestClient(app)

    first = client.post("/tickets/track", json={"folio": 123, "phone_last4": 1234})
    second = client.post("/tickets/track", content=b"not json", headers={"Content-Type": "application/json"})

    assert first.status_code == 404
    assert second.status_code == 429
    repository.find_for_tracking.assert_not_awaited()
