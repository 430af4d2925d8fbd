from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, field_validator

from servicedesk.api.responses import error_response, rate_limited_response
from servicedesk.dependencies.services import TrackingServiceDep
from servicedesk.security import RateLimitExceededError, get_client_ip
from servicedesk.tickets import TicketPersistenceError, TrackingError, TrackingResult

from .tickets import TimelineStepModel

router = APIRouter(prefix="/tickets", tags=["tracking"])

LOOKUP_FAILED_MESSAGE = "Error al consultar. Intenta de nuevo."


class TrackRequest(BaseModel):
    folio: str | None = None
    phone_last4: str | None = None

    @field_validator("folio", "phone_last4", mode="before")
    @classmethod
    def _strings_only(cls, value: Any) -> str | None:
        # Wrong JSON types reach the service as missing and get the generic 404.
        return value if isinstance(value, str) else None


async def read_track_request(request: Request) -> TrackRequest:
    """Parse the body leniently so no input is rejected before the rate limiter runs."""

    try:
        body = await request.json()
    except ValueError:
        body = None
    return TrackRequest.model_validate(body if isinstance(body, dict) else {})


class TrackResponse(BaseModel):
    found: bool = True
    folio: str
    type: str
    type_label: str
    current_status: str
    status_label: str
    scheduled_date: date | None = None
    scheduled_time: str | None = None
    public_note: str | None = None
    created_at: datetime
    timeline: list[TimelineStepModel]

    @classmethod
    def from_result(cls, result: TrackingResult) -> "TrackResponse":
        return cls(
            found=result.found,
            folio=result.folio,
            type=result.type.value,
            type_label=result.type_label,
            current_status=result.current_status,
            status_label=result.status_label,
            scheduled_date=result.scheduled_date,
            scheduled_time=result.scheduled_time,
            public_note=result.public_note,
            created_at=result.created_at,
            timeline=[TimelineStepModel.model_validate(step) for step in result.timeline],
        )


@router.post(
    "/track",
    response_model=TrackResponse,
    summary="Track a ticket by folio and phone suffix",
    responses={404: {"description": "No match"}, 429: {"description": "Rate limited"}},
    openapi_extra={
        "requestBody": {"content": {"application/json": {"schema": TrackRequest.model_json_schema()}}}
    },
)
async def track_ticket(
    payload: Annotated[TrackRequest, Depends(read_track_request)],
    request: Request,
    service: TrackingServiceDep,
):
    try:
        result = await service.track(payload.folio, payload.phone_last4, get_client_ip(request))
    except RateLimitExceededError as exc:
        return rate_limited_response(exc)
    except TrackingError as exc:
        return error_response(status.HTTP_404_NOT_FOUND, exc.message, found=False)
    except TicketPersistenceError:
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, LOOKUP_FAILED_MESSAGE)
    return TrackResponse.from_result(result)
