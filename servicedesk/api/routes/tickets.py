from __future__ import annotations

from datetime import date, datetime, time

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from servicedesk.dependencies.auth import DeskUser, Role, StaffUser
from servicedesk.dependencies.services import TicketServiceDep
from servicedesk.tickets import (
    EventType,
    InvalidTicketStatusError,
    InvalidTicketTransitionError,
    ScheduleInfo,
    StatusHistoryEntry,
    Ticket,
    TicketDetail,
    TicketEvent,
    TicketNotFoundError,
    TicketPersistenceError,
    TicketPriority,
    TicketType,
    TicketValidationError,
)
from servicedesk.tickets.state import status_label

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketModel(BaseModel):
    id: str
    folio: str
    type: TicketType
    status: str
    status_label: str
    full_name: str
    phone: str
    email: str | None = None
    address: str
    postal_code: str | None = None
    priority: TicketPriority
    package_id: str | None = None
    assigned_to: str | None = None
    scheduled_date: date | None = None
    scheduled_time_start: time | None = None
    scheduled_time_end: time | None = None
    public_note: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketModel":
        current = ticket.current_status
        return cls(
            id=ticket.id,
            folio=ticket.folio,
            type=ticket.type,
            status=current.value,
            status_label=status_label(ticket.type, current),
            full_name=ticket.full_name,
            phone=ticket.phone,
            email=ticket.email,
            address=ticket.address,
            postal_code=ticket.postal_code,
            priority=ticket.priority,
            package_id=ticket.package_id,
            assigned_to=ticket.assigned_to,
            scheduled_date=ticket.scheduled_date,
            scheduled_time_start=ticket.scheduled_time_start,
            scheduled_time_end=ticket.scheduled_time_end,
            public_note=ticket.public_note,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )


class StatusHistoryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    previous_status: str | None = None
    new_status: str
    change_reason: str | None = None
    changed_by: str | None = None
    created_at: datetime


class TicketEventModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: EventType
    title: str | None = None
    content: str | None = None
    is_visible_to_customer: bool
    created_by: str | None = None
    created_at: datetime


class TimelineStepModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    label: str
    completed: bool
    current: bool
    date: datetime | None = None
    note: str | None = None


class TicketDetailModel(TicketModel):
    status_history: list[StatusHistoryModel]
    events: list[TicketEventModel]
    timeline: list[TimelineStepModel]

    @classmethod
    def from_detail(cls, detail: TicketDetail) -> "TicketDetailModel":
        base = TicketModel.from_entity(detail.ticket).model_dump()
        return cls(
            **base,
            status_history=[StatusHistoryModel.model_validate(entry) for entry in detail.status_history],
            events=[TicketEventModel.model_validate(event) for event in detail.events],
            timeline=[TimelineStepModel.model_validate(step) for step in detail.timeline],
        )


class TicketPageModel(BaseModel):
    items: list[TicketModel]
    total: int
    page: int
    limit: int
    total_pages: int


class TicketCreateRequest(BaseModel):
    type: TicketType
    full_name: str = Field(min_length=2, max_length=255)
    phone: str = Field(min_length=10, max_length=20)
    address: str = Field(min_length=5)
    email: str | None = None
    postal_code: str | None = Field(default=None, pattern=r"^\d{5}$")
    package_id: str | None = None
    priority: TicketPriority = TicketPriority.NORMAL


class TicketStatusChangeRequest(BaseModel):
    status: str
    reason: str | None = None
    scheduled_date: date | None = None
    scheduled_time_start: time | None = None
    scheduled_time_end: time | None = None
    force: bool = False


class TicketNoteCreateRequest(BaseModel):
    content: str
    is_public: bool = False


class StatusChangeResponse(BaseModel):
    ticket: TicketModel
    history: StatusHistoryModel
    event: TicketEventModel


class NoteResponse(BaseModel):
    ticket: TicketModel
    event: TicketEventModel


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, TicketNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTicketTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (InvalidTicketStatusError, TicketValidationError)):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


_HANDLED = (
    TicketNotFoundError,
    InvalidTicketTransitionError,
    InvalidTicketStatusError,
    TicketValidationError,
    TicketPersistenceError,
)


@router.get("", response_model=TicketPageModel, summary="List tickets of one type")
async def list_tickets(
    service: TicketServiceDep,
    user: StaffUser,
    ticket_type: TicketType = Query(..., alias="type"),
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=15, ge=1, le=100),
) -> TicketPageModel:
    try:
        result = await service.list_tickets(
            ticket_type=ticket_type, status=status_filter, search=search, page=page, limit=limit
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return TicketPageModel(
        items=[TicketModel.from_entity(item) for item in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.post("", response_model=TicketModel, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreateRequest, service: TicketServiceDep, user: DeskUser) -> TicketModel:
    try:
        ticket = await service.create_ticket(
            ticket_type=payload.type,
            full_name=payload.full_name,
            phone=payload.phone,
            address=payload.address,
            email=payload.email,
            postal_code=payload.postal_code,
            package_id=payload.package_id,
            priority=payload.priority,
            actor=user.username,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return TicketModel.from_entity(ticket)


@router.get("/{ticket_id}", response_model=TicketDetailModel)
async def get_ticket(ticket_id: str, service: TicketServiceDep, user: StaffUser) -> TicketDetailModel:
    try:
        detail = await service.get_detail(ticket_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return TicketDetailModel.from_detail(detail)


@router.post("/{ticket_id}/status", response_model=StatusChangeResponse)
async def change_ticket_status(
    ticket_id: str,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> StatusChangeResponse:
    if payload.force and not user.has_role(Role.ADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins may force a transition")

    schedule = None
    if payload.scheduled_date is not None:
        schedule = ScheduleInfo(
            date=payload.scheduled_date,
            time_start=payload.scheduled_time_start,
            time_end=payload.scheduled_time_end,
        )
    try:
        result = await service.change_status(
            ticket_id,
            new_status=payload.status,
            actor=user.username,
            reason=payload.reason,
            schedule=schedule,
            force=payload.force,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return StatusChangeResponse(
        ticket=TicketModel.from_entity(result.ticket),
        history=StatusHistoryModel.model_validate(result.history),
        event=TicketEventModel.model_validate(result.event),
    )


@router.post("/{ticket_id}/notes", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def add_ticket_note(
    ticket_id: str,
    payload: TicketNoteCreateRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> NoteResponse:
    try:
        result = await service.add_note(
            ticket_id, content=payload.content, is_public=payload.is_public, actor=user.username
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return NoteResponse(
        ticket=TicketModel.from_entity(result.ticket),
        event=TicketEventModel.model_validate(result.event),
    )


@router.get("/{ticket_id}/history", response_model=list[StatusHistoryModel])
async def get_status_history(ticket_id: str, service: TicketServiceDep, user: StaffUser) -> list[StatusHistoryModel]:
    try:
        entries: list[StatusHistoryEntry] = await service.get_status_history(ticket_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return [StatusHistoryModel.model_validate(entry) for entry in entries]


@router.get("/{ticket_id}/events", response_model=list[TicketEventModel])
async def get_events(ticket_id: str, service: TicketServiceDep, user: StaffUser) -> list[TicketEventModel]:
    try:
        events: list[TicketEvent] = await service.get_events(ticket_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return [TicketEventModel.model_validate(event) for event in events]
