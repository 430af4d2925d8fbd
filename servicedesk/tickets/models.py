from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Sequence

from .state import TicketStatus, TicketType, parse_status


class EventType(str, Enum):
    """Kinds of entries recorded in a ticket's event log."""

    STATUS_CHANGE = "status_change"
    NOTE_INTERNAL = "note_internal"
    NOTE_PUBLIC = "note_public"
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    ASSIGNED = "assigned"
    ATTACHMENT = "attachment"
    CALL_ATTEMPT = "call_attempt"
    CALL_SUCCESS = "call_success"
    WHATSAPP_SENT = "whatsapp_sent"


class TicketPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(slots=True)
class ScheduleInfo:
    """Visit window persisted when a ticket moves to ``SCHEDULED``."""

    date: date
    time_start: time | None = None
    time_end: time | None = None


@dataclass(slots=True)
class Ticket:
    """Contract or fault ticket; only the status field matching ``type`` is meaningful."""

    id: str
    folio: str
    type: TicketType
    full_name: str
    phone: str
    phone_last4: str
    address: str
    created_at: datetime
    updated_at: datetime
    contract_status: TicketStatus | None = None
    fault_status: TicketStatus | None = None
    email: str | None = None
    postal_code: str | None = None
    priority: TicketPriority = TicketPriority.NORMAL
    package_id: str | None = None
    assigned_to: str | None = None
    scheduled_date: date | None = None
    scheduled_time_start: time | None = None
    scheduled_time_end: time | None = None
    public_note: str | None = None

    @property
    def current_status(self) -> TicketStatus:
        raw = self.contract_status if self.type == TicketType.CONTRACT else self.fault_status
        if raw is None:
            raise ValueError(f"Ticket {self.folio} has no {self.type.value} status")
        return parse_status(self.type, raw)

    @property
    def status_field(self) -> str:
        return "contract_status" if self.type == TicketType.CONTRACT else "fault_status"


@dataclass(slots=True)
class StatusHistoryEntry:
    """Immutable audit record of one status change."""

    id: str
    ticket_id: str
    previous_status: str | None
    new_status: str
    changed_by: str | None
    created_at: datetime
    change_reason: str | None = None


@dataclass(slots=True)
class TicketEvent:
    """Append-only note or system annotation attached to a ticket."""

    id: str
    ticket_id: str
    event_type: EventType
    created_at: datetime
    title: str | None = None
    content: str | None = None
    is_visible_to_customer: bool = False
    created_by: str | None = None


@dataclass(slots=True)
class TimelineStep:
    """Derived progress step shown to customers and staff."""

    status: str
    label: str
    completed: bool
    current: bool
    date: datetime | None = None
    note: str | None = None


@dataclass(slots=True)
class TicketDetail:
    """Ticket bundled with its audit trail, event log and computed timeline."""

    ticket: Ticket
    status_history: Sequence[StatusHistoryEntry]
    events: Sequence[TicketEvent]
    timeline: Sequence[TimelineStep] = field(default_factory=list)


@dataclass(slots=True)
class TicketPage:
    """One page of a filtered ticket listing."""

    items: Sequence[Ticket]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)
