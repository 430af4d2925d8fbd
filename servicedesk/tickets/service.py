from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone

from opentelemetry import trace

from servicedesk.metrics import MetricsRegistry, register_default_metrics

from .errors import (
    DuplicateFolioError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketValidationError,
)
from .models import (
    ScheduleInfo,
    StatusHistoryEntry,
    Ticket,
    TicketDetail,
    TicketEvent,
    TicketPage,
    TicketPriority,
)
from .repository import NoteResult, StatusChangeResult, TicketStore
from .state import (
    FOLIO_PREFIXES,
    TicketStateMachine,
    TicketStatus,
    TicketType,
    parse_status,
    status_label,
)
from .timeline import build_timeline

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_PHONE_DIGITS_RE = re.compile(r"\D+")
_FOLIO_SEQUENCE_DIGITS = 6
_FOLIO_ATTEMPTS = 3


class TicketService:
    """High level orchestration for the ticket lifecycle.

    Status changes go through :meth:`change_status`, which is the only place
    that writes a status column, a history row and a ``status_change`` event.
    """

    def __init__(
        self,
        repository: TicketStore,
        *,
        state_machine: TicketStateMachine | None = None,
        enforce_transitions: bool = True,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._repository = repository
        self._state_machine = state_machine or TicketStateMachine()
        self._enforce_transitions = enforce_transitions
        self._metrics = register_default_metrics(metrics)

    async def create_ticket(
        self,
        *,
        ticket_type: TicketType,
        full_name: str,
        phone: str,
        address: str,
        actor: str,
        email: str | None = None,
        postal_code: str | None = None,
        package_id: str | None = None,
        priority: TicketPriority = TicketPriority.NORMAL,
    ) -> Ticket:
        ticket_type = TicketType(ticket_type)
        digits = _PHONE_DIGITS_RE.sub("", phone or "")
        if len(digits) != 10:
            raise TicketValidationError("Phone number must contain exactly 10 digits")

        now = datetime.now(timezone.utc)
        initial = self._state_machine.initial_state(ticket_type)
        ticket = Ticket(
            id=str(uuid.uuid4()),
            folio="",
            type=ticket_type,
            contract_status=initial if ticket_type == TicketType.CONTRACT else None,
            fault_status=initial if ticket_type == TicketType.FAULT else None,
            full_name=full_name.strip(),
            phone=digits,
            phone_last4=digits[-4:],
            email=email or None,
            address=address.strip(),
            postal_code=postal_code,
            package_id=package_id,
            priority=TicketPriority(priority),
            created_at=now,
            updated_at=now,
        )
        history = StatusHistoryEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            previous_status=None,
            new_status=initial.value,
            changed_by=actor,
            created_at=now,
        )
        created: Ticket | None = None
        for attempt in range(1, _FOLIO_ATTEMPTS + 1):
            ticket.folio = await self._next_folio(ticket_type, now.year)
            try:
                created = await self._repository.create_ticket(ticket, history)
                break
            except DuplicateFolioError:
                # Another ticket took the same sequence number first.
                if attempt == _FOLIO_ATTEMPTS:
                    raise
                logger.info("Folio %s already taken, allocating again", ticket.folio)

        logger.info("Created %s ticket %s", ticket_type.value, created.folio)
        return created

    async def _next_folio(self, ticket_type: TicketType, year: int) -> str:
        prefix = f"{FOLIO_PREFIXES[ticket_type]}-{year}-"
        last = await self._repository.last_folio(prefix)
        sequence = 1
        if last:
            try:
                sequence = int(last[len(prefix):]) + 1
            except ValueError:
                logger.warning("Ignoring malformed folio %s while allocating a new one", last)
        return f"{prefix}{sequence:0{_FOLIO_SEQUENCE_DIGITS}d}"

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def get_detail(self, ticket_id: str) -> TicketDetail:
        """Ticket with newest-first history/events and the customer timeline."""

        ticket = await self.get_ticket(ticket_id)
        history = await self._repository.get_status_history(ticket_id)
        events = await self._repository.get_events(ticket_id)
        visible = [event for event in events if event.is_visible_to_customer]
        timeline = build_timeline(ticket.type, ticket.current_status, history, visible)
        return TicketDetail(
            ticket=ticket,
            status_history=list(reversed(history)),
            events=list(reversed(events)),
            timeline=timeline,
        )

    async def list_tickets(
        self,
        *,
        ticket_type: TicketType,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 15,
    ) -> TicketPage:
        parsed = parse_status(ticket_type, status) if status else None
        return await self._repository.list_tickets(
            ticket_type=TicketType(ticket_type),
            status=parsed,
            search=search,
            page=page,
            limit=limit,
        )

    async def get_status_history(self, ticket_id: str) -> list[StatusHistoryEntry]:
        await self.get_ticket(ticket_id)
        return await self._repository.get_status_history(ticket_id, newest_first=True)

    async def get_events(self, ticket_id: str) -> list[TicketEvent]:
        await self.get_ticket(ticket_id)
        return await self._repository.get_events(ticket_id, newest_first=True)

    async def change_status(
        self,
        ticket_id: str,
        *,
        new_status: TicketStatus | str,
        actor: str,
        reason: str | None = None,
        schedule: ScheduleInfo | None = None,
        force: bool = False,
    ) -> StatusChangeResult:
        with tracer.start_as_current_span("tickets.change_status") as span:
            span.set_attribute("ticket.id", ticket_id)
            ticket = await self.get_ticket(ticket_id)
            target = parse_status(ticket.type, new_status)
            current = ticket.current_status

            enforce = self._enforce_transitions and not force
            allowed_from = self._state_machine.sources_for(ticket.type, target) if enforce else None
            try:
                if enforce:
                    self._state_machine.assert_transition(ticket.type, current, target)
                elif force and not self._state_machine.can_transition(ticket.type, current, target):
                    logger.warning(
                        "Forced transition of %s from %s to %s by %s",
                        ticket.folio,
                        current.value,
                        target.value,
                        actor,
                    )

                # The status may have moved since it was read; the store re-checks under the row lock.
                result = await self._repository.apply_status_change(
                    ticket_id,
                    new_status=target,
                    actor=actor,
                    event_title=f"Estado cambiado a {status_label(ticket.type, target)}",
                    reason=reason or None,
                    schedule=schedule,
                    allowed_from=allowed_from,
                )
            except InvalidTicketTransitionError:
                self._metrics.counter("ticket_status_transitions_rejected_total").inc(
                    labels={"ticket_type": ticket.type.value}
                )
                raise

            if result is None:
                raise TicketNotFoundError(f"Ticket {ticket_id} not found")

            span.set_attribute("ticket.status.previous", result.history.previous_status or "")
            span.set_attribute("ticket.status.new", target.value)
            self._metrics.counter("ticket_status_transitions_total").inc(
                labels={"ticket_type": ticket.type.value, "to_status": target.value}
            )
            logger.info(
                "Ticket %s moved %s -> %s by %s",
                ticket.folio,
                result.history.previous_status,
                target.value,
                actor,
            )
            return result

    async def add_note(self, ticket_id: str, *, content: str, is_public: bool, actor: str) -> NoteResult:
        content = (content or "").strip()
        if not content:
            raise TicketValidationError("Note content must not be empty")

        result = await self._repository.add_note(ticket_id, content=content, is_public=is_public, actor=actor)
        if result is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        visibility = "public" if is_public else "internal"
        self._metrics.counter("ticket_notes_total").inc(labels={"visibility": visibility})
        logger.info("Added %s note to ticket %s", visibility, result.ticket.folio)
        return result
