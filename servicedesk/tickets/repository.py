from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Collection, Iterator, Protocol, Sequence

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from servicedesk.db.models import TicketEventTable, TicketStatusHistoryTable, TicketTable

from .errors import DuplicateFolioError, InvalidTicketTransitionError, TicketPersistenceError
from .models import (
    EventType,
    ScheduleInfo,
    StatusHistoryEntry,
    Ticket,
    TicketEvent,
    TicketPage,
    TicketPriority,
)
from .state import ContractStatus, TicketStatus, TicketType, parse_status

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusChangeResult:
    """Rows written by a single status transition."""

    ticket: Ticket
    history: StatusHistoryEntry
    event: TicketEvent


@dataclass(slots=True)
class NoteResult:
    ticket: Ticket
    event: TicketEvent


class TicketStore(Protocol):
    """Storage contract consumed by the ticket and tracking services."""

    async def create_ticket(self, ticket: Ticket, history: StatusHistoryEntry) -> Ticket: ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None: ...

    async def find_for_tracking(self, folio: str, phone_last4: str) -> Ticket | None: ...

    async def last_folio(self, prefix: str) -> str | None: ...

    async def list_tickets(
        self,
        *,
        ticket_type: TicketType,
        status: TicketStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 15,
    ) -> TicketPage: ...

    async def apply_status_change(
        self,
        ticket_id: str,
        *,
        new_status: TicketStatus,
        actor: str,
        event_title: str,
        reason: str | None = None,
        schedule: ScheduleInfo | None = None,
        allowed_from: Collection[TicketStatus] | None = None,
    ) -> StatusChangeResult | None: ...

    async def add_note(
        self,
        ticket_id: str,
        *,
        content: str,
        is_public: bool,
        actor: str,
    ) -> NoteResult | None: ...

    async def get_status_history(
        self, ticket_id: str, *, newest_first: bool = False
    ) -> list[StatusHistoryEntry]: ...

    async def get_events(
        self, ticket_id: str, *, visible_only: bool = False, newest_first: bool = False
    ) -> list[TicketEvent]: ...


@contextmanager
def _persistence_guard(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Ticket store failed to %s", action)
        raise TicketPersistenceError(f"Failed to {action}: {exc.__class__.__name__}") from exc


class TicketRepository:
    """Persistence helper wrapping ``tickets``, ``ticket_status_history`` and ``ticket_events``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(self, ticket: Ticket, history: StatusHistoryEntry) -> Ticket:
        with _persistence_guard("create ticket"):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        row = TicketTable(
                            id=ticket.id,
                            folio=ticket.folio,
                            type=ticket.type.value,
                            contract_status=_status_value(ticket.contract_status),
                            fault_status=_status_value(ticket.fault_status),
                            full_name=ticket.full_name,
                            phone=ticket.phone,
                            phone_last4=ticket.phone_last4,
                            email=ticket.email,
                            address=ticket.address,
                            postal_code=ticket.postal_code,
                            priority=ticket.priority.value,
                            package_id=ticket.package_id,
                            assigned_to=ticket.assigned_to,
                            public_note=ticket.public_note,
                            created_at=ticket.created_at,
                            updated_at=ticket.updated_at,
                        )
                        session.add(row)
                        session.add(_history_row(history))
            except IntegrityError as exc:
                if await self._folio_taken(ticket.folio):
                    raise DuplicateFolioError(f"Folio {ticket.folio} is already taken") from exc
                raise
        return ticket

    async def _folio_taken(self, folio: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(select(TicketTable.id).where(TicketTable.folio == folio))
            return result.first() is not None

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        with _persistence_guard("load ticket"):
            async with self._session_factory() as session:
                row = await session.get(TicketTable, ticket_id)
        return self._table_to_ticket(row) if row is not None else None

    async def find_for_tracking(self, folio: str, phone_last4: str) -> Ticket | None:
        """Return the ticket only when folio and phone suffix both match."""

        statement = select(TicketTable).where(
            TicketTable.folio == folio,
            TicketTable.phone_last4 == phone_last4,
        )
        with _persistence_guard("look up ticket by folio"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.scalars().first()
        return self._table_to_ticket(row) if row is not None else None

    async def last_folio(self, prefix: str) -> str | None:
        statement = select(func.max(TicketTable.folio)).where(TicketTable.folio.like(f"{prefix}%"))
        with _persistence_guard("read folio sequence"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return result.scalar_one_or_none()

    async def list_tickets(
        self,
        *,
        ticket_type: TicketType,
        status: TicketStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 15,
    ) -> TicketPage:
        ticket_type = TicketType(ticket_type)
        filters = [TicketTable.type == ticket_type.value]
        if status is not None:
            column = (
                TicketTable.contract_status
                if ticket_type == TicketType.CONTRACT
                else TicketTable.fault_status
            )
            filters.append(column == parse_status(ticket_type, status).value)
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(
                or_(
                    TicketTable.folio.ilike(pattern),
                    TicketTable.full_name.ilike(pattern),
                    TicketTable.phone.ilike(pattern),
                )
            )

        page = max(1, page)
        limit = max(1, limit)
        with _persistence_guard("list tickets"):
            async with self._session_factory() as session:
                total = await session.scalar(
                    select(func.count()).select_from(TicketTable).where(*filters)
                )
                result = await session.execute(
                    select(TicketTable)
                    .where(*filters)
                    .order_by(TicketTable.created_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
                rows = result.scalars().all()
        return TicketPage(
            items=[self._table_to_ticket(row) for row in rows],
            total=int(total or 0),
            page=page,
            limit=limit,
        )

    async def apply_status_change(
        self,
        ticket_id: str,
        *,
        new_status: TicketStatus,
        actor: str,
        event_title: str,
        reason: str | None = None,
        schedule: ScheduleInfo | None = None,
        allowed_from: Collection[TicketStatus] | None = None,
    ) -> StatusChangeResult | None:
        """Update the status column and append history + event in one transaction.

        ``previous_status`` is read from the locked row inside the transaction. When
        ``allowed_from`` is given, the locked status must be one of them or
        :class:`InvalidTicketTransitionError` is raised and nothing is written.
        """

        now = datetime.now(timezone.utc)
        with _persistence_guard("apply status change"):
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(TicketTable, ticket_id, with_for_update=True)
                    if row is None:
                        return None
                    is_contract = row.type == TicketType.CONTRACT.value
                    previous = row.contract_status if is_contract else row.fault_status
                    allowed = None if allowed_from is None else {status.value for status in allowed_from}
                    if allowed is not None and previous not in allowed:
                        raise InvalidTicketTransitionError(
                            f"Cannot transition {row.type} ticket {row.folio} from {previous} to {new_status.value}"
                        )
                    if is_contract:
                        row.contract_status = new_status.value
                    else:
                        row.fault_status = new_status.value
                    if new_status.value == ContractStatus.SCHEDULED.value and schedule is not None:
                        row.scheduled_date = schedule.date
                        row.scheduled_time_start = schedule.time_start
                        row.scheduled_time_end = schedule.time_end
                    row.updated_at = now

                    history_row = TicketStatusHistoryTable(
                        ticket_id=ticket_id,
                        previous_status=previous,
                        new_status=new_status.value,
                        change_reason=reason,
                        changed_by=actor,
                        created_at=now,
                    )
                    event_row = TicketEventTable(
                        ticket_id=ticket_id,
                        event_type=EventType.STATUS_CHANGE.value,
                        title=event_title,
                        content=reason,
                        is_visible_to_customer=False,
                        created_by=actor,
                        created_at=now,
                    )
                    session.add(history_row)
                    session.add(event_row)
                    await session.flush()
                    change = StatusChangeResult(
                        ticket=self._table_to_ticket(row),
                        history=self._table_to_history(history_row),
                        event=self._table_to_event(event_row),
                    )
        return change

    async def add_note(
        self,
        ticket_id: str,
        *,
        content: str,
        is_public: bool,
        actor: str,
    ) -> NoteResult | None:
        now = datetime.now(timezone.utc)
        with _persistence_guard("add note"):
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(TicketTable, ticket_id, with_for_update=True)
                    if row is None:
                        return None
                    event_row = TicketEventTable(
                        ticket_id=ticket_id,
                        event_type=(EventType.NOTE_PUBLIC if is_public else EventType.NOTE_INTERNAL).value,
                        content=content,
                        is_visible_to_customer=is_public,
                        created_by=actor,
                        created_at=now,
                    )
                    session.add(event_row)
                    if is_public:
                        row.public_note = content
                        row.updated_at = now
                    await session.flush()
                    note = NoteResult(
                        ticket=self._table_to_ticket(row),
                        event=self._table_to_event(event_row),
                    )
        return note

    async def get_status_history(
        self, ticket_id: str, *, newest_first: bool = False
    ) -> list[StatusHistoryEntry]:
        order = (
            TicketStatusHistoryTable.created_at.desc()
            if newest_first
            else TicketStatusHistoryTable.created_at.asc()
        )
        statement = (
            select(TicketStatusHistoryTable)
            .where(TicketStatusHistoryTable.ticket_id == ticket_id)
            .order_by(order)
        )
        with _persistence_guard("load status history"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = result.scalars().all()
        return [self._table_to_history(row) for row in rows]

    async def get_events(
        self, ticket_id: str, *, visible_only: bool = False, newest_first: bool = False
    ) -> list[TicketEvent]:
        statement = select(TicketEventTable).where(TicketEventTable.ticket_id == ticket_id)
        if visible_only:
            statement = statement.where(TicketEventTable.is_visible_to_customer.is_(True))
        order = TicketEventTable.created_at.desc() if newest_first else TicketEventTable.created_at.asc()
        with _persistence_guard("load ticket events"):
            async with self._session_factory() as session:
                result = await session.execute(statement.order_by(order))
                rows = result.scalars().all()
        return [self._table_to_event(row) for row in rows]

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        ticket_type = TicketType(row.type)
        return Ticket(
            id=row.id,
            folio=row.folio,
            type=ticket_type,
            contract_status=(
                parse_status(ticket_type, row.contract_status)
                if ticket_type == TicketType.CONTRACT and row.contract_status
                else None
            ),
            fault_status=(
                parse_status(ticket_type, row.fault_status)
                if ticket_type == TicketType.FAULT and row.fault_status
                else None
            ),
            full_name=row.full_name,
            phone=row.phone,
            phone_last4=row.phone_last4,
            email=row.email,
            address=row.address,
            postal_code=row.postal_code,
            priority=TicketPriority(row.priority or TicketPriority.NORMAL.value),
            package_id=row.package_id,
            assigned_to=row.assigned_to,
            scheduled_date=row.scheduled_date,
            scheduled_time_start=row.scheduled_time_start,
            scheduled_time_end=row.scheduled_time_end,
            public_note=row.public_note,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_history(row: TicketStatusHistoryTable) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=row.id,
            ticket_id=row.ticket_id,
            previous_status=row.previous_status,
            new_status=row.new_status,
            change_reason=row.change_reason,
            changed_by=row.changed_by,
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def _table_to_event(row: TicketEventTable) -> TicketEvent:
        return TicketEvent(
            id=row.id,
            ticket_id=row.ticket_id,
            event_type=EventType(row.event_type),
            title=row.title,
            content=row.content,
            is_visible_to_customer=bool(row.is_visible_to_customer),
            created_by=row.created_by,
            created_at=_ensure_datetime(row.created_at),
        )


def _history_row(entry: StatusHistoryEntry) -> TicketStatusHistoryTable:
    return TicketStatusHistoryTable(
        id=entry.id,
        ticket_id=entry.ticket_id,
        previous_status=entry.previous_status,
        new_status=entry.new_status,
        change_reason=entry.change_reason,
        changed_by=entry.changed_by,
        created_at=entry.created_at,
    )


def _status_value(status: TicketStatus | None) -> str | None:
    return status.value if status is not None else None


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")
