from __future__ import annotations

from datetime import date, time

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel import select

from factories import BASE_TIME, history, make_ticket

from servicedesk.db import TicketEventTable, TicketStatusHistoryTable, TicketTable
from servicedesk.tickets import (
    ContractStatus,
    DuplicateFolioError,
    EventType,
    FaultStatus,
    InvalidTicketTransitionError,
    ScheduleInfo,
    TicketPersistenceError,
    TicketRepository,
    TicketService,
    TicketType,
)


@pytest.fixture
def repository(session_factory: async_sessionmaker, engine: AsyncEngine) -> TicketRepository:
    return TicketRepository(session_factory, engine=engine)


async def _seed(repository: TicketRepository, **kwargs):
    ticket = make_ticket(**kwargs)
    await repository.create_ticket(
        ticket, history(ticket.current_status, 0, ticket_id=ticket.id)
    )
    return ticket


@pytest.mark.asyncio
async def test_ensure_schema_creates_tables(engine: AsyncEngine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    repository = TicketRepository(factory, engine=engine)

    await repository.ensure_schema()

    async with engine.begin() as conn:
        tables = await conn.run_sync(lambda sync_conn: set(sa_inspect(sync_conn).get_table_names()))

    assert {"tickets", "ticket_status_history", "ticket_events", "postal_codes"} <= tables


@pytest.mark.asyncio
async def test_create_and_load_ticket(repository: TicketRepository):
    await _seed(repository)

    loaded = await repository.get_ticket("ticket-1")

    assert loaded is not None
    assert loaded.folio == "CON-2025-000001"
    assert loaded.current_status is ContractStatus.NEW
    assert loaded.created_at.tzinfo is not None
    assert await repository.get_ticket("missing") is None


@pytest.mark.asyncio
async def test_apply_status_change_writes_status_history_and_event(
    repository: TicketRepository, session_factory: async_sessionmaker
):
    await _seed(repository, status=ContractStatus.IN_ROUTE)

    result = await repository.apply_status_change(
        "ticket-1",
        new_status=ContractStatus.INSTALLED,
        actor="tech",
        event_title="Estado cambiado a Instalado ✓",
        reason="done",
    )

    assert result is not None
    assert result.ticket.contract_status is ContractStatus.INSTALLED
    assert result.history.previous_status == "IN_ROUTE"
    assert result.history.new_status == "INSTALLED"
    assert result.history.change_reason == "done"
    assert result.event.event_type is EventType.STATUS_CHANGE
    assert result.event.content == "done"
    assert result.event.is_visible_to_customer is False

    async with session_factory() as session:
        row = await session.get(TicketTable, "ticket-1")
        history_rows = (
            await session.execute(
                select(TicketStatusHistoryTable).where(TicketStatusHistoryTable.ticket_id == "ticket-1")
            )
        ).scalars().all()
        event_rows = (await session.execute(select(TicketEventTable))).scalars().all()
    assert row.contract_status == "INSTALLED"
    assert len(history_rows) == 2
    assert len(event_rows) == 1


@pytest.mark.asyncio
async def test_apply_status_change_reads_previous_status_from_row(repository: TicketRepository):
    await _seed(repository, ticket_type=TicketType.FAULT, folio="FAL-2025-000001", status=FaultStatus.NEW)

    first = await repository.apply_status_change(
        "ticket-1", new_status=FaultStatus.DIAGNOSIS, actor="tech", event_title="t"
    )
    second = await repository.apply_status_change(
        "ticket-1", new_status=FaultStatus.IN_PROGRESS, actor="tech", event_title="t"
    )

    assert first.history.previous_status == "NEW"
    assert second.history.previous_status == "DIAGNOSIS"
    assert second.ticket.fault_status is FaultStatus.IN_PROGRESS
    assert second.ticket.contract_status is None


@pytest.mark.asyncio
async def test_schedule_is_persisted_only_for_scheduled_status(repository: TicketRepository):
    await _seed(repository, status=ContractStatus.CONTACTED)
    schedule = ScheduleInfo(date=date(2025, 1, 10), time_start=time(9, 0), time_end=time(12, 0))

    ignored = await repository.apply_status_change(
        "ticket-1", new_status=ContractStatus.CONTACTED, actor="counter", event_title="t", schedule=schedule
    )
    assert ignored.ticket.scheduled_date is None

    result = await repository.apply_status_change(
        "ticket-1", new_status=ContractStatus.SCHEDULED, actor="counter", event_title="t", schedule=schedule
    )
    assert result.ticket.scheduled_date == date(2025, 1, 10)
    assert result.ticket.scheduled_time_start == time(9, 0)
    assert result.ticket.scheduled_time_end == time(12, 0)


@pytest.mark.asyncio
async def test_apply_status_change_on_missing_ticket_returns_none(repository: TicketRepository):
    result = await repository.apply_status_change(
        "missing", new_status=ContractStatus.VALIDATION, actor="counter", event_title="t"
    )

    assert result is None


@pytest.mark.asyncio
async def test_public_note_updates_cache_and_internal_note_does_not(repository: TicketRepository):
    await _seed(repository)

    internal = await repository.add_note("ticket-1", content="llamar tarde", is_public=False, actor="counter")
    public = await repository.add_note("ticket-1", content="Te contactaremos hoy", is_public=True, actor="counter")

    assert internal.event.event_type is EventType.NOTE_INTERNAL
    assert internal.ticket.public_note is None
    assert public.event.event_type is EventType.NOTE_PUBLIC
    assert public.event.is_visible_to_customer is True
    assert public.ticket.public_note == "Te contactaremos hoy"

    visible = await repository.get_events("ticket-1", visible_only=True)
    assert [item.content for item in visible] == ["Te contactaremos hoy"]
    assert len(await repository.get_events("ticket-1")) == 2


@pytest.mark.asyncio
async def test_find_for_tracking_requires_both_predicates(repository: TicketRepository):
    await _seed(repository, phone="9611231234")

    assert await repository.find_for_tracking("CON-2025-000001", "1234") is not None
    assert await repository.find_for_tracking("CON-2025-000001", "9999") is None
    assert await repository.find_for_tracking("CON-2025-000002", "1234") is None


@pytest.mark.asyncio
async def test_last_folio_and_listing(repository: TicketRepository):
    await _seed(repository, ticket_id="a", folio="CON-2025-000001")
    await _seed(repository, ticket_id="b", folio="CON-2025-000002", full_name="Juan Pérez")
    await _seed(
        repository, ticket_id="c", folio="FAL-2025-000001", ticket_type=TicketType.FAULT, status=FaultStatus.NEW
    )

    assert await repository.last_folio("CON-2025-") == "CON-2025-000002"
    assert await repository.last_folio("CON-2026-") is None

    page = await repository.list_tickets(ticket_type=TicketType.CONTRACT, page=1, limit=1)
    assert page.total == 2
    assert page.total_pages == 2
    assert len(page.items) == 1

    searched = await repository.list_tickets(ticket_type=TicketType.CONTRACT, search="juan")
    assert [item.folio for item in searched.items] == ["CON-2025-000002"]

    filtered = await repository.list_tickets(ticket_type=TicketType.FAULT, status=FaultStatus.NEW)
    assert [item.id for item in filtered.items] == ["c"]


@pytest.mark.asyncio
async def test_history_ordering(repository: TicketRepository):
    await _seed(repository)
    await repository.apply_status_change(
        "ticket-1", new_status=ContractStatus.VALIDATION, actor="counter", event_title="t"
    )

    ascending = await repository.get_status_history("ticket-1")
    descending = await repository.get_status_history("ticket-1", newest_first=True)

    assert [entry.new_status for entry in ascending] == ["NEW", "VALIDATION"]
    assert [entry.new_status for entry in descending] == ["VALIDATION", "NEW"]
    assert ascending[0].created_at == BASE_TIME


@pytest.mark.asyncio
async def test_storage_failures_are_wrapped(repository: TicketRepository, engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE ticket_events")

    with pytest.raises(TicketPersistenceError) as exc:
        await repository.get_events("ticket-1")

    assert isinstance(exc.value.__cause__, OperationalError)


@pytest.mark.asyncio
async def test_apply_status_change_rechecks_status_under_lock(repository: TicketRepository):
    await _seed(repository, status=ContractStatus.INSTALLED)

    with pytest.raises(InvalidTicketTransitionError):
        await repository.apply_status_change(
            "ticket-1",
            new_status=ContractStatus.CANCELLED,
            actor="counter",
            event_title="t",
            allowed_from={ContractStatus.IN_ROUTE, ContractStatus.CANCELLED},
        )

    entries = await repository.get_status_history("ticket-1")
    assert [entry.new_status for entry in entries] == ["INSTALLED"]
    assert await repository.get_events("ticket-1") == []
    assert (await repository.get_ticket("ticket-1")).current_status is ContractStatus.INSTALLED


class _RacingRepository(TicketRepository):
    """Lets another writer install the ticket right after the service has read it."""

    raced = False

    async def get_ticket(self, ticket_id: str):
        ticket = await super().get_ticket(ticket_id)
        if not self.raced:
            self.raced = True
            await super().apply_status_change(
                ticket_id, new_status=ContractStatus.INSTALLED, actor="tech", event_title="t"
            )
        return ticket


@pytest.mark.asyncio
async def test_concurrent_change_cannot_bypass_transition_table(session_factory, engine, registry):
    repository = _RacingRepository(session_factory, engine=engine)
    await _seed(repository, status=ContractStatus.IN_ROUTE)
    service = TicketService(repository, metrics=registry)

    with pytest.raises(InvalidTicketTransitionError):
        await service.change_status("ticket-1", new_status="CANCELLED", actor="counter")

    entries = await repository.get_status_history("ticket-1")
    assert [(entry.previous_status, entry.new_status) for entry in entries] == [
        (None, "IN_ROUTE"),
        ("IN_ROUTE", "INSTALLED"),
    ]
    assert registry.counter("ticket_status_transitions_rejected_total").value({"ticket_type": "contract"}) == 1


@pytest.mark.asyncio
async def test_create_ticket_reports_taken_folio(repository: TicketRepository):
    await _seed(repository)
    clash = make_ticket(ticket_id="ticket-2", folio="CON-2025-000001")

    with pytest.raises(DuplicateFolioError):
        await repository.create_ticket(clash, history(ContractStatus.NEW, 0, ticket_id="ticket-2"))

    assert await repository.get_ticket("ticket-2") is None
