"""Customer-facing timeline reconstruction from status history and events."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from .models import EventType, StatusHistoryEntry, TicketEvent, TimelineStep
from .state import (
    CANONICAL_STEPS,
    TERMINAL_STATUSES,
    TicketStatus,
    TicketType,
    parse_status,
    status_label,
)


def _latest_entry_by_status(history: Iterable[StatusHistoryEntry]) -> dict[str, StatusHistoryEntry]:
    latest: dict[str, StatusHistoryEntry] = {}
    for entry in history:
        known = latest.get(entry.new_status)
        if known is None or entry.created_at >= known.created_at:
            latest[entry.new_status] = entry
    return latest


def _reached_step_count(steps: Sequence[TicketStatus], history: Iterable[StatusHistoryEntry]) -> int:
    """Number of canonical steps up to the furthest one recorded in the history."""

    positions = {step.value: index for index, step in enumerate(steps)}
    reached = [positions[entry.new_status] + 1 for entry in history if entry.new_status in positions]
    return max(reached, default=0)


def _note_for(since: datetime, events: Sequence[TicketEvent]) -> str | None:
    for event in events:
        if event.event_type != EventType.NOTE_PUBLIC:
            continue
        if event.created_at >= since:
            return event.content or None
    return None


def build_timeline(
    ticket_type: TicketType | str,
    current_status: TicketStatus | str,
    status_history: Sequence[StatusHistoryEntry],
    public_events: Sequence[TicketEvent],
) -> list[TimelineStep]:
    """Return the canonical progress steps for a ticket.

    ``public_events`` must already be restricted to customer-visible entries.
    For a terminal status no step is current; steps up to and including the
    furthest canonical status found in the history are considered completed.
    """

    ticket_type = TicketType(ticket_type)
    current = parse_status(ticket_type, current_status)
    steps = CANONICAL_STEPS[ticket_type]

    if current in TERMINAL_STATUSES[ticket_type]:
        completed_until = _reached_step_count(steps, status_history)
    else:
        completed_until = steps.index(current)

    events = sorted(public_events, key=lambda event: event.created_at)
    latest = _latest_entry_by_status(status_history)

    timeline: list[TimelineStep] = []
    for index, step in enumerate(steps):
        entry = latest.get(step.value)
        timeline.append(
            TimelineStep(
                status=step.value,
                label=status_label(ticket_type, step),
                completed=index < completed_until,
                current=step == current,
                date=entry.created_at if entry is not None else None,
                note=_note_for(entry.created_at, events) if entry is not None else None,
            )
        )
    return timeline
