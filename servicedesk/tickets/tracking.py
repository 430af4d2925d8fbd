"""Anonymous folio tracking for customers.

A lookup needs both the folio and the last four digits of the registered
phone. Malformed input and a failed match produce the same error so the
endpoint cannot be used to discover which folios exist.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Sequence

from opentelemetry import trace

from servicedesk.metrics import MetricsRegistry, register_default_metrics
from servicedesk.security.rate_limit import RateLimiter, RateLimitExceededError

from .models import TimelineStep
from .repository import TicketStore
from .state import TicketType, status_label, type_label
from .timeline import build_timeline

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

FOLIO_PATTERN = re.compile(r"^(CON|FAL)-\d{4}-\d{6}$")
PHONE_SUFFIX_PATTERN = re.compile(r"^\d{4}$")

GENERIC_NOT_FOUND_MESSAGE = (
    "No se encontró la solicitud. Verifica que el folio y los dígitos sean correctos."
)
TRACK_POLICY = "track_folio"


class TrackingError(LookupError):
    """Base class for lookups that must look identical to the customer."""

    def __init__(self, message: str = GENERIC_NOT_FOUND_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class TrackingValidationError(TrackingError):
    """Folio or phone suffix is malformed."""


class TrackingNotFoundError(TrackingError):
    """No ticket matches the folio and phone suffix together."""


@dataclass(slots=True)
class TrackingResult:
    """Customer-safe projection of a ticket."""

    folio: str
    type: TicketType
    type_label: str
    current_status: str
    status_label: str
    created_at: datetime
    timeline: Sequence[TimelineStep] = field(default_factory=list)
    scheduled_date: date | None = None
    scheduled_time: str | None = None
    public_note: str | None = None
    found: bool = True


def normalize_folio(folio: str | None) -> str:
    return (folio or "").strip().upper()


def normalize_phone_suffix(phone_last4: str | None) -> str:
    return (phone_last4 or "").strip()


class TrackingService:
    """Resolve a folio plus phone suffix into a :class:`TrackingResult`."""

    def __init__(
        self,
        repository: TicketStore,
        rate_limiter: RateLimiter,
        *,
        policy: str = TRACK_POLICY,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._repository = repository
        self._rate_limiter = rate_limiter
        self._policy = policy
        self._metrics = register_default_metrics(metrics)

    def _record(self, outcome: str) -> None:
        self._metrics.counter("tracking_requests_total").inc(labels={"outcome": outcome})

    async def track(self, folio: str | None, phone_last4: str | None, client_ip: str) -> TrackingResult:
        with tracer.start_as_current_span("tickets.track") as span:
            try:
                await self._rate_limiter.check(self._policy, client_ip)
            except RateLimitExceededError:
                self._record("rate_limited")
                raise

            with self._metrics.time("tracking_lookup_duration_seconds"):
                folio = normalize_folio(folio)
                phone_last4 = normalize_phone_suffix(phone_last4)
                if not FOLIO_PATTERN.match(folio) or not PHONE_SUFFIX_PATTERN.match(phone_last4):
                    self._record("invalid")
                    span.set_attribute("tracking.outcome", "invalid")
                    raise TrackingValidationError()

                ticket = await self._repository.find_for_tracking(folio, phone_last4)
                if ticket is None:
                    self._record("not_found")
                    span.set_attribute("tracking.outcome", "not_found")
                    logger.info("Tracking lookup without match from %s", client_ip)
                    raise TrackingNotFoundError()

                history = await self._repository.get_status_history(ticket.id)
                events = await self._repository.get_events(ticket.id, visible_only=True)

            current = ticket.current_status
            timeline = build_timeline(ticket.type, current, history, events)
            self._record("found")
            span.set_attribute("tracking.outcome", "found")
            return TrackingResult(
                folio=ticket.folio,
                type=ticket.type,
                type_label=type_label(ticket.type),
                current_status=current.value,
                status_label=status_label(ticket.type, current),
                created_at=ticket.created_at,
                timeline=timeline,
                scheduled_date=ticket.scheduled_date,
                scheduled_time=_format_window(ticket.scheduled_time_start, ticket.scheduled_time_end),
                public_note=ticket.public_note,
            )


def _format_window(start: time | None, end: time | None) -> str | None:
    if start is None or end is None:
        return None
    return f"{start.strftime('%H:%M')} - {end.strftime('%H:%M')}"
