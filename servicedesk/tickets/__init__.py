"""Ticket domain: status vocabularies, lifecycle service and customer tracking."""

from .errors import (
    DuplicateFolioError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketPersistenceError,
    TicketServiceError,
    TicketValidationError,
)
from .models import (
    EventType,
    ScheduleInfo,
    StatusHistoryEntry,
    Ticket,
    TicketDetail,
    TicketEvent,
    TicketPage,
    TicketPriority,
    TimelineStep,
)
from .repository import NoteResult, StatusChangeResult, TicketRepository, TicketStore
from .service import TicketService
from .state import (
    ContractStatus,
    FaultStatus,
    InvalidTicketStatusError,
    TicketStateMachine,
    TicketStatus,
    TicketType,
)
from .timeline import build_timeline
from .tracking import (
    TrackingError,
    TrackingNotFoundError,
    TrackingResult,
    TrackingService,
    TrackingValidationError,
)

__all__ = [
    "ContractStatus",
    "DuplicateFolioError",
    "EventType",
    "FaultStatus",
    "InvalidTicketStatusError",
    "InvalidTicketTransitionError",
    "NoteResult",
    "ScheduleInfo",
    "StatusChangeResult",
    "StatusHistoryEntry",
    "Ticket",
    "TicketDetail",
    "TicketEvent",
    "TicketNotFoundError",
    "TicketPage",
    "TicketPersistenceError",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketStore",
    "TicketType",
    "TicketValidationError",
    "TimelineStep",
    "TrackingError",
    "TrackingNotFoundError",
    "TrackingResult",
    "TrackingService",
    "TrackingValidationError",
    "build_timeline",
]
