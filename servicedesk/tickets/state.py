"""Status vocabularies, canonical progress sequences and transition rules.

Every module that reasons about ticket statuses imports from here; status
strings must not be spelled out anywhere else.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Sequence, Union

from .errors import InvalidTicketTransitionError


class TicketType(str, Enum):
    """Discriminant selecting which status vocabulary a ticket uses."""

    CONTRACT = "contract"
    FAULT = "fault"


class ContractStatus(str, Enum):
    """Lifecycle of a new-service installation request."""

    NEW = "NEW"
    VALIDATION = "VALIDATION"
    CONTACTED = "CONTACTED"
    SCHEDULED = "SCHEDULED"
    IN_ROUTE = "IN_ROUTE"
    INSTALLED = "INSTALLED"
    CANCELLED = "CANCELLED"
    OUT_OF_COVERAGE = "OUT_OF_COVERAGE"
    DUPLICATE = "DUPLICATE"


class FaultStatus(str, Enum):
    """Lifecycle of a reported service problem."""

    NEW = "NEW"
    DIAGNOSIS = "DIAGNOSIS"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    NOT_APPLICABLE = "NOT_APPLICABLE"


TicketStatus = Union[ContractStatus, FaultStatus]


class InvalidTicketStatusError(ValueError):
    """Raised when a status string does not belong to the ticket type's vocabulary."""


_STATUS_ENUMS: Mapping[TicketType, type[ContractStatus] | type[FaultStatus]] = {
    TicketType.CONTRACT: ContractStatus,
    TicketType.FAULT: FaultStatus,
}

CANONICAL_STEPS: Mapping[TicketType, tuple[TicketStatus, ...]] = {
    TicketType.CONTRACT: (
        ContractStatus.NEW,
        ContractStatus.VALIDATION,
        ContractStatus.CONTACTED,
        ContractStatus.SCHEDULED,
        ContractStatus.IN_ROUTE,
        ContractStatus.INSTALLED,
    ),
    TicketType.FAULT: (
        FaultStatus.NEW,
        FaultStatus.DIAGNOSIS,
        FaultStatus.SCHEDULED,
        FaultStatus.IN_PROGRESS,
        FaultStatus.RESOLVED,
    ),
}

TERMINAL_STATUSES: Mapping[TicketType, frozenset[TicketStatus]] = {
    TicketType.CONTRACT: frozenset(
        {ContractStatus.CANCELLED, ContractStatus.OUT_OF_COVERAGE, ContractStatus.DUPLICATE}
    ),
    TicketType.FAULT: frozenset({FaultStatus.CLOSED, FaultStatus.NOT_APPLICABLE}),
}

_STATUS_LABELS: Mapping[TicketType, Mapping[str, str]] = {
    TicketType.CONTRACT: {
        "NEW": "Recibida",
        "VALIDATION": "En validación",
        "CONTACTED": "Contactado",
        "SCHEDULED": "Cita agendada",
        "IN_ROUTE": "Técnico en camino",
        "INSTALLED": "Instalado ✓",
        "CANCELLED": "Cancelado",
        "OUT_OF_COVERAGE": "Fuera de cobertura",
        "DUPLICATE": "Duplicado",
    },
    TicketType.FAULT: {
        "NEW": "Reportado",
        "DIAGNOSIS": "En diagnóstico",
        "SCHEDULED": "Visita agendada",
        "IN_PROGRESS": "En reparación",
        "RESOLVED": "Resuelto ✓",
        "CLOSED": "Cerrado",
        "NOT_APPLICABLE": "No aplica",
    },
}

_TYPE_LABELS: Mapping[TicketType, str] = {
    TicketType.CONTRACT: "Contratación",
    TicketType.FAULT: "Reporte de Falla",
}

FOLIO_PREFIXES: Mapping[TicketType, str] = {
    TicketType.CONTRACT: "CON",
    TicketType.FAULT: "FAL",
}


def parse_status(ticket_type: TicketType | str, value: TicketStatus | str) -> TicketStatus:
    """Resolve ``value`` within the vocabulary of ``ticket_type``."""

    ticket_type = TicketType(ticket_type)
    enum_cls = _STATUS_ENUMS[ticket_type]
    raw = value.value if isinstance(value, Enum) else str(value)
    try:
        return enum_cls(raw)
    except ValueError as exc:
        raise InvalidTicketStatusError(
            f"'{raw}' is not a valid {ticket_type.value} status"
        ) from exc


def statuses_for(ticket_type: TicketType) -> tuple[TicketStatus, ...]:
    return tuple(_STATUS_ENUMS[TicketType(ticket_type)])


def is_terminal(ticket_type: TicketType, status: TicketStatus | str) -> bool:
    return parse_status(ticket_type, status) in TERMINAL_STATUSES[TicketType(ticket_type)]


def status_label(ticket_type: TicketType | str, status: TicketStatus | str) -> str:
    """Customer-facing label; unknown statuses fall back to the raw value."""

    raw = status.value if isinstance(status, Enum) else str(status)
    return _STATUS_LABELS[TicketType(ticket_type)].get(raw, raw)


def type_label(ticket_type: TicketType | str) -> str:
    return _TYPE_LABELS[TicketType(ticket_type)]


TransitionTable = Mapping[TicketStatus, Sequence[TicketStatus]]


class TicketStateMachine:
    """Validate ticket lifecycle transitions per ticket type.

    The default tables describe the expected forward flow plus the exits to
    terminal statuses. Callers may supply their own tables, and staff
    overrides are handled by the service rather than here.
    """

    _DEFAULT_TRANSITIONS: Mapping[TicketType, TransitionTable] = {
        TicketType.CONTRACT: {
            ContractStatus.NEW: (
                ContractStatus.VALIDATION,
                ContractStatus.CONTACTED,
                ContractStatus.CANCELLED,
                ContractStatus.OUT_OF_COVERAGE,
                ContractStatus.DUPLICATE,
            ),
            ContractStatus.VALIDATION: (
                ContractStatus.CONTACTED,
                ContractStatus.CANCELLED,
                ContractStatus.OUT_OF_COVERAGE,
                ContractStatus.DUPLICATE,
            ),
            ContractStatus.CONTACTED: (
                ContractStatus.SCHEDULED,
                ContractStatus.CANCELLED,
                ContractStatus.OUT_OF_COVERAGE,
            ),
            ContractStatus.SCHEDULED: (
                ContractStatus.IN_ROUTE,
                ContractStatus.CONTACTED,
                ContractStatus.CANCELLED,
            ),
            ContractStatus.IN_ROUTE: (
                ContractStatus.INSTALLED,
                ContractStatus.SCHEDULED,
                ContractStatus.CANCELLED,
            ),
            ContractStatus.INSTALLED: (),
            ContractStatus.CANCELLED: (),
            ContractStatus.OUT_OF_COVERAGE: (),
            ContractStatus.DUPLICATE: (),
        },
        TicketType.FAULT: {
            FaultStatus.NEW: (
                FaultStatus.DIAGNOSIS,
                FaultStatus.SCHEDULED,
                FaultStatus.NOT_APPLICABLE,
                FaultStatus.CLOSED,
            ),
            FaultStatus.DIAGNOSIS: (
                FaultStatus.SCHEDULED,
                FaultStatus.IN_PROGRESS,
                FaultStatus.RESOLVED,
                FaultStatus.NOT_APPLICABLE,
                FaultStatus.CLOSED,
            ),
            FaultStatus.SCHEDULED: (
                FaultStatus.IN_PROGRESS,
                FaultStatus.DIAGNOSIS,
                FaultStatus.CLOSED,
            ),
            FaultStatus.IN_PROGRESS: (
                FaultStatus.RESOLVED,
                FaultStatus.SCHEDULED,
                FaultStatus.CLOSED,
            ),
            FaultStatus.RESOLVED: (FaultStatus.CLOSED, FaultStatus.IN_PROGRESS),
            FaultStatus.CLOSED: (),
            FaultStatus.NOT_APPLICABLE: (),
        },
    }

    def __init__(self, transitions: Mapping[TicketType, TransitionTable] | None = None) -> None:
        self._transitions = transitions or self._DEFAULT_TRANSITIONS

    @staticmethod
    def initial_state(ticket_type: TicketType) -> TicketStatus:
        return CANONICAL_STEPS[TicketType(ticket_type)][0]

    def allowed_targets(self, ticket_type: TicketType, current: TicketStatus) -> tuple[TicketStatus, ...]:
        table = self._transitions.get(TicketType(ticket_type), {})
        return tuple(table.get(current, ()))

    def can_transition(self, ticket_type: TicketType, current: TicketStatus, new: TicketStatus) -> bool:
        if current == new:
            return True
        return new in self.allowed_targets(ticket_type, current)

    def sources_for(self, ticket_type: TicketType, new: TicketStatus) -> frozenset[TicketStatus]:
        """Statuses from which ``new`` may be reached, ``new`` itself included."""

        return frozenset(
            status for status in statuses_for(ticket_type) if self.can_transition(ticket_type, status, new)
        )

    def assert_transition(self, ticket_type: TicketType, current: TicketStatus, new: TicketStatus) -> None:
        if not self.can_transition(ticket_type, current, new):
            raise InvalidTicketTransitionError(
                f"Cannot transition {TicketType(ticket_type).value} ticket "
                f"from {current.value} to {new.value}"
            )
