"""Database models and utilities."""

from .models import (
    CommunityTable,
    MunicipalityTable,
    PostalCodeTable,
    ServicePackageTable,
    TicketEventTable,
    TicketStatusHistoryTable,
    TicketTable,
)

__all__ = [
    "CommunityTable",
    "MunicipalityTable",
    "PostalCodeTable",
    "ServicePackageTable",
    "TicketEventTable",
    "TicketStatusHistoryTable",
    "TicketTable",
]
