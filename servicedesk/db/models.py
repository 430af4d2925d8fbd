"""SQLModel table definitions for the service desk data layer."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Time,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class ServicePackageTable(SQLModel, table=True):
    """Internet/TV plans offered to customers."""

    __tablename__ = "service_packages"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    type: str = Field(sa_column=Column(String(50), nullable=False))
    speed_mbps: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    channels_count: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    monthly_price: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    features: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))


class TicketTable(SQLModel, table=True):
    """Contract and fault tickets; ``type`` selects the meaningful status column."""

    __tablename__ = "tickets"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    folio: str = Field(sa_column=Column(String(32), nullable=False, unique=True, index=True))
    type: str = Field(sa_column=Column(String(20), nullable=False, index=True))
    contract_status: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    fault_status: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    full_name: str = Field(sa_column=Column(String(255), nullable=False))
    phone: str = Field(sa_column=Column(String(20), nullable=False))
    phone_last4: str = Field(sa_column=Column(String(4), nullable=False))
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    address: str = Field(sa_column=Column(Text, nullable=False))
    postal_code: str | None = Field(default=None, sa_column=Column(String(5), nullable=True))
    priority: str = Field(default="normal", sa_column=Column(String(20), nullable=False))
    package_id: str | None = Field(
        default=None,
        sa_column=Column(String(36), ForeignKey("service_packages.id", ondelete="SET NULL"), nullable=True),
    )
    assigned_to: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    scheduled_date: date | None = Field(default=None, sa_column=Column(Date, nullable=True))
    scheduled_time_start: time | None = Field(default=None, sa_column=Column(Time, nullable=True))
    scheduled_time_end: time | None = Field(default=None, sa_column=Column(Time, nullable=True))
    public_note: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketStatusHistoryTable(SQLModel, table=True):
    """Append-only audit trail of status transitions."""

    __tablename__ = "ticket_status_history"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    previous_status: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    new_status: str = Field(sa_column=Column(String(50), nullable=False))
    change_reason: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    changed_by: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketEventTable(SQLModel, table=True):
    """Append-only notes and system annotations."""

    __tablename__ = "ticket_events"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    event_type: str = Field(sa_column=Column(String(50), nullable=False))
    title: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    content: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    is_visible_to_customer: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, default=False)
    )
    created_by: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class MunicipalityTable(SQLModel, table=True):
    __tablename__ = "municipalities"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    state: str = Field(default="Chiapas", sa_column=Column(String(100), nullable=False))
    coverage_status: str = Field(default="not_available", sa_column=Column(String(30), nullable=False))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))


class PostalCodeTable(SQLModel, table=True):
    """Postal codes with their coverage status and eligible packages."""

    __tablename__ = "postal_codes"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    code: str = Field(sa_column=Column(String(5), nullable=False, index=True))
    municipality_id: str = Field(
        sa_column=Column(String(36), ForeignKey("municipalities.id", ondelete="CASCADE"), nullable=False)
    )
    coverage_status: str = Field(default="not_available", sa_column=Column(String(30), nullable=False))
    available_packages: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))


class CommunityTable(SQLModel, table=True):
    __tablename__ = "communities"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    postal_code_id: str = Field(
        sa_column=Column(String(36), ForeignKey("postal_codes.id", ondelete="CASCADE"), nullable=False)
    )
    coverage_status: str = Field(default="not_available", sa_column=Column(String(30), nullable=False))
    estimated_date: date | None = Field(default=None, sa_column=Column(Date, nullable=True))
