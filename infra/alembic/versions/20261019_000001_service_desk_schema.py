"""Service desk schema: packages, coverage zones, tickets and their audit trail."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "service_packages",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("speed_mbps", sa.Integer(), nullable=True),
        sa.Column("channels_count", sa.Integer(), nullable=True),
        sa.Column("monthly_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("features", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "municipalities",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("state", sa.String(length=100), nullable=False, server_default="Chiapas"),
        sa.Column("coverage_status", sa.String(length=30), nullable=False, server_default="not_available"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "postal_codes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=5), nullable=False),
        sa.Column(
            "municipality_id",
            sa.String(length=36),
            sa.ForeignKey("municipalities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("coverage_status", sa.String(length=30), nullable=False, server_default="not_available"),
        sa.Column("available_packages", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_postal_codes_code", "postal_codes", ["code"])

    op.create_table(
        "communities",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "postal_code_id",
            sa.String(length=36),
            sa.ForeignKey("postal_codes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("coverage_status", sa.String(length=30), nullable=False, server_default="not_available"),
        sa.Column("estimated_date", sa.Date(), nullable=True),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("folio", sa.String(length=32), nullable=False, unique=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("contract_status", sa.String(length=50), nullable=True),
        sa.Column("fault_status", sa.String(length=50), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("phone_last4", sa.String(length=4), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("postal_code", sa.String(length=5), nullable=True),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default="normal"),
        sa.Column(
            "package_id",
            sa.String(length=36),
            sa.ForeignKey("service_packages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("assigned_to", sa.String(length=255), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("scheduled_time_start", sa.Time(), nullable=True),
        sa.Column("scheduled_time_end", sa.Time(), nullable=True),
        sa.Column("public_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(type = 'contract' AND contract_status IS NOT NULL) "
            "OR (type = 'fault' AND fault_status IS NOT NULL)",
            name="ck_tickets_status_matches_type",
        ),
    )
    op.create_index("ix_tickets_type", "tickets", ["type"])
    # Tracking looks tickets up by folio and phone suffix together.
    op.create_index("ix_tickets_folio_phone_last4", "tickets", ["folio", "phone_last4"])

    op.create_table(
        "ticket_status_history",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=36), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("previous_status", sa.String(length=50), nullable=True),
        sa.Column("new_status", sa.String(length=50), nullable=False),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_ticket_status_history_ticket_id", "ticket_status_history", ["ticket_id"])

    op.create_table(
        "ticket_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=36), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("is_visible_to_customer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_ticket_events_ticket_id", "ticket_events", ["ticket_id"])


def downgrade() -> None:
    op.drop_index("ix_ticket_events_ticket_id", table_name="ticket_events")
    op.drop_table("ticket_events")
    op.drop_index("ix_ticket_status_history_ticket_id", table_name="ticket_status_history")
    op.drop_table("ticket_status_history")
    op.drop_index("ix_tickets_folio_phone_last4", table_name="tickets")
    op.drop_index("ix_tickets_type", table_name="tickets")
    op.drop_table("tickets")
    op.drop_table("communities")
    op.drop_index("ix_postal_codes_code", table_name="postal_codes")
    op.drop_table("postal_codes")
    op.drop_table("municipalities")
    op.drop_table("service_packages")
