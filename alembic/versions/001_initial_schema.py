"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates all tables for the booking core:
- Users and bank accounts
- Listings and calendar blocks
- Bookings
- Card payments, cash vouchers, processed events, payouts
- Escrow and escrow ledger
- Disputes
- Commission settings and audit log
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

UUID = postgresql.UUID(as_uuid=True)
TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create all database tables."""

    # ==================== USERS ====================
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("phone", sa.String(20)),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("role", sa.String(20), nullable=False, server_default="guest"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    op.create_table(
        "bank_accounts",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("bank_name", sa.String(100), nullable=False),
        sa.Column("account_holder_name", sa.String(200), nullable=False),
        sa.Column("account_number_encrypted", sa.LargeBinary, nullable=False),
        sa.Column("account_last4", sa.String(4), nullable=False),
        sa.Column("is_default", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    # ==================== LISTINGS ====================
    op.create_table(
        "listings",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("host_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("category", sa.String(20), server_default="stay"),
        sa.Column("status", sa.String(20), server_default="active", index=True),
        sa.Column("base_price", sa.Integer, nullable=False),
        sa.Column("cleaning_fee", sa.Integer, server_default="0"),
        sa.Column("security_deposit", sa.Integer, server_default="0"),
        sa.Column("currency", sa.String(3), server_default="DZD"),
        sa.Column("min_stay", sa.Integer, server_default="1"),
        sa.Column("max_stay", sa.Integer, server_default="365"),
        sa.Column("max_guests", sa.Integer, server_default="4"),
        sa.Column("instant_book", sa.Boolean, server_default=sa.false()),
        sa.Column("cancellation_policy", sa.String(20), server_default="moderate"),
        sa.Column("check_in_hour", sa.Integer),
        sa.Column("check_out_hour", sa.Integer),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    op.create_table(
        "calendar_blocks",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("listing_id", UUID, sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("start_date", sa.Date, nullable=False, index=True),
        sa.Column("end_date", sa.Date, nullable=False, index=True),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("booking_number", sa.String(20), unique=True, nullable=False, index=True),
        sa.Column("listing_id", UUID, sa.ForeignKey("listings.id"), nullable=False, index=True),
        sa.Column("guest_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("host_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("start_date", sa.Date, nullable=False, index=True),
        sa.Column("end_date", sa.Date, nullable=False, index=True),
        sa.Column("check_in_at", TS, nullable=False),
        sa.Column("check_out_at", TS, nullable=False),
        sa.Column("adults", sa.Integer, server_default="1"),
        sa.Column("children", sa.Integer, server_default="0"),
        sa.Column("infants", sa.Integer, server_default="0"),
        # Pricing snapshot
        sa.Column("base_price", sa.Integer, nullable=False),
        sa.Column("nights", sa.Integer, nullable=False),
        sa.Column("subtotal", sa.Integer, nullable=False),
        sa.Column("cleaning_fee", sa.Integer, server_default="0"),
        sa.Column("guest_service_fee", sa.Integer, nullable=False),
        sa.Column("host_commission", sa.Integer, nullable=False),
        sa.Column("service_fee", sa.Integer, nullable=False),
        sa.Column("total_amount", sa.Integer, nullable=False),
        sa.Column("host_payout", sa.Integer, nullable=False),
        sa.Column("platform_revenue", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("security_deposit", sa.Integer, server_default="0"),
        sa.Column("guest_fee_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("host_commission_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("commission_category", sa.String(20), nullable=False),
        sa.Column("commission_rate_version", sa.Integer, nullable=False),
        # Payment & status
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_status", sa.String(20), server_default="pending"),
        sa.Column("payment_expires_at", TS, nullable=False),
        sa.Column("status", sa.String(30), server_default="pending_payment", index=True),
        sa.Column("status_before_dispute", sa.String(30)),
        # Cancellation
        sa.Column("cancelled_by_id", UUID, sa.ForeignKey("users.id")),
        sa.Column("cancellation_reason", sa.Text),
        sa.Column("refund_amount", sa.Integer, server_default="0"),
        # Timestamps
        sa.Column("paid_at", TS),
        sa.Column("confirmed_at", TS),
        sa.Column("activated_at", TS),
        sa.Column("completed_at", TS),
        sa.Column("auto_completed", sa.Boolean, server_default=sa.false()),
        sa.Column("cancelled_at", TS),
        sa.Column("expired_at", TS),
        sa.Column("created_at", TS, server_default=sa.func.now()),
        sa.Column("updated_at", TS, server_default=sa.func.now()),
        sa.CheckConstraint("total_amount = subtotal + cleaning_fee + guest_service_fee", name="ck_bookings_total"),
        sa.CheckConstraint("end_date > start_date", name="ck_bookings_dates"),
    )

    # ==================== PAYMENTS ====================
    op.create_table(
        "card_payments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("booking_id", UUID, sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("provider", sa.String(30), server_default="stripe"),
        sa.Column("intent_id", sa.String(100), unique=True, nullable=False, index=True),
        sa.Column("client_secret", sa.String(255)),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), server_default="requires_payment"),
        sa.Column("failure_message", sa.Text),
        sa.Column("expires_at", TS, nullable=False),
        sa.Column("captured_at", TS),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    op.create_table(
        "cash_vouchers",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("booking_id", UUID, sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("voucher_number", sa.String(30), unique=True, nullable=False, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), server_default="DZD"),
        sa.Column("guest_full_name", sa.String(200), nullable=False),
        sa.Column("guest_phone", sa.String(20), nullable=False),
        sa.Column("guest_email", sa.String(255)),
        sa.Column("instructions", sa.JSON),
        sa.Column("status", sa.String(20), server_default="pending", index=True),
        sa.Column("expires_at", TS, nullable=False, index=True),
        sa.Column("agency_code", sa.String(50)),
        sa.Column("agency_transaction_id", sa.String(100)),
        sa.Column("validated_by", UUID, sa.ForeignKey("users.id")),
        sa.Column("validated_at", TS),
        sa.Column("validation_notes", sa.Text),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    op.create_table(
        "processed_payment_events",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("event_id", sa.String(255), unique=True, nullable=False),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("booking_ref", sa.String(100)),
        sa.Column("processed_at", TS, server_default=sa.func.now()),
    )

    op.create_table(
        "host_payouts",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("reference", sa.String(30), unique=True, nullable=False),
        sa.Column("host_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("bank_account_id", UUID, sa.ForeignKey("bank_accounts.id"), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("booking_ids", sa.JSON),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    # ==================== ESCROW ====================
    op.create_table(
        "escrows",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("booking_id", UUID, sa.ForeignKey("bookings.id"), nullable=False, unique=True),
        sa.Column("host_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("held_amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="held", index=True),
        sa.Column("held_at", TS, server_default=sa.func.now()),
        sa.Column("release_eligible_at", TS, nullable=False, index=True),
        sa.Column("release_reference", sa.String(30), unique=True),
        sa.Column("release_type", sa.String(20)),
        sa.Column("released_at", TS),
        sa.Column("released_by", UUID, sa.ForeignKey("users.id")),
        sa.Column("freeze_reason", sa.String(50)),
        sa.Column("frozen_at", TS),
        sa.Column("host_share", sa.Integer),
        sa.Column("guest_share", sa.Integer),
        sa.Column("resolved_by", UUID, sa.ForeignKey("users.id")),
        sa.Column("resolved_at", TS),
        sa.Column("payout_id", UUID, sa.ForeignKey("host_payouts.id")),
        sa.Column("created_at", TS, server_default=sa.func.now()),
        sa.Column("updated_at", TS, server_default=sa.func.now()),
        sa.CheckConstraint(
            "host_share IS NULL OR host_share + guest_share = held_amount",
            name="ck_escrows_split_balanced",
        ),
    )

    op.create_table(
        "escrow_events",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("escrow_id", UUID, sa.ForeignKey("escrows.id"), nullable=False, index=True),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("from_status", sa.String(20)),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("actor_id", UUID, sa.ForeignKey("users.id")),
        sa.Column("reason", sa.Text),
        sa.Column("details", sa.JSON),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    # ==================== DISPUTES ====================
    op.create_table(
        "disputes",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("booking_id", UUID, sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("reporter_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reporter_role", sa.String(10), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), server_default="open", index=True),
        sa.Column("priority", sa.String(10), server_default="normal"),
        sa.Column("assigned_to", UUID, sa.ForeignKey("users.id")),
        sa.Column("resolution", sa.Text),
        sa.Column("host_ratio", sa.Numeric(5, 4)),
        sa.Column("resolved_by", UUID, sa.ForeignKey("users.id")),
        sa.Column("resolved_at", TS),
        sa.Column("closed_by", UUID, sa.ForeignKey("users.id")),
        sa.Column("closed_at", TS),
        sa.Column("created_at", TS, server_default=sa.func.now()),
        sa.Column("updated_at", TS, server_default=sa.func.now()),
    )
    # At most one open or pending dispute per booking
    op.create_index(
        "uq_disputes_active_booking",
        "disputes",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('open', 'pending')"),
    )

    op.create_table(
        "dispute_notes",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("dispute_id", UUID, sa.ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("author_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    op.create_table(
        "dispute_evidence",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("dispute_id", UUID, sa.ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("uploaded_by", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("evidence_type", sa.String(20), server_default="image"),
        sa.Column("url", sa.String(500), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("created_at", TS, server_default=sa.func.now()),
    )

    # ==================== COMMISSION ====================
    op.create_table(
        "commission_rates",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("category", sa.String(20), unique=True, nullable=False),
        sa.Column("rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("min_value", sa.Numeric(6, 4), nullable=False),
        sa.Column("max_value", sa.Numeric(6, 4), nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("updated_by", UUID, sa.ForeignKey("users.id")),
        sa.Column("updated_at", TS, server_default=sa.func.now()),
        sa.CheckConstraint("rate >= min_value AND rate <= max_value", name="ck_commission_rates_bounds"),
    )

    op.create_table(
        "commission_rate_history",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("category", sa.String(20), nullable=False, index=True),
        sa.Column("previous_value", sa.Numeric(6, 4), nullable=False),
        sa.Column("new_value", sa.Numeric(6, 4), nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("changed_by", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.Text),
        sa.Column("changed_at", TS, server_default=sa.func.now(), index=True),
    )

    # ==================== AUDIT ====================
    op.create_table(
        "audit_logs",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), index=True),
        sa.Column("action", sa.String(100), nullable=False, index=True),
        sa.Column("resource_type", sa.String(50), nullable=False, index=True),
        sa.Column("resource_id", UUID),
        sa.Column("old_values", sa.JSON),
        sa.Column("new_values", sa.JSON),
        sa.Column("created_at", TS, server_default=sa.func.now(), index=True),
    )

    # Ledger tables reject UPDATE and DELETE at the database level too
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_ledger_mutation() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    for table in ("escrow_events", "commission_rate_history", "audit_logs"):
        op.execute(
            f"CREATE TRIGGER {table}_append_only BEFORE UPDATE OR DELETE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION reject_ledger_mutation()"
        )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    for table in ("escrow_events", "commission_rate_history", "audit_logs"):
        op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table}")
    op.execute("DROP FUNCTION IF EXISTS reject_ledger_mutation()")

    op.drop_table("audit_logs")
    op.drop_table("commission_rate_history")
    op.drop_table("commission_rates")
    op.drop_table("dispute_evidence")
    op.drop_table("dispute_notes")
    op.drop_index("uq_disputes_active_booking", table_name="disputes")
    op.drop_table("disputes")
    op.drop_table("escrow_events")
    op.drop_table("escrows")
    op.drop_table("host_payouts")
    op.drop_table("processed_payment_events")
    op.drop_table("cash_vouchers")
    op.drop_table("card_payments")
    op.drop_table("bookings")
    op.drop_table("calendar_blocks")
    op.drop_table("listings")
    op.drop_table("bank_accounts")
    op.drop_table("users")
