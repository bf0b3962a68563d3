"""init exchange tables

Revision ID: 20261018_0001_init_exchange_tables
Revises: None
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0001_init_exchange_tables"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_STATUS_PREDICATE = "status IN ('pending', 'processing')"


def _enum(*values: str, name: str) -> sa.Enum:
    # Stored as VARCHAR on every backend so new members never need ALTER TYPE.
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=False)


def upgrade() -> None:
    direction_enum = _enum("buy", "sell", name="tradedirection")
    order_status_enum = _enum(
        "pending", "processing", "completed", "failed", "cancelled", name="orderstatus"
    )
    network_enum = _enum("erc20", "trc20", name="cryptonetwork")
    payout_enum = _enum("upi", "bank", name="payoutmethod")
    ticket_status_enum = _enum("open", "in_progress", "closed", name="ticketstatus")
    method_type_enum = _enum("upi", "bank_transfer", "crypto", name="paymentmethodtype")

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("city", sa.String(length=128)),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("total_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_volume", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("quantity_min", sa.Float(), nullable=False),
        sa.Column("quantity_max", sa.Float(), nullable=True),
        sa.Column("buy_rate", sa.Float(), nullable=False),
        sa.Column("sell_rate", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_exchange_rates_quantity_min", "exchange_rates", ["quantity_min"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("direction", direction_enum, nullable=False),
        sa.Column("status", order_status_enum, nullable=False),
        sa.Column("inr_amount", sa.Float(), nullable=False),
        sa.Column("crypto_amount", sa.Float(), nullable=False),
        sa.Column("exchange_rate", sa.Float(), nullable=False),
        sa.Column("rate_bracket_id", sa.Integer(), sa.ForeignKey("exchange_rates.id")),
        sa.Column("crypto_network", network_enum),
        sa.Column("user_wallet_address", sa.String(length=128)),
        sa.Column("payout_method", payout_enum),
        sa.Column("upi_id", sa.String(length=128)),
        sa.Column("bank_name", sa.String(length=128)),
        sa.Column("account_number", sa.String(length=64)),
        sa.Column("ifsc_code", sa.String(length=16)),
        sa.Column("account_holder_name", sa.String(length=255)),
        sa.Column("proof_path", sa.String(length=512)),
        sa.Column("utr_number", sa.String(length=64)),
        sa.Column("proof_submitted_at", sa.DateTime(timezone=True)),
        sa.Column("processed_by", sa.Integer(), sa.ForeignKey("profiles.id")),
        sa.Column("admin_notes", sa.Text()),
        sa.Column("timer_started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timer_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_timer_expires_at", "transactions", ["timer_expires_at"])
    op.create_index(
        "uq_transactions_one_active_per_user",
        "transactions",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text(ACTIVE_STATUS_PREDICATE),
        postgresql_where=sa.text(ACTIVE_STATUS_PREDICATE),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("transaction_id", sa.String(length=36), sa.ForeignKey("transactions.id")),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", ticket_status_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_tickets_user_id", "tickets", ["user_id"])
    op.create_index("ix_tickets_transaction_id", "tickets", ["transaction_id"])

    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", method_type_enum, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("identifier", sa.String(length=255), nullable=False),
        sa.Column("qr_code_url", sa.String(length=512)),
        sa.Column("network", network_enum),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_payment_methods_type", "payment_methods", ["type"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("transaction_id", sa.String(length=36), nullable=True),
        sa.Column("payload_json", sa.Text()),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_transaction_id", "audit_logs", ["transaction_id"])
    op.create_index("ix_audit_logs_request_id", "audit_logs", ["request_id"])

    op.create_table(
        "revoked_tokens",
        sa.Column("jti", sa.String(length=64), primary_key=True),
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("revoked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("revoked_tokens")
    op.drop_index("ix_audit_logs_request_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_transaction_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_payment_methods_type", table_name="payment_methods")
    op.drop_table("payment_methods")
    op.drop_index("ix_tickets_transaction_id", table_name="tickets")
    op.drop_index("ix_tickets_user_id", table_name="tickets")
    op.drop_table("tickets")
    op.drop_index("uq_transactions_one_active_per_user", table_name="transactions")
    op.drop_index("ix_transactions_timer_expires_at", table_name="transactions")
    op.drop_index("ix_transactions_status", table_name="transactions")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_exchange_rates_quantity_min", table_name="exchange_rates")
    op.drop_table("exchange_rates")
    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
