"""initial engine schema

Revision ID: 0001_engine
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_engine"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False, server_default=""),
        sa.Column("categories", sa.JSON(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("price_min_cents", sa.Integer(), nullable=True),
        sa.Column("price_max_cents", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_profiles_role", "profiles", ["role"])
    op.create_index("ix_profiles_active", "profiles", ["active"])
    op.create_index("ix_profiles_last_active_at", "profiles", ["last_active_at"])

    op.create_table(
        "items",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False, server_default=""),
        sa.Column("category_id", sa.String(), nullable=False),
        sa.Column("price_per_day_cents", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_items_owner_id", "items", ["owner_id"])
    op.create_index("ix_items_category_id", "items", ["category_id"])
    op.create_index("ix_items_status", "items", ["status"])

    op.create_table(
        "requests",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("item_id", sa.String(), nullable=False),
        sa.Column("requester_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_requests_item_id", "requests", ["item_id"])
    op.create_index("ix_requests_requester_id", "requests", ["requester_id"])
    op.create_index("ix_requests_owner_id", "requests", ["owner_id"])
    op.create_index("ix_requests_status", "requests", ["status"])

    op.create_table(
        "messages",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("request_id", sa.String(), nullable=False),
        sa.Column("sender_id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["requests.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_request_id", "messages", ["request_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("request_id", sa.String(), nullable=False),
        sa.Column("payer_id", sa.String(), nullable=False),
        sa.Column("business_id", sa.String(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("commission_cents", sa.Integer(), nullable=False),
        sa.Column("merchant_amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("merchant_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("merchant_payout_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_transaction_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["requests.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_transaction_id"),
        # merchant_paid and status=paid only ever change together.
        sa.CheckConstraint("merchant_paid = (status = 'paid')", name="ck_payments_paid_settled"),
    )
    op.create_index("ix_payments_request_id", "payments", ["request_id"], unique=True)
    op.create_index("ix_payments_payer_id", "payments", ["payer_id"])
    op.create_index("ix_payments_business_id", "payments", ["business_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_merchant_paid", "payments", ["merchant_paid"])
    # Hot path for the payout sweep.
    op.create_index(
        "ix_payments_payout_eligible",
        "payments",
        ["created_at"],
        postgresql_where=sa.text("status = 'completed' AND merchant_paid = false"),
    )


def downgrade() -> None:
    op.drop_index("ix_payments_payout_eligible", table_name="payments")
    op.drop_index("ix_payments_merchant_paid", table_name="payments")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_business_id", table_name="payments")
    op.drop_index("ix_payments_payer_id", table_name="payments")
    op.drop_index("ix_payments_request_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_messages_request_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_requests_status", table_name="requests")
    op.drop_index("ix_requests_owner_id", table_name="requests")
    op.drop_index("ix_requests_requester_id", table_name="requests")
    op.drop_index("ix_requests_item_id", table_name="requests")
    op.drop_table("requests")
    op.drop_index("ix_items_status", table_name="items")
    op.drop_index("ix_items_category_id", table_name="items")
    op.drop_index("ix_items_owner_id", table_name="items")
    op.drop_table("items")
    op.drop_index("ix_profiles_last_active_at", table_name="profiles")
    op.drop_index("ix_profiles_active", table_name="profiles")
    op.drop_index("ix_profiles_role", table_name="profiles")
    op.drop_table("profiles")
