"""Create reconciliation tables

Revision ID: a1c7e3f0b2d4
Revises:
Create Date: 2026-10-01

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c7e3f0b2d4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("customer_id", sa.String(length=128), nullable=False),
        sa.Column("plan", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("provider_customer_id", sa.String(length=128), nullable=True),
        sa.Column("provider_subscription_id", sa.String(length=128), nullable=True),
        sa.Column("provider_price_id", sa.String(length=128), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("premium_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("premium_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("premium_cycles_paid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_event_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_subscriptions_customer_id", "subscriptions", ["customer_id"])
    op.create_index(
        "ix_subscriptions_provider_subscription_id",
        "subscriptions",
        ["provider_subscription_id"],
        unique=True,
    )
    # at most one non-canceled subscription per customer
    op.create_index(
        "uq_subscriptions_live_customer",
        "subscriptions",
        ["customer_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'canceled'"),
    )

    op.create_table(
        "purchases",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("checkout_session_id", sa.String(length=128), nullable=False),
        sa.Column("customer_id", sa.String(length=128), nullable=False),
        sa.Column("product_type", sa.String(length=64), nullable=False),
        sa.Column("product_kind", sa.String(length=16), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("provider_price_id", sa.String(length=128), nullable=True),
        sa.Column("provider_payment_intent_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_purchases_checkout_session_id", "purchases", ["checkout_session_id"], unique=True
    )
    op.create_index("ix_purchases_customer_id", "purchases", ["customer_id"])

    op.create_table(
        "credit_ledgers",
        sa.Column("customer_id", sa.String(length=128), primary_key=True),
        sa.Column("granted_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "credit_grants",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("customer_id", sa.String(length=128), nullable=False),
        sa.Column("purchase_session_id", sa.String(length=128), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_credit_grants_customer_id", "credit_grants", ["customer_id"])
    op.create_index(
        "ix_credit_grants_purchase_session_id",
        "credit_grants",
        ["purchase_session_id"],
        unique=True,
    )

    op.create_table(
        "processed_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("outcome", sa.String(length=16), nullable=False),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("customer_id", sa.String(length=128), nullable=True),
        sa.Column("event_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_processed_events_event_id", "processed_events", ["event_id"], unique=True)
    op.create_index("ix_processed_events_outcome", "processed_events", ["outcome"])
    op.create_index("ix_processed_events_customer_id", "processed_events", ["customer_id"])

    op.create_table(
        "entitlements",
        sa.Column("customer_id", sa.String(length=128), primary_key=True),
        sa.Column("plan", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=True),
        sa.Column("usable_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bonus_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_entitlements_plan", "entitlements", ["plan"])
    op.create_index("ix_entitlements_usable_until", "entitlements", ["usable_until"])


def downgrade() -> None:
    op.drop_index("ix_entitlements_usable_until", table_name="entitlements")
    op.drop_index("ix_entitlements_plan", table_name="entitlements")
    op.drop_table("entitlements")

    op.drop_index("ix_processed_events_customer_id", table_name="processed_events")
    op.drop_index("ix_processed_events_outcome", table_name="processed_events")
    op.drop_index("ix_processed_events_event_id", table_name="processed_events")
    op.drop_table("processed_events")

    op.drop_index("ix_credit_grants_purchase_session_id", table_name="credit_grants")
    op.drop_index("ix_credit_grants_customer_id", table_name="credit_grants")
    op.drop_table("credit_grants")

    op.drop_table("credit_ledgers")

    op.drop_index("ix_purchases_customer_id", table_name="purchases")
    op.drop_index("ix_purchases_checkout_session_id", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index("uq_subscriptions_live_customer", table_name="subscriptions")
    op.drop_index("ix_subscriptions_provider_subscription_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_customer_id", table_name="subscriptions")
    op.drop_table("subscriptions")
