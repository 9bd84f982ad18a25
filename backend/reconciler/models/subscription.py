"""
Subscription model
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Index, String, text
from sqlmodel import Field, SQLModel

from reconciler.core.snowflake import generate_id
from reconciler.enums import Plan, SubscriptionStatus

from .base import utc_now

_LIVE_ROW = text("status <> 'canceled'")


class Subscription(SQLModel, table=True):
    """
    Reconciled subscription of one customer

    Rows are never deleted: cancellation only moves ``status`` to canceled,
    and a later subscription for the same customer opens a new row. A partial
    unique index keeps at most one non-canceled row per customer.

    Fields:
    - customer_id: opaque id from the identity system (checkout metadata user_id)
    - plan: plan derived from the price mapping
    - provider_customer_id / provider_subscription_id / provider_price_id:
      provider identifiers; subscription id is empty for one-time plan passes
    - status: active / past_due / canceled
    - current_period_start / current_period_end: billing period window
    - cancel_at / canceled_at: scheduled and effective cancellation
    - premium_start / premium_end: premium-tier entitlement window
    - premium_cycles_paid: paid premium billing cycles
    - pass_plan / pass_end: one-time plan pass bought on top of a recurring
      subscription, kept apart from the provider-driven plan
    - last_event_at: provider timestamp of the newest applied event (ordering)
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index(
            "uq_subscriptions_live_customer",
            "customer_id",
            unique=True,
            postgresql_where=_LIVE_ROW,
            sqlite_where=_LIVE_ROW,
        ),
    )

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    customer_id: str = Field(sa_column=Column(String(128), index=True, nullable=False))

    plan: Plan = Field(sa_column=Column(String(16), nullable=False))
    status: SubscriptionStatus = Field(sa_column=Column(String(16), nullable=False))

    provider_customer_id: str | None = Field(default=None, max_length=128)
    provider_subscription_id: str | None = Field(
        default=None, sa_column=Column(String(128), unique=True, index=True, nullable=True)
    )
    provider_price_id: str | None = Field(default=None, max_length=128)

    current_period_start: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    current_period_end: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    cancel_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    canceled_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    premium_start: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    premium_end: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    premium_cycles_paid: int = Field(default=0)

    pass_plan: Plan | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    pass_end: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    last_event_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
