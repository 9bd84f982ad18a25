"""
Entitlement projection model
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

from reconciler.enums import Plan, SubscriptionStatus

from .base import utc_now


class Entitlement(SQLModel, table=True):
    """
    Stored entitlement projection of a customer

    Overwritten (never patched) every time a reconciliation touches the
    customer. The row doubles as the per-customer lock: every mutation of a
    customer's subscription or credits first selects it ``FOR UPDATE``.

    Fields:
    - plan / status: effective plan and the status of the backing subscription
    - usable_until: end of the paid entitlement, None for free or open-ended
    - bonus_credits: cumulative credits granted
    - version: incremented on every recompute
    """
    __tablename__ = "entitlements"

    customer_id: str = Field(sa_column=Column(String(128), primary_key=True))
    plan: Plan = Field(
        default=Plan.free, sa_column=Column(String(16), index=True, nullable=False)
    )
    status: SubscriptionStatus | None = Field(
        default=None, sa_column=Column(String(16), nullable=True)
    )
    usable_until: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), index=True, nullable=True)
    )
    bonus_credits: int = Field(default=0)
    version: int = Field(default=0)
    computed_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
