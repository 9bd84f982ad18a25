"""
Purchase model
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlmodel import Field, SQLModel

from reconciler.core.snowflake import generate_id
from reconciler.enums import ProductKind, PurchaseStatus

from .base import utc_now


class Purchase(SQLModel, table=True):
    """
    One-time purchase completed through hosted checkout

    Append-only: written once per checkout session id and never updated.

    Fields:
    - checkout_session_id: provider checkout session id (unique)
    - customer_id: purchasing customer
    - product_type: catalog product code ("credit_pack_100", "coaching", ...)
    - product_kind: credit_pack / plan_pass / service
    - credits: credits granted (credit packs only)
    - amount: total in the smallest currency unit
    - currency: lower-case ISO code as sent by the provider
    - provider_price_id / provider_payment_intent_id: provider references
    """
    __tablename__ = "purchases"

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    checkout_session_id: str = Field(
        sa_column=Column(String(128), unique=True, index=True, nullable=False)
    )
    customer_id: str = Field(sa_column=Column(String(128), index=True, nullable=False))

    product_type: str = Field(max_length=64)
    product_kind: ProductKind = Field(sa_column=Column(String(16), nullable=False))
    credits: int = Field(default=0)

    amount: int = Field(sa_column=Column(BigInteger, nullable=False))
    currency: str = Field(default="eur", max_length=8)
    status: PurchaseStatus = Field(sa_column=Column(String(16), nullable=False))

    provider_price_id: str | None = Field(default=None, max_length=128)
    provider_payment_intent_id: str | None = Field(default=None, max_length=128)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
