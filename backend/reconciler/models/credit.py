"""
Credit ledger models
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlmodel import Field, SQLModel

from reconciler.core.snowflake import generate_id

from .base import utc_now


class CreditLedger(SQLModel, table=True):
    """
    Cumulative bonus credits granted to a customer

    One row per customer. ``granted_total`` only ever grows, and only through
    an atomic SQL increment paired with a ``CreditGrant`` row.
    """
    __tablename__ = "credit_ledgers"

    customer_id: str = Field(sa_column=Column(String(128), primary_key=True))
    granted_total: int = Field(default=0)
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class CreditGrant(SQLModel, table=True):
    """
    One increment of a customer's credit ledger

    Fields:
    - purchase_session_id: checkout session of the credit-pack purchase (unique,
      ties each increment 1:1 to a purchase)
    - credits: amount added
    - balance_after: ledger total right after this grant
    """
    __tablename__ = "credit_grants"

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    customer_id: str = Field(sa_column=Column(String(128), index=True, nullable=False))
    purchase_session_id: str = Field(
        sa_column=Column(String(128), unique=True, index=True, nullable=False)
    )
    credits: int
    balance_after: int
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
