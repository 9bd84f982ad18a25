"""
Processed provider event model
"""
from datetime import datetime

from sqlalchemy import JSON, BigInteger, Column, DateTime, String, Text
from sqlmodel import Field, SQLModel

from reconciler.core.snowflake import generate_id
from reconciler.enums import EventOutcome

from .base import utc_now


class ProcessedEventRecord(SQLModel, table=True):
    """
    One row per verified provider event

    The unique ``event_id`` is what makes redelivery safe: the row is inserted
    in the same transaction as the event's side effects, so a second delivery
    either conflicts on insert or finds the committed row.

    Fields:
    - event_id: provider event id (unique)
    - event_type: provider event type string
    - outcome: applied / ignored / failed
    - detail: short reason for ignored and failed outcomes
    - customer_id: customer the event was reconciled against, when resolved
    - event_created_at: provider timestamp of the event
    - payload: the verified envelope, kept for failed-event investigation
    - processed_at: processing time
    """
    __tablename__ = "processed_events"

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    event_id: str = Field(sa_column=Column(String(255), unique=True, index=True, nullable=False))
    event_type: str = Field(max_length=128)
    outcome: EventOutcome = Field(sa_column=Column(String(16), index=True, nullable=False))
    detail: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    customer_id: str | None = Field(
        default=None, sa_column=Column(String(128), index=True, nullable=True)
    )
    event_created_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    payload: dict | None = Field(default=None, sa_column=Column(JSON))
    processed_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
