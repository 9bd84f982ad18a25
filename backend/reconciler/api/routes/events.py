"""
Processed-event audit (operators)

Failed events are acknowledged to the provider and never redelivered; this
is where operators find them.
"""
from __future__ import annotations

from fastapi import APIRouter, Query
from sqlmodel import col, func, select

from reconciler.api.deps import OpsPrincipal, SessionDep
from reconciler.api.schemas import ApiEnvelope, ProcessedEventData, ProcessedEventsData
from reconciler.enums import EventOutcome
from reconciler.models import ProcessedEventRecord, as_utc

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=ApiEnvelope)
def list_events(
    session: SessionDep,
    _: OpsPrincipal,
    outcome: EventOutcome | None = Query(default=None),
    customer_id: str | None = Query(default=None, max_length=128),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    """
    Processed events, newest first

    Request path: GET /api/v1/events?outcome=failed&page=1&page_size=20
    """
    filters = []
    if outcome is not None:
        filters.append(ProcessedEventRecord.outcome == outcome)
    if customer_id is not None:
        filters.append(ProcessedEventRecord.customer_id == customer_id)

    count = session.exec(
        select(func.count()).select_from(ProcessedEventRecord).where(*filters)
    ).one()
    rows = session.exec(
        select(ProcessedEventRecord)
        .where(*filters)
        .order_by(col(ProcessedEventRecord.id).desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    data = [
        ProcessedEventData(
            event_id=row.event_id,
            event_type=row.event_type,
            outcome=row.outcome,
            detail=row.detail,
            customer_id=row.customer_id,
            event_created_at=as_utc(row.event_created_at),
            processed_at=as_utc(row.processed_at),
        )
        for row in rows
    ]
    return ApiEnvelope(data=ProcessedEventsData(data=data, count=count))
