"""Processed-event records (deduplication and audit)"""
from sqlmodel import Session, select

from reconciler.billing.events import ProviderEvent
from reconciler.enums import EventOutcome
from reconciler.models import ProcessedEventRecord, utc_now


def find_processed_event(*, session: Session, event_id: str) -> ProcessedEventRecord | None:
    """Committed record for an event id, if any (pre-check only, not a guard)"""
    stmt = select(ProcessedEventRecord).where(ProcessedEventRecord.event_id == event_id)
    return session.exec(stmt).first()


def claim_event(
    *,
    session: Session,
    event: ProviderEvent,
    outcome: EventOutcome = EventOutcome.applied,
    detail: str | None = None,
    customer_id: str | None = None,
) -> ProcessedEventRecord:
    """
    Insert the record for an event and flush

    The unique ``event_id`` makes this the once-only guard: a concurrent or
    earlier delivery surfaces as ``IntegrityError`` from the flush. Does not
    commit.
    """
    record = ProcessedEventRecord(
        event_id=event.id,
        event_type=event.type,
        outcome=outcome,
        detail=detail,
        customer_id=customer_id,
        event_created_at=event.created_at,
        payload=event.model_dump(mode="json"),
    )
    session.add(record)
    session.flush()
    return record


def finish_event(
    *,
    session: Session,
    record: ProcessedEventRecord,
    outcome: EventOutcome,
    detail: str | None,
    customer_id: str | None,
) -> ProcessedEventRecord:
    """Set the final outcome of a claimed record"""
    record.outcome = outcome
    record.detail = detail
    record.customer_id = customer_id
    record.processed_at = utc_now()
    session.add(record)
    return record
