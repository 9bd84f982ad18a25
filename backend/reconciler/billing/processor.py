"""
Webhook processor

Runs one verified event as a single unit of work:

    dedup insert -> handler -> projection recompute -> outcome -> commit

Everything happens in one transaction on the request's session, so a crash
or timeout anywhere before commit leaves neither the dedup record nor a
partial side effect behind, and the provider's redelivery retries cleanly.

Outcomes surface to the caller as:
- ProcessingResult (applied / ignored / failed / duplicate): acknowledge
- any raised exception: retryable, the route answers 503
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from reconciler import crud
from reconciler.billing.catalog import BillingCatalog, get_catalog
from reconciler.billing.errors import ReconciliationTimeoutError, TerminalEventError
from reconciler.billing.events import ProviderEvent
from reconciler.billing.reconciler import HandlerResult, ReconcileContext
from reconciler.billing.router import EventRouter
from reconciler.core.db import dialect_name
from reconciler.enums import EventOutcome
from reconciler.models import utc_now

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class ProcessingResult:
    """How a delivery was resolved; every instance is acknowledged to the provider."""
    event_id: str
    event_type: str
    outcome: EventOutcome | None
    duplicate: bool = False
    customer_id: str | None = None
    detail: str | None = None

    def as_response(self) -> dict[str, Any]:
        return {
            "received": True,
            "event_id": self.event_id,
            "outcome": self.outcome.value if self.outcome else None,
            "duplicate": self.duplicate,
        }


class WebhookProcessor:
    """
    Applies verified events exactly once

    Args:
        catalog: fixed billing catalog; by default the process-wide catalog
            is looked up per event, so a refresh applies to the next delivery
        router: event router, defaults to the built-in handlers
        timeout_seconds: processing budget per event
        clock: source of the processing time (aware UTC)
        monotonic: deadline clock
    """

    def __init__(
        self,
        *,
        catalog: BillingCatalog | None = None,
        router: EventRouter | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._catalog = catalog
        self.router = router or EventRouter()
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._monotonic = monotonic

    @property
    def catalog(self) -> BillingCatalog:
        return self._catalog or get_catalog()

    def process(self, session: Session, event: ProviderEvent) -> ProcessingResult:
        """
        Process one event on the given session

        Args:
            session: request-scoped session with no pending work
            event: verified provider event

        Returns:
            ProcessingResult to acknowledge

        Raises:
            ReconciliationTimeoutError: the budget ran out before commit
            Exception: any store or handler failure; nothing was persisted
        """
        # optimization only; the unique insert below is the actual guard
        existing = crud.find_processed_event(session=session, event_id=event.id)
        if existing is not None:
            outcome = EventOutcome(existing.outcome)
            session.rollback()
            return self._duplicate(event, outcome)

        deadline = self._monotonic() + self.timeout_seconds
        try:
            self._apply_store_timeouts(session)
            record = crud.claim_event(session=session, event=event)
        except IntegrityError:
            session.rollback()
            return self._duplicate(event)
        except Exception:
            session.rollback()
            raise

        now = self._clock()
        catalog = self.catalog
        ctx = ReconcileContext(session=session, catalog=catalog, now=now)
        try:
            result = self._dispatch(ctx, event)
            if result.customer_id:
                crud.refresh_entitlement(
                    session=session, customer_id=result.customer_id, catalog=catalog, now=now
                )
            crud.finish_event(
                session=session,
                record=record,
                outcome=result.outcome,
                detail=result.detail,
                customer_id=result.customer_id,
            )
            session.flush()
            if self._monotonic() > deadline:
                raise ReconciliationTimeoutError(
                    f"event {event.id} exceeded {self.timeout_seconds}s processing budget"
                )
            session.commit()
        except TerminalEventError as exc:
            session.rollback()
            return self._record_failure(session, event, exc)
        except Exception:
            session.rollback()
            raise

        if result.outcome == EventOutcome.applied:
            logger.info("Applied %s %s (customer %s)", event.type, event.id, result.customer_id)
        else:
            logger.info("Ignored %s %s: %s", event.type, event.id, result.detail)
        return ProcessingResult(
            event_id=event.id,
            event_type=event.type,
            outcome=result.outcome,
            customer_id=result.customer_id,
            detail=result.detail,
        )

    def _dispatch(self, ctx: ReconcileContext, event: ProviderEvent) -> HandlerResult:
        handler = self.router.resolve(event.type)
        if handler is None:
            return HandlerResult(EventOutcome.ignored, None, "unhandled event type")
        return handler(ctx, event)

    def _apply_store_timeouts(self, session: Session) -> None:
        """Bound statements and lock waits of this transaction (PostgreSQL only)."""
        if dialect_name(session) != "postgresql":
            return
        timeout_ms = max(int(self.timeout_seconds * 1000), 1)
        session.exec(text(f"SET LOCAL statement_timeout = {timeout_ms}"))  # type: ignore[call-overload]
        session.exec(text(f"SET LOCAL lock_timeout = {timeout_ms}"))  # type: ignore[call-overload]

    def _record_failure(
        self, session: Session, event: ProviderEvent, exc: TerminalEventError
    ) -> ProcessingResult:
        """Persist a terminal failure in a fresh transaction, for operator follow-up."""
        try:
            crud.claim_event(
                session=session,
                event=event,
                outcome=EventOutcome.failed,
                detail=exc.detail,
                customer_id=exc.customer_id,
            )
            session.commit()
        except IntegrityError:
            session.rollback()
            return self._duplicate(event)

        logger.error(
            "Terminal failure for %s %s (customer %s): %s",
            event.type,
            event.id,
            exc.customer_id,
            exc.detail,
        )
        return ProcessingResult(
            event_id=event.id,
            event_type=event.type,
            outcome=EventOutcome.failed,
            customer_id=exc.customer_id,
            detail=exc.detail,
        )

    @staticmethod
    def _duplicate(event: ProviderEvent, outcome: EventOutcome | None = None) -> ProcessingResult:
        logger.info("Duplicate delivery of %s %s", event.type, event.id)
        return ProcessingResult(
            event_id=event.id, event_type=event.type, outcome=outcome, duplicate=True
        )
