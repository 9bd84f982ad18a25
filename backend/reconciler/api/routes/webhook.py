"""
Provider webhook endpoint

Response classes are the whole contract with the provider's redelivery:
- 200: acknowledged (applied, ignored, duplicate, terminal failure, or an
  authentic body that is not an event)
- 400: signature rejected; nothing recorded
- 503: transient failure; rolled back, the provider will redeliver
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Header, Request
from starlette.concurrency import run_in_threadpool

from reconciler.api.deps import ProcessorDep, SessionDep, VerifierDep
from reconciler.api.errors import invalid_signature, retry_later
from reconciler.api.schemas import ApiEnvelope
from reconciler.billing.errors import InvalidSignatureError, MalformedEnvelopeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=ApiEnvelope)
async def stripe_webhook(
    request: Request,
    session: SessionDep,
    verifier: VerifierDep,
    processor: ProcessorDep,
    stripe_signature: str | None = Header(default=None),
) -> ApiEnvelope:
    """
    Receive one provider event

    The raw body is read before any parsing so the signature is checked over
    the exact bytes the provider signed. Processing is blocking database work
    and runs in the threadpool.

    Request path: POST /api/v1/webhooks/stripe
    """
    payload = await request.body()
    try:
        event = verifier.verify(payload, stripe_signature)
    except InvalidSignatureError as exc:
        logger.warning("Rejected webhook request: %s", exc)
        raise invalid_signature() from exc
    except MalformedEnvelopeError as exc:
        logger.error("Authentic webhook payload is not an event envelope: %s", exc)
        return ApiEnvelope(data={"received": True, "processed": False})

    try:
        result = await run_in_threadpool(processor.process, session, event)
    except Exception as exc:
        logger.exception("Transient failure processing %s %s", event.type, event.id)
        raise retry_later() from exc
    return ApiEnvelope(data=result.as_response())
