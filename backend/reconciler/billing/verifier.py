"""
Webhook signature verification

The provider signs ``"<timestamp>.<raw body>"`` with HMAC-SHA256 and sends
``Stripe-Signature: t=<timestamp>,v1=<hex digest>``. Verification runs on the
raw request bytes, never on a re-serialized body.
"""
from __future__ import annotations

import json
import logging

import stripe
from pydantic import ValidationError

from reconciler.billing.errors import (
    InvalidSignatureError,
    MalformedEnvelopeError,
    WebhookConfigurationError,
)
from reconciler.billing.events import ProviderEvent

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


class EventVerifier:
    """
    Turns a signed request body into a trusted ``ProviderEvent``

    Args:
        secret: webhook signing secret; a missing secret is a deployment error
        tolerance: maximum age in seconds of the signed timestamp

    Raises:
        WebhookConfigurationError: when ``secret`` is empty
    """

    def __init__(self, secret: str | None, *, tolerance: int = DEFAULT_TOLERANCE_SECONDS) -> None:
        if not secret:
            raise WebhookConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        self._secret = secret
        self._tolerance = tolerance

    def verify(self, payload: bytes, signature: str | None) -> ProviderEvent:
        """
        Authenticate and parse a webhook request

        Args:
            payload: raw request body
            signature: value of the ``Stripe-Signature`` header

        Returns:
            the verified event envelope

        Raises:
            InvalidSignatureError: missing header, digest mismatch, stale
                timestamp or a body that is not UTF-8
            MalformedEnvelopeError: authentic body that is not an event envelope
        """
        if not signature:
            raise InvalidSignatureError("missing signature header")
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidSignatureError("payload is not valid UTF-8") from exc

        try:
            # constant-time digest comparison plus timestamp tolerance
            stripe.WebhookSignature.verify_header(
                body, signature, self._secret, tolerance=self._tolerance
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignatureError(str(exc)) from exc

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise MalformedEnvelopeError("payload is not JSON") from exc
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("payload is not a JSON object")
        try:
            return ProviderEvent.model_validate(data)
        except ValidationError as exc:
            raise MalformedEnvelopeError(f"not an event envelope: {exc.error_count()} error(s)") from exc
