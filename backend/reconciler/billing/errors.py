"""
Billing domain exceptions

These never reach the client directly: the webhook route and the processor
translate them into response classes (400 / 200 / 503).
"""
from __future__ import annotations


class BillingError(Exception):
    """Base class for reconciliation errors."""


class WebhookConfigurationError(BillingError):
    """The webhook cannot be served at all (e.g. no signing secret). Fatal at startup."""


class InvalidSignatureError(BillingError):
    """The request was not signed by the provider, or the signature is stale."""


class MalformedEnvelopeError(BillingError):
    """Authentic payload that is not an event envelope (no id or type)."""


class TerminalEventError(BillingError):
    """
    Verified event that can structurally never be processed

    Recorded with outcome ``failed`` and acknowledged so the provider stops
    redelivering it.

    Args:
        detail: reason, stored on the processed-event record
        customer_id: customer the event belongs to, when known
    """

    def __init__(self, detail: str, *, customer_id: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.customer_id = customer_id


class ReconciliationTimeoutError(BillingError):
    """Processing exceeded its budget; the transaction is rolled back."""
