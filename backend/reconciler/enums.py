"""
Enumerations

All enums derive from ``str`` so they compare equal to, and serialize as,
their stored column values.
"""
from enum import Enum


class Plan(str, Enum):
    """
    Plan a customer is entitled to

    - free: no paid entitlement
    - basic_tier: recurring entry plan
    - premium_tier: recurring or one-time premium plan (metered in cycles)
    """
    free = "free"
    basic_tier = "basic_tier"
    premium_tier = "premium_tier"


class SubscriptionStatus(str, Enum):
    """
    Local subscription status

    Transitions: none -> active -> {past_due, canceled};
    past_due -> {active, canceled}; canceled is terminal.
    """
    active = "active"
    past_due = "past_due"
    canceled = "canceled"


class PurchaseStatus(str, Enum):
    paid = "paid"


class ProductKind(str, Enum):
    """
    Classification of a one-time purchase

    - credit_pack: grants consumable bonus credits
    - plan_pass: grants a plan for a fixed window
    - service: anything else (coaching, audits), recorded only
    """
    credit_pack = "credit_pack"
    plan_pass = "plan_pass"
    service = "service"


class EventOutcome(str, Enum):
    """
    What happened to a verified provider event

    - applied: state was changed
    - ignored: acknowledged without change (stale, unknown type, no-op)
    - failed: structurally unprocessable, kept for manual investigation
    """
    applied = "applied"
    ignored = "ignored"
    failed = "failed"


class EventType(str, Enum):
    """Provider event types this service reacts to."""
    checkout_completed = "checkout.session.completed"
    subscription_updated = "customer.subscription.updated"
    subscription_deleted = "customer.subscription.deleted"
    invoice_paid = "invoice.paid"
    invoice_payment_failed = "invoice.payment_failed"
