"""
API request/response schemas

These are Pydantic models for data exchange only, not tables.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from reconciler.enums import EventOutcome, Plan, ProductKind, PurchaseStatus, SubscriptionStatus

# ============================================================
# Common
# ============================================================


class TokenPayload(BaseModel):
    """Read-path bearer token claims: ``sub`` is the customer id."""
    sub: str | None = None
    role: str = "customer"


class ApiEnvelope(BaseModel):
    """
    Response envelope used by every JSON endpoint

    Examples:
        {"code": 0, "message": "success", "data": {...}}
        {"code": 401001, "message": "Could not validate credentials", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# Entitlement read path
# ============================================================


class EntitlementData(BaseModel):
    customer_id: str
    plan: Plan
    status: SubscriptionStatus | None = None
    usable_until: datetime | None = None
    bonus_credits: int = 0
    limits: dict[str, int] = {}
    version: int = 0
    computed_at: datetime | None = None


class SubscriptionData(BaseModel):
    plan: Plan
    status: SubscriptionStatus
    provider_subscription_id: str | None = None
    provider_price_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at: datetime | None = None
    canceled_at: datetime | None = None
    premium_start: datetime | None = None
    premium_end: datetime | None = None
    premium_cycles_paid: int = 0
    pass_plan: Plan | None = None
    pass_end: datetime | None = None
    updated_at: datetime


class PurchaseData(BaseModel):
    checkout_session_id: str
    product_type: str
    product_kind: ProductKind
    credits: int
    amount: int  # smallest currency unit
    currency: str
    status: PurchaseStatus
    created_at: datetime


class PurchasesData(BaseModel):
    data: list[PurchaseData]
    count: int


class CreditGrantData(BaseModel):
    purchase_session_id: str
    credits: int
    balance_after: int
    created_at: datetime


class CreditsData(BaseModel):
    balance: int
    grants: list[CreditGrantData]
    count: int


# ============================================================
# Operator views
# ============================================================


class ProcessedEventData(BaseModel):
    event_id: str
    event_type: str
    outcome: EventOutcome
    detail: str | None = None
    customer_id: str | None = None
    event_created_at: datetime | None = None
    processed_at: datetime


class ProcessedEventsData(BaseModel):
    data: list[ProcessedEventData]
    count: int


# ============================================================
# Billing catalog
# ============================================================


class CatalogData(BaseModel):
    version: str
    subscription_prices: int
    one_time_products: int
