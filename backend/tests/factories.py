"""Provider payload builders shared by the tests."""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from itertools import count
from typing import Any

from reconciler.billing.events import ProviderEvent

WEBHOOK_SECRET = "whsec_test_secret"
DAY = 24 * 60 * 60

_ids = count(1)


def now_ts() -> int:
    return int(time.time())


def sign(body: bytes, *, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """``Stripe-Signature`` header value for a raw body."""
    ts = now_ts() if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + body, hashlib.sha256)
    return f"t={ts},v1={digest.hexdigest()}"


def envelope(
    event_type: str,
    obj: dict[str, Any],
    *,
    event_id: str | None = None,
    created: int | None = None,
) -> dict[str, Any]:
    return {
        "id": event_id or f"evt_test_{next(_ids)}",
        "object": "event",
        "type": event_type,
        "created": now_ts() if created is None else created,
        "livemode": False,
        "api_version": "2024-06-20",
        "data": {"object": obj},
    }


def to_event(payload: dict[str, Any]) -> ProviderEvent:
    return ProviderEvent.model_validate(payload)


def checkout_subscription(
    customer_id: str | None,
    *,
    session_id: str,
    subscription_id: str,
    price_id: str = "price_premium_monthly",
    period_start: int | None = None,
    period_end: int | None = None,
) -> dict[str, Any]:
    start = now_ts() - DAY if period_start is None else period_start
    end = start + 30 * DAY if period_end is None else period_end
    metadata = {"user_id": customer_id} if customer_id else {}
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": "subscription",
        "customer": f"cus_provider_{customer_id}",
        "amount_total": 2900,
        "currency": "eur",
        "metadata": metadata,
        "subscription": {
            "id": subscription_id,
            "object": "subscription",
            "status": "active",
            "current_period_start": start,
            "current_period_end": end,
            "items": {"data": [{"price": {"id": price_id}}]},
        },
    }


def checkout_payment(
    customer_id: str | None,
    *,
    session_id: str,
    price_id: str | None = None,
    product_metadata: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    amount_total: int = 4900,
) -> dict[str, Any]:
    session_metadata = dict(metadata or {})
    if customer_id:
        session_metadata["user_id"] = customer_id
    price: dict[str, Any] = {"id": price_id} if price_id else {}
    if product_metadata is not None:
        price["product"] = {"id": "prod_test", "metadata": product_metadata}
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": "payment",
        "customer": f"cus_provider_{customer_id}",
        "amount_total": amount_total,
        "currency": "EUR",
        "payment_intent": f"pi_{session_id}",
        "metadata": session_metadata,
        "line_items": {"data": [{"price": price}]} if price else None,
    }


def credit_pack(customer_id: str, *, session_id: str, credits: int) -> dict[str, Any]:
    return checkout_payment(
        customer_id,
        session_id=session_id,
        product_metadata={"type": "credit_pack", "credits": str(credits)},
    )


def subscription_object(
    subscription_id: str,
    *,
    customer_id: str | None = None,
    status: str = "active",
    period_start: int | None = None,
    period_end: int | None = None,
    price_id: str | None = None,
    cancel_at: int | None = None,
    canceled_at: int | None = None,
    cancel_at_period_end: bool = False,
) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "id": subscription_id,
        "object": "subscription",
        "customer": "cus_provider",
        "status": status,
        "current_period_start": period_start,
        "current_period_end": period_end,
        "cancel_at": cancel_at,
        "canceled_at": canceled_at,
        "cancel_at_period_end": cancel_at_period_end,
        "metadata": {"user_id": customer_id} if customer_id else {},
    }
    if price_id:
        obj["items"] = {"data": [{"price": {"id": price_id}}]}
    return obj


def invoice_object(
    invoice_id: str, *, subscription_id: str | None, customer_id: str | None = None
) -> dict[str, Any]:
    return {
        "id": invoice_id,
        "object": "invoice",
        "customer": "cus_provider",
        "subscription": subscription_id,
        "metadata": {"user_id": customer_id} if customer_id else {},
    }


def dumps(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")
