"""
State reconciler

One handler per provider event kind. A handler resolves the customer, takes
the per-customer lock, applies its effect to the subscription / purchase /
credit rows and reports an outcome. Handlers never commit: the processor owns
the transaction.

Subscription status moves ``active -> {past_due, canceled}`` and
``past_due -> {active, canceled}``; ``canceled`` is terminal. A new
subscription for the same customer is a new row under a new provider
subscription id.

Ordering between deliveries is decided here, not by arrival order:
- a period window replaces the stored one only when its start is not older,
  or when the event itself is newer than the last applied event
- cancellation signals always apply their cancel fields
- payment failures always apply
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlmodel import Session

from reconciler import crud
from reconciler.billing.catalog import BillingCatalog, OneTimeProduct
from reconciler.billing.errors import TerminalEventError
from reconciler.billing.events import (
    CheckoutSession,
    InvoiceObject,
    ProviderEvent,
    SubscriptionObject,
    from_unix,
)
from reconciler.enums import EventOutcome, Plan, ProductKind, PurchaseStatus, SubscriptionStatus
from reconciler.models import Purchase, Subscription, as_utc

logger = logging.getLogger(__name__)


@dataclass
class ReconcileContext:
    """Per-event state shared by handlers: the open session, the catalog and processing time."""
    session: Session
    catalog: BillingCatalog
    now: datetime


@dataclass(frozen=True)
class HandlerResult:
    outcome: EventOutcome
    customer_id: str | None = None
    detail: str | None = None


def _applied(customer_id: str) -> HandlerResult:
    return HandlerResult(EventOutcome.applied, customer_id)


def _ignored(detail: str, customer_id: str | None = None) -> HandlerResult:
    return HandlerResult(EventOutcome.ignored, customer_id, detail)


# ============================================================
# Shared rules
# ============================================================


def _event_time(ctx: ReconcileContext, event: ProviderEvent) -> datetime:
    return event.created_at or ctx.now


def _window_applies(sub: Subscription, start: datetime | None, event_time: datetime) -> bool:
    """Whether an incoming period window may replace the stored one."""
    stored_start = as_utc(sub.current_period_start)
    if stored_start is None:
        return True
    if start is not None and start >= stored_start:
        return True
    last = as_utc(sub.last_event_at)
    return last is not None and event_time > last


def _apply_window(sub: Subscription, start: datetime | None, end: datetime | None) -> None:
    if start is not None:
        sub.current_period_start = start
    if end is not None:
        sub.current_period_end = end


def _touch(sub: Subscription, ctx: ReconcileContext, event_time: datetime) -> None:
    last = as_utc(sub.last_event_at)
    if last is None or event_time > last:
        sub.last_event_at = event_time
    sub.updated_at = ctx.now
    ctx.session.add(sub)
    ctx.session.flush()


def _open_premium_window(sub: Subscription, ctx: ReconcileContext, start: datetime) -> None:
    """Start a premium window unless one is still open."""
    premium_end = as_utc(sub.premium_end)
    if premium_end is not None and premium_end > ctx.now:
        return
    sub.premium_start = start
    sub.premium_end = start + timedelta(days=ctx.catalog.premium_window_days)


def _terminate(sub: Subscription, canceled_at: datetime) -> None:
    sub.status = SubscriptionStatus.canceled
    sub.canceled_at = canceled_at


def _find_subscription(
    ctx: ReconcileContext, provider_subscription_id: str | None, customer_hint: str | None
) -> Subscription | None:
    """
    Locate the row an event refers to and lock its customer

    Looks up the provider subscription id first. When that id is unknown
    locally, falls back to the hinted customer's live row, but only a row
    that is not bound to another provider subscription.
    """
    session = ctx.session
    sub = None
    if provider_subscription_id:
        sub = crud.get_subscription_by_provider_id(
            session=session, provider_subscription_id=provider_subscription_id
        )
    if sub is None and customer_hint:
        live = crud.get_live_subscription(session=session, customer_id=customer_hint)
        if live is not None and live.provider_subscription_id is None:
            sub = live
    if sub is None:
        return None

    crud.lock_customer(session=session, customer_id=sub.customer_id)
    # re-read under the lock
    session.refresh(sub)
    return sub


# ============================================================
# checkout.session.completed
# ============================================================


def handle_checkout_completed(ctx: ReconcileContext, event: ProviderEvent) -> HandlerResult:
    """
    Completed hosted checkout

    Subscription mode activates (or re-activates) the customer's subscription;
    payment mode records a one-time purchase.

    Raises:
        TerminalEventError: the session carries no customer correlation
    """
    checkout = event.object_as(CheckoutSession)
    customer_id = checkout.customer_id
    if not customer_id:
        raise TerminalEventError(f"checkout session {checkout.id} has no metadata.user_id")

    if checkout.mode == "subscription":
        return _activate_subscription(ctx, event, checkout, customer_id)
    if checkout.mode == "payment":
        return _record_purchase(ctx, event, checkout, customer_id)
    return _ignored(f"unsupported checkout mode {checkout.mode!r}")


def _activate_subscription(
    ctx: ReconcileContext, event: ProviderEvent, checkout: CheckoutSession, customer_id: str
) -> HandlerResult:
    session = ctx.session
    crud.lock_customer(session=session, customer_id=customer_id)

    provider_subscription_id = checkout.subscription_id
    price_id = checkout.subscription_price_id()
    plan = ctx.catalog.plan_for_price(price_id)
    start, end = checkout.subscription_period()
    event_time = _event_time(ctx, event)

    sub = None
    if provider_subscription_id:
        sub = crud.get_subscription_by_provider_id(
            session=session, provider_subscription_id=provider_subscription_id
        )
        if sub is not None and sub.status == SubscriptionStatus.canceled:
            return _ignored("subscription is canceled", sub.customer_id)
        if sub is not None and not _window_applies(sub, start, event_time):
            # a later update already moved this subscription on
            return _ignored("stale activation", sub.customer_id)

    if sub is None:
        live = crud.get_live_subscription(session=session, customer_id=customer_id)
        if (
            live is not None
            and live.provider_subscription_id
            and live.provider_subscription_id != provider_subscription_id
        ):
            # replaced by a new provider subscription
            _terminate(live, ctx.now)
            _touch(live, ctx, event_time)
            logger.info(
                "Closed subscription %s of customer %s, replaced by %s",
                live.provider_subscription_id,
                customer_id,
                provider_subscription_id,
            )
            live = None
        sub = live

    if sub is None:
        sub = Subscription(customer_id=customer_id, plan=plan, status=SubscriptionStatus.active)

    sub.plan = plan
    sub.status = SubscriptionStatus.active
    sub.provider_customer_id = checkout.provider_customer_id or sub.provider_customer_id
    sub.provider_subscription_id = provider_subscription_id or sub.provider_subscription_id
    sub.provider_price_id = price_id or sub.provider_price_id
    if _window_applies(sub, start, event_time):
        _apply_window(sub, start, end)
    if plan == Plan.premium_tier:
        _open_premium_window(sub, ctx, start or event_time)
    _touch(sub, ctx, event_time)
    logger.info("Activated %s subscription for customer %s", plan.value, customer_id)
    return _applied(customer_id)


def _record_purchase(
    ctx: ReconcileContext, event: ProviderEvent, checkout: CheckoutSession, customer_id: str
) -> HandlerResult:
    session = ctx.session
    crud.lock_customer(session=session, customer_id=customer_id)

    existing = crud.get_purchase_by_session_id(session=session, checkout_session_id=checkout.id)
    if existing is not None:
        return _ignored("purchase already recorded", customer_id)

    price_id = checkout.payment_price_id()
    product = ctx.catalog.classify_purchase(
        price_id=price_id,
        product_metadata=checkout.product_metadata(),
        session_metadata=checkout.metadata,
    )
    if product.kind == ProductKind.credit_pack and product.credits <= 0:
        raise TerminalEventError(
            f"credit pack purchase {checkout.id} has no credit amount", customer_id=customer_id
        )

    purchase = Purchase(
        checkout_session_id=checkout.id,
        customer_id=customer_id,
        product_type=product.product_type,
        product_kind=product.kind,
        credits=product.credits if product.kind == ProductKind.credit_pack else 0,
        amount=checkout.amount_total or 0,
        currency=(checkout.currency or "eur").lower(),
        status=PurchaseStatus.paid,
        provider_price_id=price_id,
        provider_payment_intent_id=checkout.payment_intent_id,
    )
    session.add(purchase)
    session.flush()

    if product.kind == ProductKind.credit_pack:
        grant = crud.grant_credits(
            session=session,
            customer_id=customer_id,
            purchase_session_id=checkout.id,
            credits=product.credits,
        )
        logger.info(
            "Granted %d credits to customer %s (total %d)",
            grant.credits,
            customer_id,
            grant.balance_after,
        )
    elif product.kind == ProductKind.plan_pass:
        _grant_plan_pass(ctx, event, customer_id, product)

    return _applied(customer_id)


def _grant_plan_pass(
    ctx: ReconcileContext, event: ProviderEvent, customer_id: str, product: OneTimeProduct
) -> None:
    """
    One-time plan purchase: an active plan for a fixed window

    On a row bound to a recurring provider subscription the pass goes to
    ``pass_plan`` / ``pass_end`` so later provider updates cannot cut it
    short. Otherwise the row itself carries the pass. A pass bought while
    another one is open extends it; paid cycles add up.
    """
    plan = product.plan or Plan.premium_tier
    event_time = _event_time(ctx, event)
    window = timedelta(days=ctx.catalog.premium_window_days)
    sub = crud.get_live_subscription(session=ctx.session, customer_id=customer_id)

    if sub is not None and sub.provider_subscription_id:
        open_until = as_utc(sub.pass_end)
        start = open_until if open_until is not None and open_until > event_time else event_time
        sub.pass_plan = plan
        sub.pass_end = start + window
    else:
        if sub is None:
            sub = Subscription(customer_id=customer_id, plan=plan, status=SubscriptionStatus.active)
        open_until = as_utc(sub.premium_end)
        start = open_until if open_until is not None and open_until > event_time else event_time
        sub.plan = plan
        sub.status = SubscriptionStatus.active
        if sub.premium_start is None or start == event_time:
            sub.premium_start = start
        sub.premium_end = start + window
        sub.current_period_start = sub.premium_start
        sub.current_period_end = sub.premium_end
    sub.premium_cycles_paid += product.cycles
    _touch(sub, ctx, event_time)
    logger.info("Granted %s pass to customer %s", plan.value, customer_id)


# ============================================================
# customer.subscription.updated / deleted
# ============================================================


def handle_subscription_updated(ctx: ReconcileContext, event: ProviderEvent) -> HandlerResult:
    """
    Provider-side subscription change

    Stale windows are ignored unless the event is a cancellation, in which
    case only the cancel fields (and a canceled status) are applied.
    """
    obj = event.object_as(SubscriptionObject)
    sub = _find_subscription(ctx, obj.id, obj.customer_id)
    if sub is None:
        return _ignored("no matching subscription")
    customer_id = sub.customer_id
    if sub.status == SubscriptionStatus.canceled:
        return _ignored("subscription is canceled", customer_id)

    event_time = _event_time(ctx, event)
    start, end = obj.period()
    fresh = _window_applies(sub, start, event_time)
    if not fresh and not obj.is_cancellation:
        return _ignored("stale period window", customer_id)

    status = obj.local_status
    if fresh:
        _apply_window(sub, start, end)
        if status is not None and status != SubscriptionStatus.canceled:
            sub.status = status
        price_id = obj.price_id()
        if ctx.catalog.is_subscription_price(price_id):
            sub.plan = ctx.catalog.plan_for_price(price_id)
            sub.provider_price_id = price_id
            if sub.plan == Plan.premium_tier:
                _open_premium_window(sub, ctx, start or event_time)

    cancel_at = from_unix(obj.cancel_at)
    if cancel_at is None and obj.cancel_at_period_end:
        cancel_at = as_utc(sub.current_period_end)
    sub.cancel_at = cancel_at
    sub.canceled_at = from_unix(obj.canceled_at)
    if status == SubscriptionStatus.canceled:
        _terminate(sub, sub.canceled_at or ctx.now)

    if obj.provider_customer_id:
        sub.provider_customer_id = obj.provider_customer_id
    _touch(sub, ctx, event_time)
    return _applied(customer_id)


def handle_subscription_deleted(ctx: ReconcileContext, event: ProviderEvent) -> HandlerResult:
    """Provider canceled the subscription: terminal."""
    obj = event.object_as(SubscriptionObject)
    sub = _find_subscription(ctx, obj.id, obj.customer_id)
    if sub is None:
        return _ignored("no matching subscription")
    if sub.status == SubscriptionStatus.canceled:
        return _ignored("subscription is canceled", sub.customer_id)

    _terminate(sub, ctx.now)
    _touch(sub, ctx, _event_time(ctx, event))
    logger.info("Canceled subscription %s of customer %s", obj.id, sub.customer_id)
    return _applied(sub.customer_id)


# ============================================================
# invoice.paid / invoice.payment_failed
# ============================================================


def handle_invoice_paid(ctx: ReconcileContext, event: ProviderEvent) -> HandlerResult:
    """
    Paid renewal invoice

    Recovers a past_due subscription and counts one paid cycle on metered
    plans. Redelivery of the same invoice event never reaches this point.
    """
    invoice = event.object_as(InvoiceObject)
    if not invoice.subscription_id:
        return _ignored("invoice has no subscription")
    sub = _find_subscription(ctx, invoice.subscription_id, invoice.customer_id)
    if sub is None:
        return _ignored("no matching subscription")
    customer_id = sub.customer_id
    if sub.status == SubscriptionStatus.canceled:
        return _ignored("subscription is canceled", customer_id)

    changed = False
    if sub.status == SubscriptionStatus.past_due:
        sub.status = SubscriptionStatus.active
        changed = True
    if ctx.catalog.is_metered(sub.plan):
        sub.premium_cycles_paid += 1
        changed = True
    if not changed:
        return _ignored("no state change", customer_id)

    _touch(sub, ctx, _event_time(ctx, event))
    return _applied(customer_id)


def handle_invoice_payment_failed(ctx: ReconcileContext, event: ProviderEvent) -> HandlerResult:
    """Failed renewal payment: past_due regardless of ordering."""
    invoice = event.object_as(InvoiceObject)
    if not invoice.subscription_id:
        return _ignored("invoice has no subscription")
    sub = _find_subscription(ctx, invoice.subscription_id, invoice.customer_id)
    if sub is None:
        return _ignored("no matching subscription")
    if sub.status == SubscriptionStatus.canceled:
        return _ignored("subscription is canceled", sub.customer_id)

    sub.status = SubscriptionStatus.past_due
    _touch(sub, ctx, _event_time(ctx, event))
    logger.warning(
        "Payment failed for subscription %s of customer %s",
        sub.provider_subscription_id,
        sub.customer_id,
    )
    return _applied(sub.customer_id)
