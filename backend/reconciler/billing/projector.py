"""
Entitlement projection

Pure function of stored state: no provider calls, no writes. The result is
recomputed from scratch after every reconciliation so that a run of stale or
ignored events can never leave a patched, drifting value behind.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from reconciler.billing.catalog import BillingCatalog
from reconciler.enums import Plan, SubscriptionStatus
from reconciler.models import CreditLedger, Subscription, as_utc


@dataclass(frozen=True)
class EntitlementView:
    """What a customer may currently use."""
    plan: Plan
    status: SubscriptionStatus | None
    usable_until: datetime | None
    bonus_credits: int
    limits: dict[str, int] = field(default_factory=dict)


def _latest(*values: datetime | None) -> datetime | None:
    present = [v for v in values if v is not None]
    return max(present) if present else None


def usable_until(subscription: Subscription) -> datetime | None:
    """
    End of a subscription's paid entitlement

    The later of the billing period end and the premium window end, cut short
    by a scheduled cancellation. None means open-ended.
    """
    end = _latest(as_utc(subscription.current_period_end), as_utc(subscription.premium_end))
    cancel_at = as_utc(subscription.cancel_at)
    if cancel_at is not None and (end is None or cancel_at < end):
        end = cancel_at
    return end


_PLAN_RANK = {Plan.free: 0, Plan.basic_tier: 1, Plan.premium_tier: 2}


def open_pass(subscription: Subscription, now: datetime) -> tuple[Plan, datetime] | None:
    """Plan pass held on top of the subscription, while it lasts."""
    pass_end = as_utc(subscription.pass_end)
    if subscription.pass_plan is None or pass_end is None or pass_end <= now:
        return None
    return Plan(subscription.pass_plan), pass_end


def project_entitlement(
    subscription: Subscription | None,
    ledger: CreditLedger | None,
    catalog: BillingCatalog,
    now: datetime,
) -> EntitlementView:
    """
    Compute the entitlement of one customer

    Rules:
    - no subscription, or a canceled one: free
    - active or past_due: the subscription's plan while ``usable_until`` is
      in the future (past_due keeps the plan until the provider cancels)
    - lapsed window: free, status kept for display
    - an open plan pass wins over a lower or lapsed plan, and keeps a
      canceled subscription entitled until the pass ends

    Args:
        subscription: the customer's current subscription row, if any
        ledger: the customer's credit ledger, if any
        catalog: billing catalog (plan limits)
        now: evaluation time (aware UTC)

    Returns:
        EntitlementView
    """
    credits = ledger.granted_total if ledger is not None else 0

    if subscription is None:
        return EntitlementView(Plan.free, None, None, credits, catalog.limits_for(Plan.free))

    status = SubscriptionStatus(subscription.status)
    held = open_pass(subscription, now)
    if status == SubscriptionStatus.canceled:
        if held is not None:
            pass_plan, pass_end = held
            return EntitlementView(pass_plan, status, pass_end, credits, catalog.limits_for(pass_plan))
        return EntitlementView(Plan.free, status, None, credits, catalog.limits_for(Plan.free))

    until = usable_until(subscription)
    lapsed = until is not None and until <= now
    plan = Plan.free if lapsed else Plan(subscription.plan)

    if held is not None:
        pass_plan, pass_end = held
        if lapsed or _PLAN_RANK[pass_plan] > _PLAN_RANK[plan]:
            plan, until = pass_plan, pass_end
        elif _PLAN_RANK[pass_plan] == _PLAN_RANK[plan] and until is not None:
            until = max(until, pass_end)
        lapsed = False

    if lapsed:
        return EntitlementView(Plan.free, status, until, credits, catalog.limits_for(Plan.free))
    return EntitlementView(plan, status, until, credits, catalog.limits_for(plan))
