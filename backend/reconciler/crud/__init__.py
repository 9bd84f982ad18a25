"""CRUD operations"""
from .credits import get_ledger, grant_credits
from .entitlements import (
    get_entitlement,
    list_lapsed_customers,
    lock_customer,
    refresh_entitlement,
)
from .events import claim_event, find_processed_event, finish_event
from .purchases import get_by_session_id as get_purchase_by_session_id
from .subscriptions import (
    get_by_provider_id as get_subscription_by_provider_id,
)
from .subscriptions import (
    get_current as get_current_subscription,
)
from .subscriptions import (
    get_live as get_live_subscription,
)

__all__ = [
    "get_ledger",
    "grant_credits",
    "get_entitlement",
    "list_lapsed_customers",
    "lock_customer",
    "refresh_entitlement",
    "claim_event",
    "find_processed_event",
    "finish_event",
    "get_purchase_by_session_id",
    "get_subscription_by_provider_id",
    "get_current_subscription",
    "get_live_subscription",
]
