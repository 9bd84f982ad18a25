"""
Database models

Tables are split by concern:
- subscription.py: reconciled subscriptions
- purchase.py: one-time purchases
- credit.py: credit ledger and its grants
- processed_event.py: provider event dedup/audit records
- entitlement.py: stored entitlement projection (also the per-customer lock row)
"""
from sqlmodel import SQLModel

from .base import as_utc, utc_now
from .credit import CreditGrant, CreditLedger
from .entitlement import Entitlement
from .processed_event import ProcessedEventRecord
from .purchase import Purchase
from .subscription import Subscription

__all__ = [
    "SQLModel",
    "utc_now",
    "as_utc",
    "Subscription",
    "Purchase",
    "CreditLedger",
    "CreditGrant",
    "ProcessedEventRecord",
    "Entitlement",
]
