"""Subscription queries"""
from sqlmodel import Session, col, select

from reconciler.enums import SubscriptionStatus
from reconciler.models import Subscription


def get_by_provider_id(*, session: Session, provider_subscription_id: str) -> Subscription | None:
    """Subscription row for a provider subscription id"""
    stmt = select(Subscription).where(
        Subscription.provider_subscription_id == provider_subscription_id
    )
    return session.exec(stmt).first()


def get_live(*, session: Session, customer_id: str) -> Subscription | None:
    """The customer's non-canceled subscription (at most one exists)"""
    stmt = select(Subscription).where(
        Subscription.customer_id == customer_id,
        Subscription.status != SubscriptionStatus.canceled,
    )
    return session.exec(stmt).first()


def get_current(*, session: Session, customer_id: str) -> Subscription | None:
    """The live subscription, else the most recent canceled one"""
    live = get_live(session=session, customer_id=customer_id)
    if live is not None:
        return live
    stmt = (
        select(Subscription)
        .where(Subscription.customer_id == customer_id)
        .order_by(col(Subscription.id).desc())
    )
    return session.exec(stmt).first()
