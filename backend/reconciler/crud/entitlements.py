"""Entitlement rows and the per-customer lock"""
from datetime import datetime

from sqlmodel import Session, col, select

from reconciler.billing.catalog import BillingCatalog
from reconciler.billing.projector import project_entitlement
from reconciler.enums import Plan
from reconciler.models import Entitlement, utc_now

from . import credits as credits_crud
from . import subscriptions as subscriptions_crud
from ._upsert import insert_if_absent


def get_entitlement(*, session: Session, customer_id: str) -> Entitlement | None:
    """Stored projection of a customer"""
    return session.get(Entitlement, customer_id)


def lock_customer(*, session: Session, customer_id: str) -> Entitlement:
    """
    Take the per-customer lock

    Creates the customer's entitlement row if needed and selects it
    ``FOR UPDATE``. Every mutation of the customer's subscription or credits
    happens after this call, inside the same transaction, so mutations for one
    customer are serialized while other customers proceed in parallel.
    """
    insert_if_absent(
        session=session,
        model=Entitlement,
        values={
            "customer_id": customer_id,
            "plan": Plan.free.value,
            "bonus_credits": 0,
            "version": 0,
            "computed_at": utc_now(),
        },
    )
    stmt = (
        select(Entitlement)
        .where(Entitlement.customer_id == customer_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return session.exec(stmt).one()


def refresh_entitlement(
    *, session: Session, customer_id: str, catalog: BillingCatalog, now: datetime
) -> Entitlement:
    """
    Recompute and overwrite a customer's stored projection

    Takes the customer lock, reads the current subscription and ledger and
    replaces every projected field. Does not commit.
    """
    row = lock_customer(session=session, customer_id=customer_id)
    subscription = subscriptions_crud.get_current(session=session, customer_id=customer_id)
    ledger = credits_crud.get_ledger(session=session, customer_id=customer_id)
    view = project_entitlement(subscription, ledger, catalog, now)

    row.plan = view.plan
    row.status = view.status
    row.usable_until = view.usable_until
    row.bonus_credits = view.bonus_credits
    row.version += 1
    row.computed_at = now
    session.add(row)
    session.flush()
    return row


def list_lapsed_customers(*, session: Session, now: datetime, limit: int = 500) -> list[str]:
    """Customers whose stored paid plan has passed its ``usable_until``"""
    stmt = (
        select(Entitlement.customer_id)
        .where(
            Entitlement.plan != Plan.free,
            col(Entitlement.usable_until).is_not(None),
            col(Entitlement.usable_until) <= now,
        )
        .order_by(col(Entitlement.usable_until))
        .limit(limit)
    )
    return list(session.exec(stmt).all())
