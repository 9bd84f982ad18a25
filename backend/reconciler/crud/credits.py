"""Credit ledger operations"""
from sqlalchemy import update
from sqlmodel import Session, select

from reconciler.models import CreditGrant, CreditLedger, utc_now

from ._upsert import insert_if_absent


def get_ledger(*, session: Session, customer_id: str) -> CreditLedger | None:
    """The customer's ledger, re-read from the store"""
    stmt = (
        select(CreditLedger)
        .where(CreditLedger.customer_id == customer_id)
        .execution_options(populate_existing=True)
    )
    return session.exec(stmt).first()


def grant_credits(
    *, session: Session, customer_id: str, purchase_session_id: str, credits: int
) -> CreditGrant:
    """
    Add credits to the customer's ledger

    The increment is a single ``UPDATE ... SET granted_total = granted_total + n``
    so two grants can never read the same starting balance. The grant row is
    unique per purchase; a second grant for the same purchase fails on flush.
    Does not commit.

    Args:
        session: database session (caller holds the customer lock)
        customer_id: customer receiving the credits
        purchase_session_id: checkout session of the credit-pack purchase
        credits: amount to add, must be positive

    Returns:
        the new CreditGrant, with ``balance_after`` set
    """
    if credits <= 0:
        raise ValueError("credits must be positive")

    insert_if_absent(
        session=session,
        model=CreditLedger,
        values={"customer_id": customer_id, "granted_total": 0, "updated_at": utc_now()},
    )
    session.exec(
        update(CreditLedger)
        .where(CreditLedger.customer_id == customer_id)
        .values(granted_total=CreditLedger.granted_total + credits, updated_at=utc_now())
    )
    ledger = session.exec(
        select(CreditLedger)
        .where(CreditLedger.customer_id == customer_id)
        .execution_options(populate_existing=True)
    ).one()

    grant = CreditGrant(
        customer_id=customer_id,
        purchase_session_id=purchase_session_id,
        credits=credits,
        balance_after=ledger.granted_total,
    )
    session.add(grant)
    session.flush()
    return grant
