"""Purchase queries"""
from sqlmodel import Session, select

from reconciler.models import Purchase


def get_by_session_id(*, session: Session, checkout_session_id: str) -> Purchase | None:
    """Purchase written for a checkout session, if any"""
    stmt = select(Purchase).where(Purchase.checkout_session_id == checkout_session_id)
    return session.exec(stmt).first()
