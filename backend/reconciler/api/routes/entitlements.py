"""
Entitlement read path

What external consumers read, keyed by customer id:
- the caller's own entitlement, subscription, purchases and credits
- any customer's entitlement for operators
"""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from sqlmodel import Session, col, func, select

from reconciler import crud
from reconciler.api.deps import CatalogDep, CurrentCustomerId, OpsPrincipal, SessionDep
from reconciler.api.schemas import (
    ApiEnvelope,
    CreditGrantData,
    CreditsData,
    EntitlementData,
    PurchaseData,
    PurchasesData,
    SubscriptionData,
)
from reconciler.billing.catalog import BillingCatalog
from reconciler.enums import Plan
from reconciler.models import CreditGrant, Purchase, as_utc, utc_now

router = APIRouter(prefix="/entitlement", tags=["entitlement"])
customers_router = APIRouter(prefix="/customers", tags=["customers"])


def build_entitlement_data(
    session: Session, customer_id: str, catalog: BillingCatalog, now: datetime
) -> EntitlementData:
    """
    Stored projection of a customer, as served

    Customers never seen by the reconciler get the free default. A stored paid
    plan whose window has lapsed since the last recompute is served as free
    until the maintenance job rewrites the row.
    """
    row = crud.get_entitlement(session=session, customer_id=customer_id)
    if row is None:
        return EntitlementData(
            customer_id=customer_id, plan=Plan.free, limits=catalog.limits_for(Plan.free)
        )

    plan = Plan(row.plan)
    usable_until = as_utc(row.usable_until)
    if plan != Plan.free and usable_until is not None and usable_until <= now:
        plan = Plan.free
    return EntitlementData(
        customer_id=customer_id,
        plan=plan,
        status=row.status,
        usable_until=usable_until,
        bonus_credits=row.bonus_credits,
        limits=catalog.limits_for(plan),
        version=row.version,
        computed_at=as_utc(row.computed_at),
    )


@router.get("", response_model=ApiEnvelope)
def my_entitlement(
    session: SessionDep, customer_id: CurrentCustomerId, catalog: CatalogDep
) -> ApiEnvelope:
    """
    Current plan, status and credits of the caller

    Request path: GET /api/v1/entitlement
    """
    return ApiEnvelope(data=build_entitlement_data(session, customer_id, catalog, utc_now()))


@router.get("/subscription", response_model=ApiEnvelope)
def my_subscription(session: SessionDep, customer_id: CurrentCustomerId) -> ApiEnvelope:
    """
    The caller's live subscription, else the latest canceled one, else null

    Request path: GET /api/v1/entitlement/subscription
    """
    sub = crud.get_current_subscription(session=session, customer_id=customer_id)
    if sub is None:
        return ApiEnvelope(data=None)
    return ApiEnvelope(
        data=SubscriptionData(
            plan=sub.plan,
            status=sub.status,
            provider_subscription_id=sub.provider_subscription_id,
            provider_price_id=sub.provider_price_id,
            current_period_start=as_utc(sub.current_period_start),
            current_period_end=as_utc(sub.current_period_end),
            cancel_at=as_utc(sub.cancel_at),
            canceled_at=as_utc(sub.canceled_at),
            premium_start=as_utc(sub.premium_start),
            premium_end=as_utc(sub.premium_end),
            premium_cycles_paid=sub.premium_cycles_paid,
            pass_plan=sub.pass_plan,
            pass_end=as_utc(sub.pass_end),
            updated_at=as_utc(sub.updated_at),
        )
    )


@router.get("/purchases", response_model=ApiEnvelope)
def my_purchases(
    session: SessionDep,
    customer_id: CurrentCustomerId,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    """
    Purchase history of the caller, newest first

    Request path: GET /api/v1/entitlement/purchases?page=1&page_size=20
    """
    offset = (page - 1) * page_size

    count_stmt = (
        select(func.count()).select_from(Purchase).where(Purchase.customer_id == customer_id)
    )
    count = session.exec(count_stmt).one()

    stmt = (
        select(Purchase)
        .where(Purchase.customer_id == customer_id)
        .order_by(col(Purchase.id).desc())
        .offset(offset)
        .limit(page_size)
    )
    rows = session.exec(stmt).all()

    data = [
        PurchaseData(
            checkout_session_id=row.checkout_session_id,
            product_type=row.product_type,
            product_kind=row.product_kind,
            credits=row.credits,
            amount=row.amount,
            currency=row.currency,
            status=row.status,
            created_at=as_utc(row.created_at),
        )
        for row in rows
    ]
    return ApiEnvelope(data=PurchasesData(data=data, count=count))


@router.get("/credits", response_model=ApiEnvelope)
def my_credits(
    session: SessionDep,
    customer_id: CurrentCustomerId,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    """
    Credit balance of the caller and the grants behind it

    Request path: GET /api/v1/entitlement/credits?page=1&page_size=20
    """
    ledger = crud.get_ledger(session=session, customer_id=customer_id)
    offset = (page - 1) * page_size

    count = session.exec(
        select(func.count()).select_from(CreditGrant).where(CreditGrant.customer_id == customer_id)
    ).one()
    rows = session.exec(
        select(CreditGrant)
        .where(CreditGrant.customer_id == customer_id)
        .order_by(col(CreditGrant.id).desc())
        .offset(offset)
        .limit(page_size)
    ).all()

    grants = [
        CreditGrantData(
            purchase_session_id=row.purchase_session_id,
            credits=row.credits,
            balance_after=row.balance_after,
            created_at=as_utc(row.created_at),
        )
        for row in rows
    ]
    balance = ledger.granted_total if ledger is not None else 0
    return ApiEnvelope(data=CreditsData(balance=balance, grants=grants, count=count))


@customers_router.get("/{customer_id}/entitlement", response_model=ApiEnvelope)
def customer_entitlement(
    customer_id: str, session: SessionDep, _: OpsPrincipal, catalog: CatalogDep
) -> ApiEnvelope:
    """
    Entitlement of any customer (operators)

    Request path: GET /api/v1/customers/{customer_id}/entitlement
    """
    return ApiEnvelope(data=build_entitlement_data(session, customer_id, catalog, utc_now()))
