"""
Maintenance jobs

One-time plan passes and lapsed billing periods end without any provider
event, so a stored projection can outlive the entitlement it describes.
``refresh_expired_entitlements`` recomputes those rows.
"""
import logging
from datetime import datetime
from uuid import uuid4

import redis
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from reconciler import crud
from reconciler.billing.catalog import BillingCatalog, refresh_catalog
from reconciler.core.db import engine
from reconciler.core.redis_client import JobLock, get_redis
from reconciler.models import utc_now

logger = logging.getLogger(__name__)

REFRESH_LOCK_KEY = "entitlements:refresh:lock"
REFRESH_LOCK_TTL_SECONDS = 60 * 10


def refresh_expired_entitlements(
    *,
    db_engine: Engine | None = None,
    redis_client: redis.Redis | None = None,
    catalog: BillingCatalog | None = None,
    now: datetime | None = None,
) -> int:
    """
    Recompute projections whose paid window has lapsed

    Each customer is refreshed in its own transaction under the per-customer
    lock, so the job never races the webhook for the same customer. Runs on
    one instance at a time; a held lock skips the run.

    Args:
        db_engine: engine override (tests)
        redis_client: Redis override (tests)
        catalog: catalog override (tests)
        now: evaluation time override (tests)

    Returns:
        number of customers refreshed
    """
    now = now or utc_now()
    # pick up catalog edits made since the last run
    catalog = catalog or refresh_catalog()
    lock = JobLock(
        redis_client or get_redis(),
        REFRESH_LOCK_KEY,
        str(uuid4()),
        ttl_seconds=REFRESH_LOCK_TTL_SECONDS,
    )
    if not lock.acquire():
        logger.info("Entitlement refresh already running, skip this run.")
        return 0

    refreshed = 0
    try:
        with Session(db_engine or engine) as session:
            customer_ids = crud.list_lapsed_customers(session=session, now=now)
            session.rollback()
            if not customer_ids:
                logger.info("No lapsed entitlements found.")
                return 0

            for customer_id in customer_ids:
                try:
                    crud.refresh_entitlement(
                        session=session, customer_id=customer_id, catalog=catalog, now=now
                    )
                    session.commit()
                    refreshed += 1
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.error("Failed to refresh entitlement of customer %s: %s", customer_id, exc)

        logger.info("Entitlement refresh done: customers=%d", refreshed)
        return refreshed
    finally:
        lock.release()
