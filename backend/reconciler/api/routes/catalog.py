"""
Billing catalog (operators)

Price mappings change without a deploy: edit the catalog file, then reload.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import ValidationError

from reconciler.api.deps import CatalogDep, OpsPrincipal
from reconciler.api.errors import catalog_reload_failed
from reconciler.api.schemas import ApiEnvelope, CatalogData
from reconciler.billing.catalog import BillingCatalog, refresh_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/catalog", tags=["catalog"])


def _catalog_data(catalog: BillingCatalog) -> CatalogData:
    return CatalogData(
        version=catalog.version,
        subscription_prices=len(catalog.subscription_prices),
        one_time_products=len(catalog.one_time_products),
    )


@router.get("", response_model=ApiEnvelope)
def current_catalog(_: OpsPrincipal, catalog: CatalogDep) -> ApiEnvelope:
    """
    Catalog in use

    Request path: GET /api/v1/catalog
    """
    return ApiEnvelope(data=_catalog_data(catalog))


@router.post("/refresh", response_model=ApiEnvelope)
def reload_catalog(principal: OpsPrincipal) -> ApiEnvelope:
    """
    Reload the catalog file; the next webhook and read use it

    An unreadable or invalid file keeps the previous catalog.

    Request path: POST /api/v1/catalog/refresh
    """
    try:
        catalog = refresh_catalog()
    except (OSError, ValidationError) as exc:
        logger.error("Billing catalog reload by %s failed: %s", principal.sub, exc)
        raise catalog_reload_failed(type(exc).__name__)
    logger.info("Billing catalog reloaded by %s: %s", principal.sub, catalog.version)
    return ApiEnvelope(data=_catalog_data(catalog))
