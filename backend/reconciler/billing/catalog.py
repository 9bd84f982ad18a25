"""
Billing catalog

Price ids and product classification rules are external configuration: a
versioned JSON file validated by Pydantic, loaded once per process and
refreshable without a restart.

A price id is a tagged variant:
- subscription price -> plan
- one-time price -> product (credit_pack / plan_pass / service)
"""
from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Any

from pydantic import BaseModel, Field, model_validator
from typing_extensions import Self

from reconciler.core.config import settings
from reconciler.enums import Plan, ProductKind

logger = logging.getLogger(__name__)

UNKNOWN_PRODUCT_TYPE = "unknown"


class OneTimeProduct(BaseModel):
    """Classification of a one-time price."""
    product_type: str = Field(min_length=1, max_length=64)
    kind: ProductKind
    plan: Plan | None = None  # plan_pass only
    cycles: int = Field(default=0, ge=0)  # plan_pass only
    credits: int = Field(default=0, ge=0)  # credit_pack only

    @model_validator(mode="after")
    def _check_kind_fields(self) -> Self:
        if self.kind == ProductKind.plan_pass and self.plan in (None, Plan.free):
            raise ValueError(f"plan_pass product {self.product_type!r} needs a paid plan")
        return self


class CreditPackMetadata(BaseModel):
    """Product metadata keys that mark a provider product as a credit pack."""
    type_key: str = "type"
    type_value: str = "credit_pack"
    credits_key: str = "credits"


class BillingCatalog(BaseModel):
    """
    Price/product catalog

    Fields:
    - version: free-form catalog version, logged on load
    - subscription_prices: recurring price id -> plan
    - default_subscription_plan: plan for recurring prices missing from the map
    - one_time_products: one-time price id -> product
    - credit_pack_metadata: how credit packs are tagged in product metadata
    - premium_window_days: length of a premium entitlement window
    - metered_plans: plans whose paid cycles are counted on each paid invoice
    - plan_limits: usage limits per plan, exposed with the entitlement
    """
    version: str
    subscription_prices: dict[str, Plan] = {}
    default_subscription_plan: Plan = Plan.basic_tier
    one_time_products: dict[str, OneTimeProduct] = {}
    credit_pack_metadata: CreditPackMetadata = CreditPackMetadata()
    premium_window_days: int = Field(default=180, gt=0)
    metered_plans: list[Plan] = [Plan.premium_tier]
    plan_limits: dict[Plan, dict[str, int]] = {}

    def plan_for_price(self, price_id: str | None) -> Plan:
        """Plan of a recurring price; unknown prices fall back to the default plan."""
        if price_id and price_id in self.subscription_prices:
            return self.subscription_prices[price_id]
        return self.default_subscription_plan

    def is_subscription_price(self, price_id: str | None) -> bool:
        return bool(price_id) and price_id in self.subscription_prices

    def is_metered(self, plan: Plan | str) -> bool:
        return Plan(plan) in self.metered_plans

    def limits_for(self, plan: Plan | str) -> dict[str, int]:
        return dict(self.plan_limits.get(Plan(plan), {}))

    def classify_purchase(
        self,
        *,
        price_id: str | None,
        product_metadata: dict[str, Any] | None = None,
        session_metadata: dict[str, Any] | None = None,
    ) -> OneTimeProduct:
        """
        Classify a one-time checkout

        Lookup order:
        1. credit-pack marker in the provider product's metadata
        2. the price id in ``one_time_products``
        3. credit-pack marker in the checkout session's metadata

        Args:
            price_id: price of the first line item, if known
            product_metadata: metadata of the expanded provider product
            session_metadata: metadata of the checkout session

        Returns:
            the matched product; unmatched purchases are an ``unknown`` service.
            A credit pack whose marker carries no usable amount is returned
            with ``credits == 0`` and left to the caller to reject.
        """
        marked = self._credit_pack_from_metadata(product_metadata)
        if marked is not None:
            return marked
        if price_id and price_id in self.one_time_products:
            return self.one_time_products[price_id]
        marked = self._credit_pack_from_metadata(session_metadata)
        if marked is not None:
            return marked
        return OneTimeProduct(product_type=UNKNOWN_PRODUCT_TYPE, kind=ProductKind.service)

    def _credit_pack_from_metadata(self, metadata: dict[str, Any] | None) -> OneTimeProduct | None:
        rules = self.credit_pack_metadata
        if not metadata or metadata.get(rules.type_key) != rules.type_value:
            return None
        try:
            credits = int(str(metadata.get(rules.credits_key, "0")))
        except ValueError:
            credits = 0
        credits = max(credits, 0)
        return OneTimeProduct(
            product_type=f"{rules.type_value}_{credits}",
            kind=ProductKind.credit_pack,
            credits=credits,
        )


_lock = Lock()
_catalog: BillingCatalog | None = None


def load_catalog(path: Path) -> BillingCatalog:
    """
    Read and validate a catalog file

    Raises:
        OSError: file missing or unreadable
        pydantic.ValidationError: file does not describe a valid catalog
    """
    catalog = BillingCatalog.model_validate_json(Path(path).read_text(encoding="utf-8"))
    logger.info("Loaded billing catalog %s from %s", catalog.version, path)
    return catalog


def get_catalog() -> BillingCatalog:
    """Process-wide catalog, loaded from ``settings.BILLING_CATALOG_PATH`` on first use."""
    global _catalog
    with _lock:
        if _catalog is None:
            _catalog = load_catalog(settings.BILLING_CATALOG_PATH)
        return _catalog


def refresh_catalog() -> BillingCatalog:
    """Reload the catalog file, replacing the cached one."""
    global _catalog
    with _lock:
        _catalog = load_catalog(settings.BILLING_CATALOG_PATH)
        return _catalog
