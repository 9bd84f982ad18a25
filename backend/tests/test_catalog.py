from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from reconciler.billing import catalog as catalog_module
from reconciler.billing.catalog import (
    UNKNOWN_PRODUCT_TYPE,
    BillingCatalog,
    OneTimeProduct,
    get_catalog,
    load_catalog,
    refresh_catalog,
)
from reconciler.core.config import settings
from reconciler.enums import Plan, ProductKind


def test_shipped_catalog_loads(catalog):
    assert catalog.version
    assert catalog.premium_window_days == 180
    assert catalog.plan_for_price("price_basic_monthly") == Plan.basic_tier
    assert catalog.plan_for_price("price_premium_monthly") == Plan.premium_tier
    assert catalog.limits_for(Plan.premium_tier) == {"total": 300}
    assert catalog.is_metered("premium_tier") is True
    assert catalog.is_metered(Plan.basic_tier) is False


def test_unknown_recurring_price_falls_back_to_default_plan(catalog):
    assert catalog.plan_for_price("price_brand_new") == Plan.basic_tier
    assert catalog.plan_for_price(None) == Plan.basic_tier
    assert catalog.is_subscription_price("price_brand_new") is False
    assert catalog.is_subscription_price(None) is False


def test_product_metadata_marker_wins_over_price(catalog):
    product = catalog.classify_purchase(
        price_id="price_coaching",
        product_metadata={"type": "credit_pack", "credits": "250"},
    )
    assert product.kind == ProductKind.credit_pack
    assert product.credits == 250
    assert product.product_type == "credit_pack_250"


def test_price_lookup_then_session_metadata(catalog):
    by_price = catalog.classify_purchase(
        price_id="price_audit_perso",
        session_metadata={"type": "credit_pack", "credits": "5"},
    )
    assert by_price.product_type == "audit_perso"
    assert by_price.kind == ProductKind.service

    by_session = catalog.classify_purchase(
        price_id=None, session_metadata={"type": "credit_pack", "credits": "5"}
    )
    assert by_session.kind == ProductKind.credit_pack
    assert by_session.credits == 5
    assert by_session.product_type == "credit_pack_5"


def test_unmatched_purchase_is_unknown_service(catalog):
    product = catalog.classify_purchase(price_id="price_unlisted", product_metadata={"type": "other"})
    assert product.product_type == UNKNOWN_PRODUCT_TYPE
    assert product.kind == ProductKind.service


@pytest.mark.parametrize("credits", ["", "lots", "-3", None])
def test_credit_marker_without_usable_amount(catalog, credits):
    metadata = {"type": "credit_pack"}
    if credits is not None:
        metadata["credits"] = credits

    product = catalog.classify_purchase(price_id=None, product_metadata=metadata)

    assert product.kind == ProductKind.credit_pack
    assert product.credits == 0


def test_plan_pass_needs_a_paid_plan():
    with pytest.raises(ValidationError):
        OneTimeProduct(product_type="broken", kind=ProductKind.plan_pass)
    with pytest.raises(ValidationError):
        OneTimeProduct(product_type="broken", kind=ProductKind.plan_pass, plan=Plan.free)


def test_invalid_catalog_file_is_rejected(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"version": "x", "subscription_prices": {"price_a": "gold"}}))

    with pytest.raises(ValidationError):
        load_catalog(path)


def test_catalog_is_cached_and_refreshable(tmp_path, monkeypatch):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"version": "v1", "subscription_prices": {"price_a": "premium_tier"}}))
    monkeypatch.setattr(settings, "BILLING_CATALOG_PATH", path)
    monkeypatch.setattr(catalog_module, "_catalog", None)

    first = get_catalog()
    assert first.version == "v1"
    assert get_catalog() is first

    path.write_text(json.dumps({"version": "v2", "subscription_prices": {"price_a": "basic_tier"}}))
    assert get_catalog().version == "v1"

    refreshed = refresh_catalog()
    assert refreshed.version == "v2"
    assert get_catalog().plan_for_price("price_a") == Plan.basic_tier


def test_catalog_defaults():
    catalog = BillingCatalog(version="empty")
    assert catalog.plan_for_price("anything") == Plan.basic_tier
    assert catalog.limits_for(Plan.free) == {}
    assert catalog.metered_plans == [Plan.premium_tier]
