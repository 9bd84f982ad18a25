from __future__ import annotations

import pytest

from reconciler.billing import reconciler
from reconciler.billing.router import DEFAULT_HANDLERS, EventRouter
from reconciler.enums import EventType


@pytest.mark.parametrize(
    ("event_type", "handler"),
    [
        ("checkout.session.completed", reconciler.handle_checkout_completed),
        ("customer.subscription.updated", reconciler.handle_subscription_updated),
        ("customer.subscription.deleted", reconciler.handle_subscription_deleted),
        ("invoice.paid", reconciler.handle_invoice_paid),
        ("invoice.payment_failed", reconciler.handle_invoice_payment_failed),
    ],
)
def test_default_routes(event_type, handler):
    assert EventRouter().resolve(event_type) is handler


def test_every_event_type_has_a_handler():
    assert EventRouter().handled_types == {t.value for t in EventType}


def test_unknown_type_resolves_to_none():
    router = EventRouter()
    assert router.resolve("customer.created") is None
    assert router.resolve("") is None


def test_custom_routes_replace_defaults():
    def _noop(ctx, event):
        return None

    router = EventRouter({"invoice.paid": _noop})

    assert router.resolve("invoice.paid") is _noop
    assert router.resolve("checkout.session.completed") is None


def test_mapping_is_immutable():
    with pytest.raises(TypeError):
        DEFAULT_HANDLERS["invoice.paid"] = None  # type: ignore[index]

    handlers = {"invoice.paid": reconciler.handle_invoice_paid}
    router = EventRouter(handlers)
    handlers["invoice.payment_failed"] = reconciler.handle_invoice_payment_failed
    assert router.resolve("invoice.payment_failed") is None
