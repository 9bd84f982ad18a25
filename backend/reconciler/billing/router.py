"""
Event router

Immutable mapping from provider event type to handler. Unknown types resolve
to None: the provider's catalog grows independently of this service and such
events are acknowledged without any state change.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType

from reconciler.billing import reconciler
from reconciler.billing.events import ProviderEvent
from reconciler.billing.reconciler import HandlerResult, ReconcileContext
from reconciler.enums import EventType

Handler = Callable[[ReconcileContext, ProviderEvent], HandlerResult]

DEFAULT_HANDLERS: Mapping[str, Handler] = MappingProxyType(
    {
        EventType.checkout_completed.value: reconciler.handle_checkout_completed,
        EventType.subscription_updated.value: reconciler.handle_subscription_updated,
        EventType.subscription_deleted.value: reconciler.handle_subscription_deleted,
        EventType.invoice_paid.value: reconciler.handle_invoice_paid,
        EventType.invoice_payment_failed.value: reconciler.handle_invoice_payment_failed,
    }
)


class EventRouter:
    """Resolves event types to handlers."""

    def __init__(self, handlers: Mapping[str, Handler] | None = None) -> None:
        self._handlers = MappingProxyType(dict(DEFAULT_HANDLERS if handlers is None else handlers))

    @property
    def handled_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def resolve(self, event_type: str) -> Handler | None:
        return self._handlers.get(event_type)
