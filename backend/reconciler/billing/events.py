"""
Provider event payloads

The envelope is validated once by the verifier; each handler then parses the
``data.object`` it needs into one of the typed objects below. Objects are
lenient about fields they do not use, strict about the ones they do.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reconciler.billing.errors import TerminalEventError
from reconciler.enums import SubscriptionStatus

# Metadata key carrying the customer id of the identity system
CUSTOMER_METADATA_KEY = "user_id"

_STATUS_MAP = {
    "active": SubscriptionStatus.active,
    "trialing": SubscriptionStatus.active,
    "past_due": SubscriptionStatus.past_due,
    "unpaid": SubscriptionStatus.past_due,
    "incomplete": SubscriptionStatus.past_due,
    "canceled": SubscriptionStatus.canceled,
    "incomplete_expired": SubscriptionStatus.canceled,
}


def from_unix(value: Any) -> datetime | None:
    """Provider unix-seconds timestamp -> aware UTC datetime (None when absent or invalid)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def expanded_id(value: Any) -> str | None:
    """Id of a provider reference that may be a bare id or an expanded object."""
    if isinstance(value, dict):
        value = value.get("id")
    return str(value) if value else None


def map_subscription_status(provider_status: str | None) -> SubscriptionStatus | None:
    """Local status for a provider subscription status; None for statuses with no local meaning."""
    if not provider_status:
        return None
    return _STATUS_MAP.get(provider_status)


def _first_item(items: Any) -> dict[str, Any]:
    if isinstance(items, dict):
        data = items.get("data")
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0]
    return {}


def _first_price(items: Any) -> dict[str, Any]:
    price = _first_item(items).get("price")
    return price if isinstance(price, dict) else {}


class EventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: Any = {}


M = TypeVar("M", bound=BaseModel)


class ProviderEvent(BaseModel):
    """
    Verified provider event envelope

    Only ``id`` and ``type`` are required; everything a handler needs beyond
    them is checked when the handler parses ``data.object``.
    """
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    created: int | None = None
    livemode: bool = False
    api_version: str | None = None
    data: EventData = EventData()

    @property
    def created_at(self) -> datetime | None:
        return from_unix(self.created)

    def object_as(self, model: type[M]) -> M:
        """
        Parse ``data.object`` into a typed provider object

        Raises:
            TerminalEventError: the object does not have the expected shape
        """
        try:
            return model.model_validate(self.data.object)
        except ValidationError as exc:
            first = exc.errors()[0]
            where = ".".join(str(part) for part in first["loc"]) or "object"
            raise TerminalEventError(
                f"unparsable {self.type} object: {where}: {first['msg']}"
            ) from exc


class ProviderObject(BaseModel):
    """Common shape: an id and free-form metadata."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    metadata: dict[str, Any] = {}

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def customer_id(self) -> str | None:
        value = self.metadata.get(CUSTOMER_METADATA_KEY)
        return str(value) if value else None


class CheckoutSession(ProviderObject):
    """``checkout.session.completed`` object."""
    mode: str | None = None
    customer: str | dict[str, Any] | None = None
    amount_total: int | None = None
    currency: str | None = None
    payment_intent: str | dict[str, Any] | None = None
    subscription: str | dict[str, Any] | None = None
    line_items: dict[str, Any] | None = None

    @property
    def provider_customer_id(self) -> str | None:
        return expanded_id(self.customer)

    @property
    def subscription_id(self) -> str | None:
        return expanded_id(self.subscription)

    @property
    def payment_intent_id(self) -> str | None:
        return expanded_id(self.payment_intent)

    def subscription_price_id(self) -> str | None:
        """Recurring price: expanded subscription's first item, else ``metadata.price_id``."""
        if isinstance(self.subscription, dict):
            price_id = _first_price(self.subscription.get("items")).get("id")
            if price_id:
                return str(price_id)
        return self._metadata_price_id()

    def subscription_period(self) -> tuple[datetime | None, datetime | None]:
        """Period window of the expanded subscription, (None, None) when not expanded."""
        if not isinstance(self.subscription, dict):
            return None, None
        return _period_of(self.subscription)

    def payment_price_id(self) -> str | None:
        """One-time price: first line item, else ``metadata.price_id``."""
        price_id = _first_price(self.line_items).get("id")
        return str(price_id) if price_id else self._metadata_price_id()

    def product_metadata(self) -> dict[str, Any]:
        """Metadata of the expanded product of the first line item."""
        product = _first_price(self.line_items).get("product")
        if isinstance(product, dict) and isinstance(product.get("metadata"), dict):
            return product["metadata"]
        return {}

    def _metadata_price_id(self) -> str | None:
        value = self.metadata.get("price_id")
        return str(value) if value else None


class SubscriptionObject(ProviderObject):
    """``customer.subscription.*`` object."""
    customer: str | dict[str, Any] | None = None
    status: str | None = None
    current_period_start: int | None = None
    current_period_end: int | None = None
    cancel_at: int | None = None
    canceled_at: int | None = None
    cancel_at_period_end: bool = False
    items: dict[str, Any] | None = None

    @property
    def provider_customer_id(self) -> str | None:
        return expanded_id(self.customer)

    @property
    def local_status(self) -> SubscriptionStatus | None:
        return map_subscription_status(self.status)

    @property
    def is_cancellation(self) -> bool:
        """Whether the object carries any cancellation signal."""
        return (
            self.local_status == SubscriptionStatus.canceled
            or self.cancel_at is not None
            or self.canceled_at is not None
            or self.cancel_at_period_end
        )

    def period(self) -> tuple[datetime | None, datetime | None]:
        return _period_of(self.model_dump())

    def price_id(self) -> str | None:
        price_id = _first_price(self.items).get("id")
        return str(price_id) if price_id else None


class InvoiceObject(ProviderObject):
    """``invoice.*`` object."""
    customer: str | dict[str, Any] | None = None
    subscription: str | dict[str, Any] | None = None
    # Newer API versions move the subscription reference under parent
    parent: dict[str, Any] | None = None

    def _subscription_details(self) -> dict[str, Any]:
        details = (self.parent or {}).get("subscription_details")
        return details if isinstance(details, dict) else {}

    @property
    def subscription_id(self) -> str | None:
        return expanded_id(self.subscription) or expanded_id(
            self._subscription_details().get("subscription")
        )

    @property
    def customer_id(self) -> str | None:
        found = super().customer_id
        if found:
            return found
        metadata = self._subscription_details().get("metadata")
        if isinstance(metadata, dict) and metadata.get(CUSTOMER_METADATA_KEY):
            return str(metadata[CUSTOMER_METADATA_KEY])
        return None


def _period_of(subscription: dict[str, Any]) -> tuple[datetime | None, datetime | None]:
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None and end is None:
        # Newer API versions report the period per subscription item
        item = _first_item(subscription.get("items"))
        start = item.get("current_period_start")
        end = item.get("current_period_end")
    return from_unix(start), from_unix(end)
