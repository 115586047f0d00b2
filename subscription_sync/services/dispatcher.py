"""Route verified Stripe events to their reconciliation handler.

Unknown event types are accepted and ignored so that new event types
enabled on the Stripe side never cause delivery failures. Events whose
account cannot be resolved are dropped; retrying them would not help.
Everything else a handler raises propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from subscription_sync.errors import AccountNotFound, MissingMetadata
from subscription_sync.models import CheckoutSession, Invoice, StripeEvent, Subscription
from subscription_sync.services import reconciler
from subscription_sync.services.account_store import AccountStore
from subscription_sync.services.reconciler import SubscriptionFetcher

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def parse(cls, event_type: str) -> Optional["EventKind"]:
        try:
            return cls(event_type)
        except ValueError:
            return None


@dataclass(frozen=True)
class Route:
    model: Type[BaseModel]
    handler: Callable[..., Any]


ROUTES: Dict[EventKind, Route] = {
    EventKind.CHECKOUT_COMPLETED: Route(CheckoutSession, reconciler.apply_checkout_completed),
    EventKind.SUBSCRIPTION_CREATED: Route(Subscription, reconciler.apply_subscription_created),
    EventKind.SUBSCRIPTION_UPDATED: Route(Subscription, reconciler.apply_subscription_updated),
    EventKind.SUBSCRIPTION_DELETED: Route(Subscription, reconciler.apply_subscription_deleted),
    EventKind.PAYMENT_SUCCEEDED: Route(Invoice, reconciler.apply_payment_succeeded),
    EventKind.PAYMENT_FAILED: Route(Invoice, reconciler.apply_payment_failed),
}

_unrouted = set(EventKind) - set(ROUTES)
if _unrouted:  # pragma: no cover
    raise RuntimeError(f"No handler registered for {sorted(k.value for k in _unrouted)}")


@dataclass
class DispatchResult:
    event_id: str
    event_type: str
    outcome: str  # applied | ignored | dropped | skipped
    account: Optional[str] = None
    reason: Optional[str] = None


def dispatch(
    event: StripeEvent,
    store: AccountStore,
    *,
    fetch_subscription: Optional[SubscriptionFetcher] = None,
) -> DispatchResult:
    kind = EventKind.parse(event.type)
    if kind is None:
        logger.info("Unhandled Stripe event type %s (%s); ignoring", event.type, event.id)
        return DispatchResult(event.id, event.type, "ignored")

    route = ROUTES[kind]
    try:
        obj = route.model.model_validate(event.data.object)
    except ValidationError as exc:
        logger.warning("Dropping Stripe event %s (%s): unreadable object: %s", kind.value, event.id, exc)
        return DispatchResult(event.id, event.type, "dropped", reason="InvalidObject")

    logger.info("Processing Stripe event %s (%s) object=%s", kind.value, event.id, getattr(obj, "id", None))

    try:
        account = route.handler(store, obj, fetch_subscription=fetch_subscription)
    except (MissingMetadata, AccountNotFound) as exc:
        logger.warning("Dropping Stripe event %s (%s): %s", kind.value, event.id, exc)
        return DispatchResult(event.id, event.type, "dropped", reason=type(exc).__name__)

    if account is None:
        return DispatchResult(event.id, event.type, "skipped")
    return DispatchResult(
        event.id,
        event.type,
        "applied",
        account=f"{account.account_ref}/{account.tenant_ref}",
    )
