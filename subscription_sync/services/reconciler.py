"""Per-event subscription state updates.

Each ``apply_*`` function resolves the account an event belongs to and
writes the fields that event kind owns, plus ``updated_at``, in one
unconditional update. Writes are plain overwrites so a redelivered event
leaves the record as a single delivery would.

Handlers return the updated account, or ``None`` when the event was
recognised but there was nothing to write. Resolution failures surface as
``MissingMetadata`` / ``AccountNotFound`` for the dispatcher to drop.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import stripe

from subscription_sync.core.settings import S
from subscription_sync.core.time import epoch_to_iso, now_iso
from subscription_sync.models import Account, CheckoutSession, Invoice, Subscription
from subscription_sync.services.account_store import AccountStore
from subscription_sync.services.accounts import resolve_by_customer, resolve_by_metadata

logger = logging.getLogger(__name__)

# Returns the current period end (epoch seconds) of a Stripe subscription.
SubscriptionFetcher = Callable[[str], Optional[int]]

STATUS_MAP: Dict[str, str] = {
    "trialing": "trial",
    "active": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "incomplete": "past_due",
    "paused": "past_due",
    "canceled": "cancelled",
    "incomplete_expired": "cancelled",
}


def map_status(stripe_status: Optional[str]) -> str:
    status = STATUS_MAP.get((stripe_status or "").lower())
    if status is None:
        logger.warning("Unmapped Stripe subscription status %r; recording past_due", stripe_status)
        return "past_due"
    return status


def _period_end(epoch: Optional[int]) -> Optional[str]:
    return epoch_to_iso(epoch) if epoch is not None else None


def _write(store: AccountStore, account: Account, fields: Dict[str, Any]) -> Account:
    fields = dict(fields)
    fields["updated_at"] = now_iso()
    return store.update_fields(account.account_ref, account.tenant_ref, fields)


def retrieve_subscription_period_end(subscription_ref: str) -> Optional[int]:
    stripe.api_key = S.stripe_secret_key
    stripe.api_version = S.stripe_api_version
    sub = stripe.Subscription.retrieve(subscription_ref)
    end = getattr(sub, "current_period_end", None)
    if end is None:
        try:
            end = sub["items"]["data"][0]["current_period_end"]
        except (KeyError, IndexError, TypeError):
            end = None
    return int(end) if end is not None else None


def default_subscription_fetcher() -> Optional[SubscriptionFetcher]:
    if not S.stripe_secret_key:
        return None
    return retrieve_subscription_period_end


def apply_checkout_completed(store: AccountStore, session: CheckoutSession, **_: Any) -> Account:
    account = resolve_by_metadata(store, session.metadata)

    fields: Dict[str, Any] = {"subscription_status": "active"}
    if session.subscription_ref:
        fields["external_subscription_ref"] = session.subscription_ref

    customer_ref = session.customer_ref
    if customer_ref:
        if not account.external_customer_ref:
            fields["external_customer_ref"] = customer_ref
        elif account.external_customer_ref != customer_ref:
            logger.warning(
                "Checkout %s customer %s differs from linked customer %s for %s; keeping linked",
                session.id,
                customer_ref,
                account.external_customer_ref,
                account.account_ref,
            )

    updated = _write(store, account, fields)
    logger.info("Subscription activated for %s/%s", account.account_ref, account.tenant_ref)
    return updated


def apply_subscription_created(store: AccountStore, sub: Subscription, **_: Any) -> Account:
    account = resolve_by_customer(store, sub.customer_ref)
    status = map_status(sub.status)
    fields = {
        "external_subscription_ref": None if status == "cancelled" else sub.id,
        "subscription_status": status,
        "plan_ref": sub.price_ref,
        "period_end": _period_end(sub.period_end_epoch),
    }
    return _write(store, account, fields)


def apply_subscription_updated(store: AccountStore, sub: Subscription, **_: Any) -> Account:
    account = resolve_by_customer(store, sub.customer_ref)
    status = map_status(sub.status)
    # The subscription id is rewritten too so that an update which overtakes
    # the matching "created" event still leaves active => ref set.
    fields = {
        "subscription_status": status,
        "plan_ref": sub.price_ref,
        "period_end": _period_end(sub.period_end_epoch),
        "external_subscription_ref": None if status == "cancelled" else sub.id,
    }
    return _write(store, account, fields)


def apply_subscription_deleted(store: AccountStore, sub: Subscription, **_: Any) -> Account:
    account = resolve_by_customer(store, sub.customer_ref)
    updated = _write(store, account, {
        "subscription_status": "cancelled",
        "external_subscription_ref": None,
    })
    logger.info("Subscription cancelled for %s/%s", account.account_ref, account.tenant_ref)
    return updated


def apply_payment_succeeded(
    store: AccountStore,
    invoice: Invoice,
    *,
    fetch_subscription: Optional[SubscriptionFetcher] = None,
    **_: Any,
) -> Optional[Account]:
    account = resolve_by_customer(store, invoice.customer_ref)

    subscription_ref = invoice.subscription_ref
    if not subscription_ref:
        logger.info("Invoice %s has no subscription; nothing to extend", invoice.id)
        return None

    if account.external_subscription_ref and account.external_subscription_ref != subscription_ref:
        logger.warning(
            "Invoice %s is for subscription %s but %s/%s holds %s; skipping",
            invoice.id,
            subscription_ref,
            account.account_ref,
            account.tenant_ref,
            account.external_subscription_ref,
        )
        return None

    if fetch_subscription is not None:
        end = fetch_subscription(subscription_ref)
    else:
        end = invoice.line_period_end
    if end is None:
        logger.warning("No period end available for subscription %s; skipping", subscription_ref)
        return None

    return _write(store, account, {"period_end": epoch_to_iso(end)})


def apply_payment_failed(store: AccountStore, invoice: Invoice, **_: Any) -> Account:
    account = resolve_by_customer(store, invoice.customer_ref)
    updated = _write(store, account, {"subscription_status": "past_due"})
    logger.info("Payment failed for %s/%s", account.account_ref, account.tenant_ref)
    return updated
