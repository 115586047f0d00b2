from __future__ import annotations

import logging
from typing import Any, Dict

import stripe
from fastapi import APIRouter, Depends, HTTPException

from subscription_sync.core.settings import S
from subscription_sync.core.time import now_iso
from subscription_sync.models import Account, CheckoutReq
from subscription_sync.services.account_store import AccountStore, get_account_store
from subscription_sync.services.subscription_status import available_plans, subscription_summary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscription"])


def ensure_stripe_configured() -> None:
    if not S.stripe_secret_key:
        raise HTTPException(501, "Stripe is not configured")
    stripe.api_key = S.stripe_secret_key
    stripe.api_version = S.stripe_api_version


def require_account(store: AccountStore, account_ref: str, tenant_ref: str) -> Account:
    account = store.find_by_key(account_ref, tenant_ref)
    if account is None:
        raise HTTPException(404, "User not found")
    return account


def get_or_create_customer(store: AccountStore, account: Account) -> str:
    if account.external_customer_ref:
        return account.external_customer_ref

    name = " ".join(p for p in (account.given_name, account.family_name) if p) or None
    cust = stripe.Customer.create(
        email=account.email,
        name=name,
        metadata={"user_id": account.account_ref, "university_id": account.tenant_ref},
    )
    store.update_fields(
        account.account_ref,
        account.tenant_ref,
        {"external_customer_ref": cust["id"], "updated_at": now_iso()},
    )
    return cust["id"]


@router.get("/api/subscription/plans")
def list_plans() -> Dict[str, Any]:
    plans = available_plans()
    if not plans:
        return {
            "plans": [],
            "message": "No subscription plans are currently available. Please contact support.",
            "success": True,
        }
    return {"plans": plans, "success": True}


@router.get("/api/subscription/{account_ref}/{tenant_ref}")
def get_subscription_status(
    account_ref: str,
    tenant_ref: str,
    store: AccountStore = Depends(get_account_store),
) -> Dict[str, Any]:
    account = require_account(store, account_ref, tenant_ref)
    return subscription_summary(account)


@router.post("/api/subscription/{account_ref}/{tenant_ref}/checkout")
def create_checkout_session(
    account_ref: str,
    tenant_ref: str,
    body: CheckoutReq,
    store: AccountStore = Depends(get_account_store),
) -> Dict[str, Any]:
    ensure_stripe_configured()
    account = require_account(store, account_ref, tenant_ref)

    try:
        customer_id = get_or_create_customer(store, account)
        session = stripe.checkout.Session.create(
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": body.price_id, "quantity": 1}],
            mode="subscription",
            success_url=body.success_url,
            cancel_url=body.cancel_url,
            metadata={"user_id": account_ref, "university_id": tenant_ref},
        )
    except stripe.StripeError as exc:
        logger.error("Checkout session creation failed for %s/%s: %s", account_ref, tenant_ref, exc)
        raise HTTPException(502, "Failed to create checkout session") from exc

    return {"success": True, "session_id": session.id, "checkout_url": session.url}
