from __future__ import annotations

from typing import Any, Dict, Optional

from subscription_sync.errors import AccountNotFound, MissingMetadata
from subscription_sync.models import Account
from subscription_sync.services.account_store import AccountStore

# Checkout sessions are created with user_id/university_id metadata; the
# generic names are accepted too.
ACCOUNT_REF_KEYS = ("user_id", "account_ref")
TENANT_REF_KEYS = ("university_id", "tenant_ref")


def _first(metadata: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve_by_metadata(store: AccountStore, metadata: Optional[Dict[str, Any]]) -> Account:
    metadata = metadata or {}
    account_ref = _first(metadata, ACCOUNT_REF_KEYS)
    tenant_ref = _first(metadata, TENANT_REF_KEYS)
    if not account_ref or not tenant_ref:
        raise MissingMetadata("checkout session metadata lacks user_id or university_id")

    account = store.find_by_key(account_ref, tenant_ref)
    if account is None:
        raise AccountNotFound(f"no account {account_ref}/{tenant_ref}")
    return account


def resolve_by_customer(store: AccountStore, customer_ref: Optional[str]) -> Account:
    """Find the account linked to a Stripe customer id.

    A miss usually means the customer id has not been written to the account
    yet, not that the data is corrupt.
    """
    if not customer_ref:
        raise AccountNotFound("event carries no customer reference")
    account = store.find_by_field("external_customer_ref", customer_ref)
    if account is None:
        raise AccountNotFound(f"no account linked to customer {customer_ref}")
    return account
