from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SubscriptionStatus = Literal["trial", "active", "past_due", "cancelled"]

# Domain field -> attribute name in the users table. The table is shared with
# the signup flow, so the stored names are fixed.
ACCOUNT_ATTRS: Dict[str, str] = {
    "account_ref": "user_id",
    "tenant_ref": "university_id",
    "external_customer_ref": "stripe_customer_id",
    "subscription_status": "subscription_status",
    "external_subscription_ref": "stripe_subscription_id",
    "plan_ref": "subscription_plan",
    "period_end": "subscription_ends_at",
    "trial_ends_at": "trial_ends_at",
    "updated_at": "updated_at",
    "email": "email",
    "given_name": "given_name",
    "family_name": "family_name",
}

# Fields the webhook pipeline is allowed to write.
WRITABLE_FIELDS = frozenset({
    "external_customer_ref",
    "subscription_status",
    "external_subscription_ref",
    "plan_ref",
    "period_end",
    "updated_at",
})


class Account(BaseModel):
    account_ref: str
    tenant_ref: str
    external_customer_ref: Optional[str] = None
    subscription_status: str = "trial"
    external_subscription_ref: Optional[str] = None
    plan_ref: Optional[str] = None
    period_end: Optional[str] = None
    trial_ends_at: Optional[str] = None
    updated_at: Optional[str] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Account":
        data = {field: item.get(attr) for field, attr in ACCOUNT_ATTRS.items()}
        data["subscription_status"] = data.get("subscription_status") or "trial"
        return cls(**data)

    @property
    def key(self) -> Dict[str, str]:
        return {"user_id": self.account_ref, "university_id": self.tenant_ref}


def object_ref(value: Any) -> Optional[str]:
    """Stripe references arrive either as an id string or as an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None


class StripeObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    customer: Any = None

    @property
    def customer_ref(self) -> Optional[str]:
        return object_ref(self.customer)


class EventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: Dict[str, Any] = Field(default_factory=dict)


class StripeEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: str
    data: EventData = Field(default_factory=EventData)


class CheckoutSession(StripeObject):
    subscription: Any = None
    metadata: Optional[Dict[str, Any]] = None
    client_reference_id: Optional[str] = None

    @property
    def subscription_ref(self) -> Optional[str]:
        return object_ref(self.subscription)


class Subscription(StripeObject):
    status: Optional[str] = None
    items: Optional[Dict[str, Any]] = None
    current_period_end: Optional[int] = None

    def _first_item(self) -> Dict[str, Any]:
        data: List[Dict[str, Any]] = (self.items or {}).get("data") or []
        return data[0] if data else {}

    @property
    def price_ref(self) -> Optional[str]:
        price = self._first_item().get("price") or {}
        return object_ref(price)

    @property
    def period_end_epoch(self) -> Optional[int]:
        if self.current_period_end is not None:
            return int(self.current_period_end)
        # Newer API versions carry the period on the subscription items.
        item_end = self._first_item().get("current_period_end")
        return int(item_end) if item_end is not None else None


class Invoice(StripeObject):
    subscription: Any = None
    parent: Optional[Dict[str, Any]] = None
    lines: Optional[Dict[str, Any]] = None

    @property
    def subscription_ref(self) -> Optional[str]:
        ref = object_ref(self.subscription)
        if ref:
            return ref
        details = (self.parent or {}).get("subscription_details") or {}
        return object_ref(details.get("subscription"))

    @property
    def line_period_end(self) -> Optional[int]:
        data = (self.lines or {}).get("data") or []
        if not data:
            return None
        end = (data[0].get("period") or {}).get("end")
        return int(end) if end is not None else None


class CheckoutReq(BaseModel):
    price_id: str
    success_url: str
    cancel_url: str
