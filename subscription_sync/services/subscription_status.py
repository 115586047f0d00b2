from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from subscription_sync.core.settings import S
from subscription_sync.core.time import parse_iso
from subscription_sync.models import Account

_PLANS = [
    {
        "id": "monthly",
        "name": "Monthly Plan",
        "price": 9.99,
        "interval": "month",
        "setting": "stripe_monthly_price_id",
        "description": "Perfect for short-term tracking",
        "features": ["Unlimited experiences", "GPA tracking", "PDF export", "Priority support"],
        "popular": False,
    },
    {
        "id": "yearly",
        "name": "Yearly Plan",
        "price": 99.99,
        "interval": "year",
        "setting": "stripe_yearly_price_id",
        "description": "Best value for long-term planning",
        "features": ["Everything in Monthly", "2 months free", "Advanced analytics", "University partnerships"],
        "popular": True,
    },
]


def available_plans(settings=S) -> List[Dict[str, Any]]:
    """Plans that have a Stripe price configured."""
    out = []
    for plan in _PLANS:
        price_id = getattr(settings, plan["setting"], "")
        if not price_id:
            continue
        item = {k: v for k, v in plan.items() if k != "setting"}
        item["price_id"] = price_id
        out.append(item)
    return out


def trial_info(account: Account, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    trial_ends = parse_iso(account.trial_ends_at)
    is_trial_active = account.subscription_status == "trial" and trial_ends is not None and now < trial_ends
    days_remaining = 0
    if trial_ends is not None:
        days_remaining = max(0, math.ceil((trial_ends - now).total_seconds() / 86400))
    return {
        "is_trial_active": is_trial_active,
        "trial_ends_at": account.trial_ends_at,
        "days_remaining": days_remaining,
        "requires_subscription": not is_trial_active and account.subscription_status != "active",
    }


def subscription_summary(account: Account, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "account_ref": account.account_ref,
        "tenant_ref": account.tenant_ref,
        "subscription_status": account.subscription_status,
        "trial_ends_at": account.trial_ends_at,
        "period_end": account.period_end,
        "plan_ref": account.plan_ref,
        "external_customer_ref": account.external_customer_ref,
        "external_subscription_ref": account.external_subscription_ref,
        "trial_info": trial_info(account, now=now),
    }
