from __future__ import annotations

import os
from dataclasses import dataclass

@dataclass(frozen=True)
class Settings:
    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")

    # DynamoDB users table (records are created by the signup flow)
    users_table_name: str = os.environ.get("TABLE_USERS", "users")
    # Optional GSI keyed by stripe_customer_id; empty means scan
    users_customer_index: str = os.environ.get("USERS_CUSTOMER_INDEX", "")

    # Stripe
    stripe_secret_key: str = os.environ.get("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    stripe_webhook_tolerance_seconds: int = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))
    stripe_api_version: str = os.environ.get("STRIPE_API_VERSION", "2023-10-16")
    stripe_monthly_price_id: str = os.environ.get("STRIPE_MONTHLY_PRICE_ID", "").strip()
    stripe_yearly_price_id: str = os.environ.get("STRIPE_YEARLY_PRICE_ID", "").strip()

    # Observability
    metrics_enabled: bool = os.environ.get("METRICS_ENABLED", "1") not in ("0", "false", "False")
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()


S = Settings()
