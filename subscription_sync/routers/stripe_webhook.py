from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from subscription_sync.core.settings import S
from subscription_sync.errors import MalformedPayload, MissingSignature, SignatureInvalid
from subscription_sync.metrics import record_signature_failure, record_webhook_event
from subscription_sync.services.account_store import AccountStore, get_account_store
from subscription_sync.services.dispatcher import dispatch
from subscription_sync.services.reconciler import SubscriptionFetcher, default_subscription_fetcher
from subscription_sync.services.signature import verify_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stripe"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.post("/api/stripe/webhook")
@router.post("/webhooks/stripe")
async def stripe_webhook(
    req: Request,
    store: AccountStore = Depends(get_account_store),
    fetch_subscription: Optional[SubscriptionFetcher] = Depends(default_subscription_fetcher),
) -> JSONResponse:
    start = time.perf_counter()
    payload = await req.body()
    sig = req.headers.get("stripe-signature")

    try:
        event = verify_event(
            payload,
            sig,
            S.stripe_webhook_secret,
            tolerance=S.stripe_webhook_tolerance_seconds,
        )
    except MissingSignature:
        logger.error("Missing Stripe signature or webhook secret")
        record_signature_failure("missing")
        return _error(400, "Missing signature or webhook secret")
    except SignatureInvalid as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        record_signature_failure("invalid")
        return _error(400, "Invalid signature")
    except MalformedPayload as exc:
        logger.warning("Signed webhook body could not be parsed: %s", exc)
        record_signature_failure("malformed")
        return _error(400, "Malformed payload")

    try:
        result = await run_in_threadpool(dispatch, event, store, fetch_subscription=fetch_subscription)
    except Exception:
        logger.exception("Error processing Stripe event %s (%s)", event.type, event.id)
        record_webhook_event(event.type, "failed")
        return _error(500, "Webhook processing failed")

    record_webhook_event(event.type, result.outcome)
    logger.info(
        "WEBHOOK_AUDIT provider=stripe event=%s id=%s outcome=%s account=%s elapsed_ms=%.1f",
        result.event_type,
        result.event_id,
        result.outcome,
        result.account or "-",
        (time.perf_counter() - start) * 1000,
    )
    return JSONResponse({"received": True})
