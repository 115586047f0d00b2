"""Stripe webhook signature verification.

Stripe signs ``"<t>.<raw body>"`` with HMAC-SHA256 and sends
``Stripe-Signature: t=<unix seconds>,v1=<hex digest>[,v1=...]``. The check
runs over the exact bytes received; the body is only parsed once the
signature has matched.
"""

from __future__ import annotations

import json
from typing import Optional, Union

import stripe
from pydantic import ValidationError

from subscription_sync.errors import MalformedPayload, MissingSignature, SignatureInvalid
from subscription_sync.models import StripeEvent

DEFAULT_TOLERANCE_SECONDS = 300


def verify_event(
    payload: Union[bytes, str],
    sig_header: Optional[str],
    secret: Optional[str],
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> StripeEvent:
    """Authenticate a webhook delivery and parse its envelope.

    Raises ``MissingSignature`` when the header or secret is absent,
    ``SignatureInvalid`` when no ``v1`` digest matches or ``t`` is older
    than ``tolerance`` seconds, and ``MalformedPayload`` when a correctly
    signed body is not a Stripe event.
    """
    if not sig_header or not secret:
        raise MissingSignature("Missing signature or webhook secret")

    if isinstance(payload, bytes):
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SignatureInvalid("payload is not UTF-8") from exc
    else:
        text = payload

    try:
        stripe.WebhookSignature.verify_header(text, sig_header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as exc:
        raise SignatureInvalid(str(exc)) from exc

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedPayload("body is not valid JSON") from exc

    if not isinstance(data, dict):
        raise MalformedPayload("event envelope must be a JSON object")
    try:
        return StripeEvent.model_validate(data)
    except ValidationError as exc:
        raise MalformedPayload("body is not a Stripe event envelope") from exc
