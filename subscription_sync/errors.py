"""Exception taxonomy for the Stripe webhook pipeline.

Fatal errors abort the request; the webhook route translates them to a 4xx
(sender-side problem, retrying will not help) or a 5xx (our side failed,
Stripe should redeliver). ``MissingMetadata`` and ``AccountNotFound`` are
non-fatal: the dispatcher logs them and drops the event.
"""

from __future__ import annotations


class WebhookError(Exception):
    """Base class for everything raised by the webhook pipeline."""


class SignatureInvalid(WebhookError):
    pass


class MissingSignature(SignatureInvalid):
    """The Stripe-Signature header or the server-side secret is absent."""


class MalformedPayload(WebhookError):
    """Signature matched but the body is not a Stripe event envelope."""


class MissingMetadata(WebhookError):
    pass


class AccountNotFound(WebhookError):
    pass


class StoreFailure(WebhookError):
    """The account store could not complete a read or write."""
