"""Stripe client for webhook verification and subscription event parsing.

Signature verification is delegated to ``stripe.Webhook.construct_event``
(HMAC-SHA256 over ``"{timestamp}.{payload}"`` with the endpoint secret,
5 minute tolerance).
"""

import logging
from typing import Any, Optional, Union

import stripe
from pydantic import ValidationError

from entitlements_api.billing.errors import (
    SubscriptionEventError,
    WebhookPayloadInvalidError,
    WebhookSignatureInvalidError,
    WebhookSignatureMissingError,
)
from entitlements_api.billing.models import SubscriptionChange
from entitlements_api.config import env

logger = logging.getLogger(__name__)

ENTITLEMENTS_SEPARATOR = ","


class StripeClient:
    """Stripe wrapper for the entitlements webhook."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        api_version: Optional[str] = None,
    ):
        """Initialize Stripe client.

        Args:
            secret_key: Stripe API key (default from env: STRIPE_SECRET_KEY)
            webhook_secret: Endpoint signing secret (default from env: STRIPE_WEBHOOK_SECRET)
            api_version: Pinned API version (default from env: STRIPE_API_VERSION)

        Raises:
            ValueError: If the webhook signing secret cannot be resolved
        """
        self.secret_key = secret_key if secret_key is not None else env.get_stripe_secret_key()
        self.webhook_secret = webhook_secret or env.get_stripe_webhook_secret()
        self.api_version = api_version or env.get_stripe_api_version()

        if self.secret_key:
            stripe.api_key = self.secret_key
        stripe.api_version = self.api_version

    def construct_event(self, payload: Union[bytes, str], signature: Optional[str]) -> stripe.Event:
        """Verify the Stripe-Signature header and parse the event.

        Raises:
            WebhookSignatureMissingError: signature header absent or empty
            WebhookPayloadInvalidError: payload is not valid JSON
            WebhookSignatureInvalidError: signature does not match
        """
        if not signature:
            raise WebhookSignatureMissingError("Stripe signature missing")

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureInvalidError(str(e)) from e
        except (ValueError, AttributeError, TypeError) as e:
            # Non-JSON, or JSON that is not an object (stripe fails building the Event)
            raise WebhookPayloadInvalidError("Request body is not a valid Stripe event") from e


def parse_entitlements(raw: Optional[str]) -> list[str]:
    """Split price metadata ``entitlements`` ("a,b,c") into unique identifiers."""
    result: list[str] = []
    for token in (raw or "").split(ENTITLEMENTS_SEPARATOR):
        entitlement = token.strip()
        if entitlement and entitlement not in result:
            result.append(entitlement)
    return result


def _customer_id(customer: Any) -> Optional[str]:
    if customer is None or isinstance(customer, str):
        return customer
    # Expanded customer object
    return customer["id"]


def parse_subscription_change(event: Any) -> SubscriptionChange:
    """Extract the entitlement change from a customer.subscription.* event.

    Reads ``data.object.customer``, ``data.object.metadata.userID`` and the
    first subscription item's ``price.metadata.entitlements``.

    Raises:
        SubscriptionEventError: required subscription fields are missing
    """
    try:
        event_id = event["id"]
        event_type = event["type"]
        subscription = event["data"]["object"]
        user_id = subscription["metadata"]["userID"]
        first_item = subscription["items"]["data"][0]
        raw_entitlements = first_item["price"]["metadata"]["entitlements"]
        customer_id = _customer_id(subscription["customer"])
    except (KeyError, IndexError, TypeError) as e:
        raise SubscriptionEventError(
            f"Subscription event is missing a required field ({e.__class__.__name__}: {e})"
        ) from e

    if not user_id:
        raise SubscriptionEventError(f"Subscription event {event_type} has an empty userID")
    if not isinstance(raw_entitlements, str):
        raise SubscriptionEventError(f"Subscription event {event_type} has non-string price entitlements")

    try:
        return SubscriptionChange(
            event_id=event_id,
            event_type=event_type,
            user_id=user_id,
            stripe_customer_id=customer_id,
            entitlements=parse_entitlements(raw_entitlements),
        )
    except ValidationError as e:
        raise SubscriptionEventError(f"Subscription event has unexpected field types: {e}") from e


_stripe_client: Optional[StripeClient] = None


def get_stripe_client() -> StripeClient:
    """Get Stripe client singleton."""
    global _stripe_client
    if _stripe_client is None:
        _stripe_client = StripeClient()
    return _stripe_client


def reset_stripe_client() -> None:
    """Reset Stripe client singleton (for testing)."""
    global _stripe_client
    _stripe_client = None
