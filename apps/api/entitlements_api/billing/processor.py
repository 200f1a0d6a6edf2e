"""Stripe webhook processing pipeline.

Steps for one delivery:
  1. Source IP allow-list check
  2. Stripe-Signature verification + event parsing
  3. Event type dispatch (only customer.subscription.created/deleted act)
  4. Entitlement read-modify-write on the user record

Error policy: every failure is logged once and suppressed. The HTTP and
Lambda surfaces acknowledge the delivery with 200 regardless of the outcome.
  Rejections (source / signature / payload / subscription) → warning log
  Malformed data (ValidationError)                         → warning log WEBHOOK_INVALID_SUBSCRIPTION
  Misconfiguration (ValueError)                           → error log WEBHOOK_PROVIDER_MISCONFIG
  DynamoDB failure (ClientError)                          → error log WEBHOOK_STORE_ERROR
  Anything else                                           → error log WEBHOOK_INTERNAL_ERROR
"""

import logging
from typing import Any, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from entitlements_api.billing.entitlements import apply_subscription_change
from entitlements_api.billing.errors import (
    SubscriptionEventError,
    WebhookError,
    WebhookPayloadInvalidError,
    WebhookSourceNotAllowedError,
)
from entitlements_api.billing.models import HANDLED_EVENT_TYPES, WebhookOutcome
from entitlements_api.billing.stripe_client import StripeClient, get_stripe_client, parse_subscription_change
from entitlements_api.context import event_id_var, user_id_var
from entitlements_api.security.ip_allowlist import IPAllowlist, get_ip_allowlist
from entitlements_api.storage.dynamodb_client import EntitlementsStore, get_entitlements_store
from entitlements_api.utils.sanitize import payload_hash_bytes, sanitize_str

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


def _log_failure(
    level: int,
    code: str,
    *,
    payload_hash: str,
    source_ip: Optional[str],
    exc: Optional[BaseException] = None,
    extra: Optional[dict] = None,
) -> None:
    """Log a swallowed webhook failure once, with safe fields only."""
    log_extra: dict[str, Any] = {
        "event": f"webhook.{code.lower()}",
        "provider": PROVIDER,
        "payload_hash": payload_hash,
        "error_code": code,
        "source_ip": source_ip,
    }
    if exc is not None:
        log_extra["error_type"] = type(exc).__name__
        log_extra["error_msg"] = sanitize_str(str(exc))
    if extra:
        log_extra.update(extra)

    logger.log(level, code, extra=log_extra, exc_info=level >= logging.ERROR and exc is not None)


def process_stripe_webhook(
    payload: Union[bytes, str],
    signature: Optional[str],
    source_ip: Optional[str],
    *,
    allowlist: Optional[IPAllowlist] = None,
    stripe_client: Optional[StripeClient] = None,
    store: Optional[EntitlementsStore] = None,
) -> WebhookOutcome:
    """Process one Stripe webhook delivery. Never raises.

    Args:
        payload: Raw request body exactly as received (signature covers it)
        signature: Stripe-Signature header value
        source_ip: Address the request came from
        allowlist / stripe_client / store: Collaborators (default: singletons)

    Returns:
        WebhookOutcome describing what happened
    """
    raw = payload.encode("utf-8") if isinstance(payload, str) else (payload or b"")
    payload_hash = payload_hash_bytes(raw)
    event_id_var.set("")
    user_id_var.set("")

    logger.info(
        "WEBHOOK_RECEIVED",
        extra={"provider": PROVIDER, "payload_hash": payload_hash, "payload_size": len(raw), "source_ip": source_ip},
    )

    event_type: Optional[str] = None
    try:
        # ── Step 1: Source allow-list ────────────────────────────────────────
        if not (allowlist or get_ip_allowlist()).is_ip_allowed(source_ip):
            raise WebhookSourceNotAllowedError(f"IP not allowed: {source_ip}")

        # ── Step 2: Signature verification ───────────────────────────────────
        event = (stripe_client or get_stripe_client()).construct_event(raw, signature)
        try:
            event_id = event["id"]
            event_type = event["type"]
        except KeyError as e:
            raise WebhookPayloadInvalidError("Stripe event without id/type") from e
        event_id_var.set(event_id or "")

        # ── Step 3: Dispatch ─────────────────────────────────────────────────
        if event_type not in HANDLED_EVENT_TYPES:
            logger.info("WEBHOOK_EVENT_IGNORED", extra={"provider": PROVIDER, "event_type": event_type})
            return WebhookOutcome(status="ignored", event_id=event_id, event_type=event_type)

        # ── Step 4: Entitlement reconciliation ───────────────────────────────
        change = parse_subscription_change(event)
        updated = apply_subscription_change(store or get_entitlements_store(), change)

        logger.info(
            "WEBHOOK_PROCESSED",
            extra={"provider": PROVIDER, "event_type": event_type, "payload_hash": payload_hash},
        )
        return WebhookOutcome(
            status="processed",
            event_id=event_id,
            event_type=event_type,
            user_id=change.user_id,
            entitlements=updated,
        )

    except WebhookError as exc:
        _log_failure(
            logging.WARNING, exc.code,
            payload_hash=payload_hash, source_ip=source_ip, exc=exc,
            extra={"event_type": event_type},
        )
        return WebhookOutcome(status="rejected", error_code=exc.code, event_type=event_type)

    except ValidationError as exc:
        # Data shape errors; ValidationError is a ValueError subclass
        _log_failure(
            logging.WARNING, SubscriptionEventError.code,
            payload_hash=payload_hash, source_ip=source_ip, exc=exc,
            extra={"event_type": event_type},
        )
        return WebhookOutcome(status="rejected", error_code=SubscriptionEventError.code, event_type=event_type)

    except ValueError as exc:
        _log_failure(
            logging.ERROR, "WEBHOOK_PROVIDER_MISCONFIG",
            payload_hash=payload_hash, source_ip=source_ip, exc=exc,
        )
        return WebhookOutcome(status="failed", error_code="WEBHOOK_PROVIDER_MISCONFIG", event_type=event_type)

    except (ClientError, BotoCoreError) as exc:
        _log_failure(
            logging.ERROR, "WEBHOOK_STORE_ERROR",
            payload_hash=payload_hash, source_ip=source_ip, exc=exc,
            extra={"event_type": event_type},
        )
        return WebhookOutcome(status="failed", error_code="WEBHOOK_STORE_ERROR", event_type=event_type)

    except Exception as exc:
        _log_failure(
            logging.ERROR, "WEBHOOK_INTERNAL_ERROR",
            payload_hash=payload_hash, source_ip=source_ip, exc=exc,
            extra={"event_type": event_type},
        )
        return WebhookOutcome(status="failed", error_code="WEBHOOK_INTERNAL_ERROR", event_type=event_type)

    finally:
        event_id_var.set("")
        user_id_var.set("")
