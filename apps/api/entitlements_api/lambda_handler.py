"""AWS Lambda entry point (API Gateway REST proxy integration).

Handler: entitlements_api.lambda_handler.handler
"""

import base64
import logging
import os
from typing import Any, Optional

from entitlements_api.billing.processor import process_stripe_webhook
from entitlements_api.context import request_id_var
from entitlements_api.utils import configure_json_logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"

_logging_configured = False


def _configure_logging() -> None:
    """Install the JSON log handler once per execution environment (cold start)."""
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True
    if os.getenv("ENT_JSON_LOGS", "true").lower() != "false":
        configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))


def _get_header(headers: Optional[dict], name: str) -> Optional[str]:
    """Case-insensitive header lookup (API Gateway preserves client casing)."""
    for key, value in (headers or {}).items():
        if key.lower() == name:
            return value
    return None


def _get_body(event: dict) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8")


def _get_source_ip(event: dict) -> Optional[str]:
    request_context = event.get("requestContext") or {}
    identity = request_context.get("identity") or {}
    # HTTP API (payload v2) keeps it under requestContext.http
    return identity.get("sourceIp") or (request_context.get("http") or {}).get("sourceIp")


def handler(event: dict, context: Any) -> dict:
    """Process a Stripe webhook delivered through API Gateway.

    Always returns 200 with an empty body.
    """
    _configure_logging()

    request_id = getattr(context, "aws_request_id", None) or (event.get("requestContext") or {}).get("requestId") or ""
    request_id_var.set(request_id)

    try:
        payload = _get_body(event)
    except (ValueError, TypeError) as e:
        # Undecodable body; the processor still logs the rejection
        logger.warning("WEBHOOK_BODY_DECODE_FAILED", extra={"provider": "stripe", "error_type": type(e).__name__})
        payload = b""

    process_stripe_webhook(payload, _get_header(event.get("headers"), SIGNATURE_HEADER), _get_source_ip(event))

    request_id_var.set("")
    return {
        "statusCode": 200,
        "headers": None,
        "body": None,
    }
