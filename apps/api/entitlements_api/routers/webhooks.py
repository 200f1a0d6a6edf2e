"""Stripe webhook endpoint.

The delivery is always acknowledged with 200 and an empty body; failures
are logged by the processor and never surfaced to the caller.
"""

from typing import Optional

from fastapi import APIRouter, Header, Request, Response
from starlette.concurrency import run_in_threadpool

from entitlements_api.billing.processor import process_stripe_webhook
from entitlements_api.config import env

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def resolve_source_ip(request: Request) -> Optional[str]:
    """Return the address the webhook came from.

    X-Forwarded-For (first hop) is honoured only when TRUST_PROXY_HEADERS=1,
    otherwise the socket peer address is used.
    """
    if env.trust_proxy_headers():
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/stripe", status_code=200, response_class=Response)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> Response:
    """Stripe subscription webhook handler."""
    raw_body: bytes = await request.body()
    source_ip = resolve_source_ip(request)

    # boto3 is blocking; keep it off the event loop
    outcome = await run_in_threadpool(process_stripe_webhook, raw_body, stripe_signature, source_ip)
    request.state.webhook_outcome = outcome.status

    return Response(status_code=200)
