"""Environment variable resolution utilities.

Canonical env names + fail-fast validation for the Stripe webhook receiver.
"""

import os
from pathlib import Path
from typing import Optional

DEFAULT_USER_ENTITLEMENTS_TABLE = "GC-Streaming-User-Entitlements"
DEFAULT_STRIPE_API_VERSION = "2020-08-27"
DEFAULT_AWS_REGION = "eu-west-1"

# Published Stripe webhook source addresses, shipped with the package
DEFAULT_IP_ALLOWLIST_PATH = Path(__file__).resolve().parent.parent / "security" / "ips_webhooks.json"


def get_user_entitlements_table() -> str:
    """Get DynamoDB table holding user entitlement records.

    Canonical: USER_ENTITLEMENTS_TABLE

    Returns:
        DynamoDB table name
    """
    return os.getenv("USER_ENTITLEMENTS_TABLE") or DEFAULT_USER_ENTITLEMENTS_TABLE


def get_stripe_secret_key() -> str:
    """Get Stripe API secret key.

    Signature verification is local, so an empty key is tolerated.
    """
    return os.getenv("STRIPE_SECRET_KEY", "")


def get_stripe_webhook_secret() -> str:
    """Get Stripe webhook endpoint signing secret.

    Required: STRIPE_WEBHOOK_SECRET

    Returns:
        Signing secret (whsec_...)

    Raises:
        ValueError: If STRIPE_WEBHOOK_SECRET is not set
    """
    secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise ValueError(
            "STRIPE_WEBHOOK_SECRET is required. "
            "Set STRIPE_WEBHOOK_SECRET to the signing secret of the Stripe webhook endpoint."
        )
    return secret


def get_stripe_api_version() -> str:
    """Get pinned Stripe API version (STRIPE_API_VERSION, default 2020-08-27)."""
    return os.getenv("STRIPE_API_VERSION") or DEFAULT_STRIPE_API_VERSION


def get_ip_allowlist_path() -> Path:
    """Get path of the webhook source IP allow-list JSON file.

    Override: WEBHOOK_IP_ALLOWLIST_PATH
    Default: bundled security/ips_webhooks.json
    """
    override = os.getenv("WEBHOOK_IP_ALLOWLIST_PATH")
    if override:
        return Path(override)
    return DEFAULT_IP_ALLOWLIST_PATH


def trust_proxy_headers() -> bool:
    """Whether the source IP may be taken from X-Forwarded-For (TRUST_PROXY_HEADERS=1)."""
    return os.getenv("TRUST_PROXY_HEADERS", "0").lower() in {"1", "true", "yes"}


# ── AWS runtime detection ────────────────────────────────────────────────────

_LOCAL_ENDPOINT_MARKERS = ("localhost", "127.0.0.1", "localstack", "host.docker.internal")


def is_localstack_endpoint(endpoint: Optional[str]) -> bool:
    """True when ``endpoint`` points at LocalStack or another local emulator."""
    if not endpoint:
        return False
    lowered = endpoint.lower()
    return any(marker in lowered for marker in _LOCAL_ENDPOINT_MARKERS)


def is_irsa_environment() -> bool:
    """True on EKS pods using IAM Roles for Service Accounts.

    Detected from AWS_ROLE_ARN or AWS_WEB_IDENTITY_TOKEN_FILE.
    """
    return bool(os.getenv("AWS_ROLE_ARN") or os.getenv("AWS_WEB_IDENTITY_TOKEN_FILE"))


def is_lambda_environment() -> bool:
    """Detect if running inside AWS Lambda (execution role credentials)."""
    return bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME"))


def get_ent_env() -> str:
    """Get deployment environment name (ENT_ENV, default "local"), lowercased."""
    return (os.getenv("ENT_ENV") or "local").lower()


def is_production_env() -> bool:
    """ENT_ENV is prod/production, or IRSA markers are present."""
    return get_ent_env() in {"prod", "production"} or is_irsa_environment()


def has_static_aws_credentials() -> bool:
    """Whether access keys were supplied through the environment.

    Lambda injects its execution role as AWS_ACCESS_KEY_ID/AWS_SESSION_TOKEN,
    so those never count as static keys there.
    """
    if is_lambda_environment():
        return False
    return any(
        os.getenv(name)
        for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN")
    )


# ── AWS guardrails ───────────────────────────────────────────────────────────


def get_aws_region(require_in_prod: bool = True) -> str:
    """Resolve the AWS region for the entitlements table.

    Lookup order: AWS_REGION, AWS_DEFAULT_REGION, REGION (legacy deploy
    templates), then eu-west-1.

    Raises:
        ValueError: No region configured in production and ``require_in_prod``
    """
    region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or os.getenv("REGION")
    if region:
        return region

    if require_in_prod and is_production_env():
        raise ValueError(
            "AWS_REGION (or AWS_DEFAULT_REGION) must be set in production. "
            "The entitlements table region is not defaulted outside local/test."
        )
    return DEFAULT_AWS_REGION


def assert_no_static_aws_creds(service_name: str) -> None:
    """Refuse environment access keys where IAM roles are expected.

    IRSA: always refused. Production: refused unless ENT_ALLOW_STATIC_AWS_CREDS=1.

    Raises:
        ValueError: Static credentials present and not permitted
    """
    if not has_static_aws_credentials():
        return

    if is_irsa_environment():
        raise ValueError(
            f"PRODUCTION GUARDRAIL: Static AWS credentials detected in IRSA environment for {service_name}. "
            f"Remove AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and AWS_SESSION_TOKEN from the deployment."
        )

    if is_production_env() and os.getenv("ENT_ALLOW_STATIC_AWS_CREDS") != "1":
        raise ValueError(
            f"PRODUCTION GUARDRAIL: Static AWS credentials detected for {service_name} in production. "
            f"Use the task/function IAM role, or set ENT_ALLOW_STATIC_AWS_CREDS=1 to override."
        )


def assert_no_custom_endpoint_in_prod(endpoint_url: Optional[str], service_name: str) -> None:
    """Refuse non-AWS endpoints in production.

    LocalStack endpoints always pass. Anything else needs
    ENT_ALLOW_CUSTOM_AWS_ENDPOINTS=1 in production.

    Raises:
        ValueError: Custom endpoint configured in production without override
    """
    if not endpoint_url or is_localstack_endpoint(endpoint_url):
        return

    if is_production_env() and os.getenv("ENT_ALLOW_CUSTOM_AWS_ENDPOINTS") != "1":
        raise ValueError(
            f"PRODUCTION GUARDRAIL: Custom {service_name.upper()}_ENDPOINT_URL detected in production: {endpoint_url}. "
            f"Remove it, or set ENT_ALLOW_CUSTOM_AWS_ENDPOINTS=1 to override."
        )
