"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
# Inject sys.path for reliable pytest imports without an editable install
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # => .../apps/api

import hashlib
import hmac
import json
import time
from typing import Any, Optional
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from entitlements_api.billing.stripe_client import reset_stripe_client
from entitlements_api.security.ip_allowlist import reset_ip_allowlist
from entitlements_api.storage.dynamodb_client import EntitlementsStore, reset_entitlements_store

TEST_TABLE = "GC-Streaming-User-Entitlements-test"
TEST_REGION = "eu-west-1"
TEST_WEBHOOK_SECRET = "whsec_test_secret_key_12345"
ALLOWED_IP = "54.187.216.72"
DISALLOWED_IP = "127.0.0.1"

TEST_ENV = {
    "AWS_ACCESS_KEY_ID": "testing",
    "AWS_SECRET_ACCESS_KEY": "testing",
    "AWS_REGION": TEST_REGION,
    "AWS_DEFAULT_REGION": TEST_REGION,
    "USER_ENTITLEMENTS_TABLE": TEST_TABLE,
    "STRIPE_WEBHOOK_SECRET": TEST_WEBHOOK_SECRET,
    "STRIPE_SECRET_KEY": "sk_test_12345",
    "ENT_ENV": "test",
    "ENT_JSON_LOGS": "false",
}


def _reset_singletons() -> None:
    reset_stripe_client()
    reset_ip_allowlist()
    reset_entitlements_store()


@pytest.fixture(autouse=True)
def test_env():
    """Fake AWS credentials + Stripe secret, fresh client singletons per test."""
    _reset_singletons()
    with patch.dict("os.environ", TEST_ENV, clear=True):
        yield
    _reset_singletons()


@pytest.fixture
def dynamodb_table():
    """Mocked user entitlements table (moto)."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=TEST_REGION)
        table = dynamodb.create_table(
            TableName=TEST_TABLE,
            KeySchema=[{"AttributeName": "userID", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "userID", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()
        yield table


@pytest.fixture
def store(dynamodb_table) -> EntitlementsStore:
    """EntitlementsStore bound to the mocked table."""
    return EntitlementsStore()


def build_subscription_event(
    event_type: str = "customer.subscription.created",
    *,
    event_id: str = "evt_test_123",
    user_id: Optional[str] = "user-123",
    customer: Any = "cus_test_123",
    entitlements: Optional[str] = "hd,live",
) -> dict:
    """Stripe event envelope carrying a subscription object."""
    price_metadata = {} if entitlements is None else {"entitlements": entitlements}
    metadata = {} if user_id is None else {"userID": user_id}
    return {
        "id": event_id,
        "object": "event",
        "api_version": "2020-08-27",
        "type": event_type,
        "data": {
            "object": {
                "id": "sub_test_123",
                "object": "subscription",
                "customer": customer,
                "metadata": metadata,
                "items": {
                    "object": "list",
                    "data": [
                        {
                            "id": "si_test_123",
                            "object": "subscription_item",
                            "price": {
                                "id": "price_test_123",
                                "object": "price",
                                "metadata": price_metadata,
                            },
                        }
                    ],
                },
            }
        },
    }


def sign_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header (t=<ts>,v1=<hmac-sha256 of "ts.payload">)."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{ts}.{payload}"
    signature = hmac.new(secret.encode("utf-8"), signed_payload.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def signed_event(event: dict, secret: str = TEST_WEBHOOK_SECRET) -> tuple[str, str]:
    """Serialize ``event`` and sign it. Returns (payload, signature header)."""
    payload = json.dumps(event)
    return payload, sign_payload(payload, secret)
