"""Tests for the Stripe webhook processing pipeline.

Test Coverage:
1. subscription.created grants entitlements + links customer
2. subscription.deleted revokes entitlements
3. Unhandled event types are ignored without touching the store
4. Disallowed source IP / missing / invalid signature never touch the store
5. Malformed subscription is rejected
6. Store and configuration failures are swallowed
"""

import os
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from pydantic import ValidationError

from conftest import ALLOWED_IP, DISALLOWED_IP, build_subscription_event, sign_payload, signed_event
from entitlements_api.billing.models import UserEntitlementRecord
from entitlements_api.billing.processor import process_stripe_webhook


def _get_item(table, user_id: str = "user-123"):
    return table.get_item(Key={"userID": user_id}).get("Item")


def test_created_grants_entitlements(dynamodb_table):
    payload, signature = signed_event(build_subscription_event("customer.subscription.created"))

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP)

    assert outcome.status == "processed"
    assert outcome.user_id == "user-123"
    assert outcome.entitlements == ["hd", "live"]
    assert _get_item(dynamodb_table) == {
        "userID": "user-123",
        "entitlements": ["hd", "live"],
        "stripeCustomerID": "cus_test_123",
    }


def test_created_is_idempotent_for_redelivery(dynamodb_table):
    payload, signature = signed_event(build_subscription_event("customer.subscription.created"))

    process_stripe_webhook(payload, signature, ALLOWED_IP)
    process_stripe_webhook(payload, signature, ALLOWED_IP)

    assert _get_item(dynamodb_table)["entitlements"] == ["hd", "live"]


def test_deleted_revokes_entitlements(dynamodb_table):
    dynamodb_table.put_item(
        Item={"userID": "user-123", "entitlements": ["sd", "hd", "live"], "stripeCustomerID": "cus_test_123"}
    )
    payload, signature = signed_event(build_subscription_event("customer.subscription.deleted", event_id="evt_del"))

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP)

    assert outcome.status == "processed"
    assert outcome.event_id == "evt_del"
    item = _get_item(dynamodb_table)
    assert item["entitlements"] == ["sd"]
    assert item["stripeCustomerID"] == "cus_test_123"


def test_unhandled_event_type_ignored(dynamodb_table):
    payload, signature = signed_event(build_subscription_event("customer.subscription.updated"))

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP)

    assert outcome.status == "ignored"
    assert outcome.event_type == "customer.subscription.updated"
    assert _get_item(dynamodb_table) is None


def test_disallowed_ip_rejected_before_signature_check():
    store = MagicMock()
    stripe_client = MagicMock()
    payload, signature = signed_event(build_subscription_event())

    outcome = process_stripe_webhook(payload, signature, DISALLOWED_IP, stripe_client=stripe_client, store=store)

    assert outcome.status == "rejected"
    assert outcome.error_code == "WEBHOOK_SOURCE_NOT_ALLOWED"
    stripe_client.construct_event.assert_not_called()
    store.set_user_entitlements.assert_not_called()


def test_missing_source_ip_rejected():
    payload, signature = signed_event(build_subscription_event())

    outcome = process_stripe_webhook(payload, signature, None, store=MagicMock())

    assert outcome.error_code == "WEBHOOK_SOURCE_NOT_ALLOWED"


def test_missing_signature_rejected():
    store = MagicMock()
    payload, _ = signed_event(build_subscription_event())

    outcome = process_stripe_webhook(payload, None, ALLOWED_IP, store=store)

    assert outcome.status == "rejected"
    assert outcome.error_code == "WEBHOOK_MISSING_SIGNATURE"
    store.get_user_entitlements.assert_not_called()


def test_invalid_signature_rejected():
    store = MagicMock()
    payload, signature = signed_event(build_subscription_event(), secret="whsec_attacker")

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP, store=store)

    assert outcome.status == "rejected"
    assert outcome.error_code == "WEBHOOK_SIGNATURE_INVALID"
    store.set_user_entitlements.assert_not_called()


def test_subscription_without_user_id_rejected():
    store = MagicMock()
    payload, signature = signed_event(build_subscription_event(user_id=None))

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP, store=store)

    assert outcome.status == "rejected"
    assert outcome.error_code == "WEBHOOK_INVALID_SUBSCRIPTION"
    assert outcome.event_type == "customer.subscription.created"
    store.set_user_entitlements.assert_not_called()


def test_store_error_swallowed():
    store = MagicMock()
    store.get_user_entitlements.side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
        "GetItem",
    )
    payload, signature = signed_event(build_subscription_event())

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP, store=store)

    assert outcome.status == "failed"
    assert outcome.error_code == "WEBHOOK_STORE_ERROR"
    store.set_user_entitlements.assert_not_called()


def test_unexpected_error_swallowed():
    store = MagicMock()
    store.get_user_entitlements.side_effect = RuntimeError("boom")
    payload, signature = signed_event(build_subscription_event())

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP, store=store)

    assert outcome.status == "failed"
    assert outcome.error_code == "WEBHOOK_INTERNAL_ERROR"


def test_missing_webhook_secret_is_misconfig():
    payload, signature = signed_event(build_subscription_event())

    with patch.dict(os.environ, {"STRIPE_WEBHOOK_SECRET": ""}):
        outcome = process_stripe_webhook(payload, signature, ALLOWED_IP, store=MagicMock())

    assert outcome.status == "failed"
    assert outcome.error_code == "WEBHOOK_PROVIDER_MISCONFIG"


def test_created_repairs_record_with_null_entitlements(dynamodb_table):
    dynamodb_table.put_item(Item={"userID": "user-123", "entitlements": None})
    payload, signature = signed_event(build_subscription_event("customer.subscription.created"))

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP)

    assert outcome.status == "processed"
    assert _get_item(dynamodb_table)["entitlements"] == ["hd", "live"]


def test_deleted_on_record_with_unexpected_attribute_type(dynamodb_table):
    dynamodb_table.put_item(Item={"userID": "user-123", "entitlements": "hd"})
    payload, signature = signed_event(build_subscription_event("customer.subscription.deleted"))

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP)

    assert outcome.status == "processed"
    assert _get_item(dynamodb_table)["entitlements"] == []


def test_non_string_user_id_rejected_as_invalid_subscription():
    store = MagicMock()
    payload, signature = signed_event(build_subscription_event(user_id=42))

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP, store=store)

    assert outcome.status == "rejected"
    assert outcome.error_code == "WEBHOOK_INVALID_SUBSCRIPTION"
    store.set_user_entitlements.assert_not_called()


def test_validation_error_is_not_reported_as_misconfig():
    try:
        UserEntitlementRecord.model_validate({})
    except ValidationError as e:
        validation_error = e
    store = MagicMock()
    store.get_user_entitlements.side_effect = validation_error
    payload, signature = signed_event(build_subscription_event())

    outcome = process_stripe_webhook(payload, signature, ALLOWED_IP, store=store)

    assert outcome.status == "rejected"
    assert outcome.error_code == "WEBHOOK_INVALID_SUBSCRIPTION"


@pytest.mark.parametrize("body", ["[]", "42", '"text"'])
def test_signed_non_object_payload_rejected_as_invalid_payload(body):
    store = MagicMock()

    outcome = process_stripe_webhook(body, sign_payload(body), ALLOWED_IP, store=store)

    assert outcome.status == "rejected"
    assert outcome.error_code == "WEBHOOK_INVALID_PAYLOAD"
    store.get_user_entitlements.assert_not_called()
