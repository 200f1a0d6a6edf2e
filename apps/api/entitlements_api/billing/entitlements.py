"""Entitlement reconciliation for subscription lifecycle events.

customer.subscription.created → grant: union of stored and price entitlements,
                                 Stripe customer id linked to the record
customer.subscription.deleted → revoke: stored minus price entitlements
"""

import logging
from typing import Iterable

from entitlements_api.billing.models import SUBSCRIPTION_CREATED, SUBSCRIPTION_DELETED, SubscriptionChange
from entitlements_api.context import user_id_var
from entitlements_api.storage.dynamodb_client import EntitlementsStore

logger = logging.getLogger(__name__)


def merge_entitlements(current: Iterable[str], granted: Iterable[str]) -> list[str]:
    """Union preserving stored order; new grants are appended."""
    result: list[str] = []
    for entitlement in list(current) + list(granted):
        if entitlement not in result:
            result.append(entitlement)
    return result


def remove_entitlements(current: Iterable[str], revoked: Iterable[str]) -> list[str]:
    """Difference preserving stored order."""
    revoked_set = set(revoked)
    result: list[str] = []
    for entitlement in current:
        if entitlement not in revoked_set and entitlement not in result:
            result.append(entitlement)
    return result


def apply_subscription_change(store: EntitlementsStore, change: SubscriptionChange) -> list[str]:
    """Read-modify-write the user's record for one subscription change.

    Returns:
        The entitlement list written to the store
    """
    user_id_var.set(change.user_id)
    current = store.get_user_entitlements(change.user_id)

    if change.event_type == SUBSCRIPTION_CREATED:
        updated = merge_entitlements(current, change.entitlements)
        store.set_user_entitlements(change.user_id, updated, change.stripe_customer_id)
        logger.info(
            "ENTITLEMENTS_GRANTED",
            extra={
                "granted": change.entitlements,
                "entitlement_count": len(updated),
                "stripe_customer_id": change.stripe_customer_id,
            },
        )
    elif change.event_type == SUBSCRIPTION_DELETED:
        updated = remove_entitlements(current, change.entitlements)
        store.set_user_entitlements(change.user_id, updated)
        logger.info(
            "ENTITLEMENTS_REVOKED",
            extra={"revoked": change.entitlements, "entitlement_count": len(updated)},
        )
    else:
        raise ValueError(f"Unsupported subscription event type: {change.event_type}")

    return updated
