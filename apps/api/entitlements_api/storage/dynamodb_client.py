"""DynamoDB store for per-user entitlement records.

Item layout (partition key ``userID``):

    {"userID": "usr_123", "entitlements": ["hd", "live"], "stripeCustomerID": "cus_..."}

Records are created implicitly by UpdateItem and never deleted here.
"""

import logging
import os
from typing import Any, Optional

import boto3
from botocore.config import Config

from entitlements_api.billing.models import UserEntitlementRecord
from entitlements_api.config import env

logger = logging.getLogger(__name__)

USER_ID_KEY = "userID"
ENTITLEMENTS_ATTR = "entitlements"
STRIPE_CUSTOMER_ID_ATTR = "stripeCustomerID"


class EntitlementsStore:
    """Flat get/update accessor for the user entitlements table."""

    def __init__(
        self,
        table_name: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        """Initialize DynamoDB table handle.

        AWS Guardrails: production validation for credentials/endpoints/region.

        Args:
            table_name: Table name (default from env: USER_ENTITLEMENTS_TABLE)
            region: AWS region (default from env: AWS_REGION)
            endpoint_url: Custom endpoint URL (for LocalStack testing)

        Raises:
            ValueError: If production guardrails fail
        """
        self.table_name = table_name or env.get_user_entitlements_table()

        self.endpoint_url = endpoint_url or os.getenv("DYNAMODB_ENDPOINT_URL")
        env.assert_no_custom_endpoint_in_prod(self.endpoint_url, "dynamodb")
        env.assert_no_static_aws_creds("dynamodb")

        self.region = region or env.get_aws_region(require_in_prod=True)

        config = Config(
            region_name=self.region,
            retries={"max_attempts": 3, "mode": "standard"},
            connect_timeout=5,
            read_timeout=10,
        )

        resource_kwargs: dict[str, Any] = {"config": config}
        if self.endpoint_url:
            resource_kwargs["endpoint_url"] = self.endpoint_url

            # Test credentials ONLY for LocalStack AND NOT in IRSA
            if (
                env.is_localstack_endpoint(self.endpoint_url)
                and not os.getenv("AWS_ACCESS_KEY_ID")
                and not env.is_irsa_environment()
            ):
                resource_kwargs["aws_access_key_id"] = "test"
                resource_kwargs["aws_secret_access_key"] = "test"

        self.resource = boto3.resource("dynamodb", **resource_kwargs)
        self.table = self.resource.Table(self.table_name)

        logger.info(f"EntitlementsStore initialized: region={self.region}, table={self.table_name}")

    def get_user_record(self, user_id: str) -> Optional[UserEntitlementRecord]:
        """Fetch the record for ``user_id`` (None if absent)."""
        response = self.table.get_item(Key={USER_ID_KEY: user_id})
        item = response.get("Item")
        if item is None:
            return None
        return UserEntitlementRecord.model_validate(item)

    def get_user_entitlements(self, user_id: str) -> list[str]:
        """Fetch entitlements for ``user_id``.

        Returns:
            Stored entitlement list, or [] when the record is absent or the
            attribute is null or not a list
        """
        response = self.table.get_item(Key={USER_ID_KEY: user_id})
        value = (response.get("Item") or {}).get(ENTITLEMENTS_ATTR) or []
        if not isinstance(value, (list, set, tuple)):
            logger.warning(
                "ENTITLEMENTS_ATTR_UNEXPECTED_TYPE",
                extra={"attr_type": type(value).__name__, "table": self.table_name},
            )
            return []
        if isinstance(value, set):
            value = sorted(value)
        return [str(entitlement) for entitlement in value]

    def set_user_entitlements(
        self,
        user_id: str,
        entitlements: list[str],
        stripe_customer_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Overwrite the entitlement list for ``user_id`` (upsert).

        The Stripe customer id is written only when given; otherwise the
        stored value is left untouched.

        Raises:
            botocore.exceptions.ClientError: If the update fails
        """
        update_expression = "set #entitlements = :entitlements"
        names = {"#entitlements": ENTITLEMENTS_ATTR}
        values: dict[str, Any] = {":entitlements": list(entitlements)}

        if stripe_customer_id:
            update_expression += ", #stripeCustomerID = :stripeCustomerID"
            names["#stripeCustomerID"] = STRIPE_CUSTOMER_ID_ATTR
            values[":stripeCustomerID"] = stripe_customer_id

        return self.table.update_item(
            Key={USER_ID_KEY: user_id},
            UpdateExpression=update_expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )

    def ping(self) -> str:
        """Check the table is reachable. Returns its status (e.g. ACTIVE)."""
        description = self.resource.meta.client.describe_table(TableName=self.table_name)
        return description["Table"]["TableStatus"]


_entitlements_store: Optional[EntitlementsStore] = None


def get_entitlements_store() -> EntitlementsStore:
    """Get entitlements store singleton."""
    global _entitlements_store
    if _entitlements_store is None:
        _entitlements_store = EntitlementsStore()
    return _entitlements_store


def reset_entitlements_store() -> None:
    """Reset entitlements store singleton (for testing)."""
    global _entitlements_store
    _entitlements_store = None
