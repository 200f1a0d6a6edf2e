"""
Pydantic models for subscription reconciliation
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

HANDLED_EVENT_TYPES = frozenset({SUBSCRIPTION_CREATED, SUBSCRIPTION_DELETED})


class SubscriptionChange(BaseModel):
    """Entitlement change carried by one subscription event"""
    event_id: Optional[str] = None
    event_type: Literal["customer.subscription.created", "customer.subscription.deleted"]
    user_id: str = Field(min_length=1)
    stripe_customer_id: Optional[str] = None
    entitlements: List[str] = Field(default_factory=list)


class UserEntitlementRecord(BaseModel):
    """Item stored in the user entitlements table"""
    user_id: str = Field(alias="userID")
    entitlements: List[str] = Field(default_factory=list)
    stripe_customer_id: Optional[str] = Field(default=None, alias="stripeCustomerID")

    model_config = {"populate_by_name": True}

    @field_validator("entitlements", mode="before")
    @classmethod
    def _null_entitlements(cls, value):
        return [] if value is None else value


class WebhookOutcome(BaseModel):
    """Result of processing one webhook delivery (never returned to the caller)"""
    status: Literal["processed", "ignored", "rejected", "failed"]
    error_code: Optional[str] = None
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    user_id: Optional[str] = None
    entitlements: Optional[List[str]] = None
