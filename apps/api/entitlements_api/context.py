"""Request context management for observability.

Context variables for request tracking across async boundaries.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request / Lambda invocation
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# User ID - user whose entitlement record is being reconciled
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Stripe event ID - event currently being processed
event_id_var: ContextVar[str] = ContextVar("event_id", default="")
