"""Webhook rejection taxonomy.

Each error carries a stable ``code`` used as the log message and
``error_code`` field:

  WEBHOOK_SOURCE_NOT_ALLOWED    source IP not in the allow-list
  WEBHOOK_MISSING_SIGNATURE     Stripe-Signature header absent
  WEBHOOK_SIGNATURE_INVALID     signature does not match the payload
  WEBHOOK_INVALID_PAYLOAD       body is not a parseable Stripe event
  WEBHOOK_INVALID_SUBSCRIPTION  subscription lacks userID / price entitlements
"""


class WebhookError(Exception):
    """Base class for rejected webhook deliveries."""

    code = "WEBHOOK_REJECTED"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class WebhookSourceNotAllowedError(WebhookError):
    code = "WEBHOOK_SOURCE_NOT_ALLOWED"


class WebhookSignatureMissingError(WebhookError):
    code = "WEBHOOK_MISSING_SIGNATURE"


class WebhookSignatureInvalidError(WebhookError):
    code = "WEBHOOK_SIGNATURE_INVALID"


class WebhookPayloadInvalidError(WebhookError):
    code = "WEBHOOK_INVALID_PAYLOAD"


class SubscriptionEventError(WebhookError):
    code = "WEBHOOK_INVALID_SUBSCRIPTION"
