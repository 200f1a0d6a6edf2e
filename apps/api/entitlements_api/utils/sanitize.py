"""Redaction of Stripe credentials and customer data in log output.

Strings are handled by length:
  short  (<= REGEX_LIMIT)  every credential pattern is replaced
  medium (<= LOG_LIMIT)    only a leading credential prefix is checked
  long   (> LOG_LIMIT)     replaced by a length + digest placeholder

Log extras are walked recursively; values under sensitive keys are
replaced whatever their content.
"""

import hashlib
import re
import traceback
from typing import Any

REDACTED = "[REDACTED]"

LOG_LIMIT: int = 2048
REGEX_LIMIT: int = 512
MAX_DEPTH: int = 6

# Lower-cased dict keys whose values never reach the logs
SENSITIVE_KEYS: frozenset[str] = frozenset({
    "authorization",
    "api_key",
    "secret",
    "secret_key",
    "webhook_secret",
    "signature",
    "stripe-signature",
    "stripe_signature",
    "email",
    "phone",
    "address",
    "card",
    "payment_method",
})

# One alternation, compiled once; each branch is anchored to \S+ runs
_CREDENTIAL_RE = re.compile(
    "|".join([
        r"(?:Bearer|Basic) \S+",
        r"whsec_\S+",
        r"(?:sk|rk|pk)_(?:live|test)_\S+",
        r"v[01]=[0-9a-fA-F]+",
    ])
)

_CREDENTIAL_PREFIXES = ("Bearer ", "Basic ", "whsec_", "sk_live_", "sk_test_", "rk_live_", "rk_test_")


def payload_hash_bytes(raw: bytes) -> str:
    """sha256 hex digest of a raw request body."""
    return hashlib.sha256(raw).hexdigest()


def _placeholder(s: str) -> str:
    digest = hashlib.sha256(s.encode("utf-8", errors="replace")).hexdigest()[:16]
    return f"[TRUNCATED len={len(s)} sha256={digest}]"


def sanitize_str(s: str) -> str:
    """Return ``s`` with Stripe secrets, signatures and auth headers redacted."""
    if not isinstance(s, str):
        return s  # type: ignore[return-value]

    if len(s) > LOG_LIMIT:
        return _placeholder(s)

    if len(s) > REGEX_LIMIT:
        return REDACTED if s.startswith(_CREDENTIAL_PREFIXES) else s

    return _CREDENTIAL_RE.sub(REDACTED, s)


def sanitize_obj(obj: Any, depth: int = 0) -> Any:
    """Redact a log extra value (dicts, lists, tuples and strings)."""
    if depth >= MAX_DEPTH:
        return "[DEPTH_LIMIT]"

    if isinstance(obj, str):
        return sanitize_str(obj)

    if isinstance(obj, dict):
        return {
            key: REDACTED
            if isinstance(key, str) and key.lower() in SENSITIVE_KEYS
            else sanitize_obj(value, depth + 1)
            for key, value in obj.items()
        }

    if isinstance(obj, (list, tuple)):
        return [sanitize_obj(item, depth + 1) for item in obj]

    return obj


def sanitize_exc(exc_info: tuple) -> str:
    """Render ``exc_info`` as a redacted traceback (frame locals are never included)."""
    _type, value, tb = exc_info
    if value is None:
        return ""
    try:
        rendered = "".join(traceback.format_exception(type(value), value, tb))
    except Exception:
        return "[TRACEBACK_FORMAT_ERROR]"
    return sanitize_str(rendered)
