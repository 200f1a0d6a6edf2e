"""Webhook source IP allow-list.

The allow-list is a static JSON document in the format Stripe publishes at
https://stripe.com/files/ips/ips_webhooks.json:

    {"WEBHOOKS": ["3.18.12.63", "54.187.216.72", ...]}
"""

import ipaddress
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, StrictStr, ValidationError, field_validator

from entitlements_api.config import env

logger = logging.getLogger(__name__)

ALLOWLIST_KEY = "WEBHOOKS"


class IPAllowlistDocument(BaseModel):
    """Shape of the allow-list file. Entries must be IP address strings."""
    WEBHOOKS: List[StrictStr]

    @field_validator("WEBHOOKS")
    @classmethod
    def _valid_addresses(cls, ips: List[str]) -> List[str]:
        result = []
        for ip in ips:
            # Raises ValueError for anything that is not a single address
            ipaddress.ip_address(ip.strip())
            result.append(ip.strip())
        return result


class IPAllowlist:
    """Membership check against a static list of webhook source addresses."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else env.get_ip_allowlist_path()
        self._ips: Optional[frozenset[str]] = None

    def load(self) -> frozenset[str]:
        """Load and validate the allow-list file.

        Raises:
            ValueError: File missing, not JSON, or without a WEBHOOKS list
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError as e:
            raise ValueError(f"IP allow-list file not found: {self.path}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"IP allow-list file is not valid JSON: {self.path}") from e

        try:
            parsed = IPAllowlistDocument.model_validate(document)
        except ValidationError as e:
            raise ValueError(
                f"IP allow-list file has no valid '{ALLOWLIST_KEY}' list of addresses: {self.path}: {e}"
            ) from e

        self._ips = frozenset(parsed.WEBHOOKS)
        logger.info(
            "IP_ALLOWLIST_LOADED",
            extra={"allowlist_path": str(self.path), "allowlist_size": len(self._ips)},
        )
        return self._ips

    @property
    def ips(self) -> frozenset[str]:
        if self._ips is None:
            return self.load()
        return self._ips

    def is_ip_allowed(self, ip: Optional[str]) -> bool:
        """Return True if ``ip`` is an allow-listed webhook source."""
        if not ip:
            return False
        return ip.strip() in self.ips


_ip_allowlist: Optional[IPAllowlist] = None


def get_ip_allowlist() -> IPAllowlist:
    """Get IP allow-list singleton."""
    global _ip_allowlist
    if _ip_allowlist is None:
        _ip_allowlist = IPAllowlist()
    return _ip_allowlist


def reset_ip_allowlist() -> None:
    """Reset IP allow-list singleton (for testing)."""
    global _ip_allowlist
    _ip_allowlist = None


def is_ip_allowed(ip: Optional[str]) -> bool:
    """Check ``ip`` against the process-wide allow-list."""
    return get_ip_allowlist().is_ip_allowed(ip)
