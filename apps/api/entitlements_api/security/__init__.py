"""Request source validation."""

from entitlements_api.security.ip_allowlist import IPAllowlist, get_ip_allowlist, is_ip_allowed

__all__ = ["IPAllowlist", "get_ip_allowlist", "is_ip_allowed"]
