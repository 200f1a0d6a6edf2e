"""Stripe subscription billing -> entitlements."""
