"""Stripe subscription webhook -> per-user entitlement record reconciler."""

__version__ = "1.2.0"
