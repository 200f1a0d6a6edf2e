"""Entitlement record storage."""
