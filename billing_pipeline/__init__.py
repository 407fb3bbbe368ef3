"""Idempotent fan-out pipeline for subscription.created events."""

__version__ = "0.1.0"
