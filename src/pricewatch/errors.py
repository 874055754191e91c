from __future__ import annotations


class PriceWatchError(Exception):
    """Base for all domain errors raised by pricewatch components."""


class LookupFailure(PriceWatchError):
    """Price lookup failed (network, timeout, HTTP status, empty or malformed payload)."""

    def __init__(self, lookup_key: str, reason: str):
        super().__init__(f"lookup failed for {lookup_key}: {reason}")
        self.lookup_key = lookup_key
        self.reason = reason


class NotificationFailure(PriceWatchError):
    """Notification could not be delivered to the recipient."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(f"notification to {recipient} failed: {reason}")
        self.recipient = recipient
        self.reason = reason


class StoreUnavailable(PriceWatchError):
    """Durable alert storage cannot be read or written."""


class InvalidAlert(PriceWatchError, ValueError):
    """Alert creation input rejected."""
