"""
Error taxonomy for cost metering.

Every error is scoped to a single computation or sync run; none is fatal.
"""

from typing import Optional


class CostMeterError(Exception):
    """Base class for all cost metering errors."""


class KindMismatch(CostMeterError):
    """Raised when a usage record and a pricing policy have different kinds."""

    def __init__(self, usage_kind: str, pricing_kind: str):
        super().__init__(
            f"Usage type '{usage_kind}' requires pricing type '{usage_kind}', "
            f"got '{pricing_kind}'"
        )
        self.usage_kind = usage_kind
        self.pricing_kind = pricing_kind


class PricingNotFound(CostMeterError):
    """Raised when the catalog has no pricing for the requested identifiers."""

    def __init__(self, provider_id: str, item_id: Optional[str] = None):
        target = f"provider '{provider_id}'"
        if item_id:
            target += f" and '{item_id}'"
        super().__init__(f"Pricing not found for {target}")
        self.provider_id = provider_id
        self.item_id = item_id


class FeedFetchFailure(CostMeterError):
    """Raised when the remote pricing feed is unreachable or malformed."""


class ValidationFailure(CostMeterError, ValueError):
    """Raised when a usage or pricing payload is malformed."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
