"""
Tool cost calculation.

Turns a usage record and a matching pricing policy into a raw cost and a
marked-up cost for the user. Every function here is pure.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .errors import KindMismatch, ValidationFailure
from .pricing import (
    CACHE_READ_FALLBACK_RATIO,
    ModelPricing,
    Number,
    exact_product,
    per_million,
    product,
    to_decimal,
    total,
)
from .schema import (
    BandwidthPricing,
    BandwidthUsage,
    CompositePricing,
    CompositeUsage,
    ComputePricing,
    ComputeUsage,
    CreditsPricing,
    CreditsUsage,
    CustomPricing,
    CustomUsage,
    Pricing,
    RequestsPricing,
    RequestsUsage,
    StoragePricing,
    StorageUsage,
    TieredPricing,
    TieredUsage,
    TokensPricing,
    TokensUsage,
    UnitsPricing,
    UnitsUsage,
    Usage,
    UsageKind,
    compact_dict,
)


# ---------------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreditsBreakdown:
    credits: float
    cost_per_credit: float
    kind: UsageKind = field(default=UsageKind.CREDITS, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "credits": self.credits,
            "costPerCredit": self.cost_per_credit,
        }


@dataclass(frozen=True)
class TokensBreakdown:
    """Per-category token costs. Categories without tokens are None."""
    input_tokens_cost: float
    output_tokens_cost: float
    reasoning_tokens_cost: Optional[float] = None
    cache_read_tokens_cost: Optional[float] = None
    cache_write_tokens_cost: Optional[float] = None
    kind: UsageKind = field(default=UsageKind.TOKENS, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "inputTokensCost": self.input_tokens_cost,
            "outputTokensCost": self.output_tokens_cost,
            "reasoningTokensCost": self.reasoning_tokens_cost,
            "cacheReadTokensCost": self.cache_read_tokens_cost,
            "cacheWriteTokensCost": self.cache_write_tokens_cost,
        })


@dataclass(frozen=True)
class RequestsBreakdown:
    requests: float
    cost_per_request: float
    kind: UsageKind = field(default=UsageKind.REQUESTS, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "requests": self.requests,
            "costPerRequest": self.cost_per_request,
        }


@dataclass(frozen=True)
class ComputeBreakdown:
    duration_ms: float
    cost_per_ms: float
    compute_type: Optional[str] = None
    kind: UsageKind = field(default=UsageKind.COMPUTE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "durationMs": self.duration_ms,
            "costPerMs": self.cost_per_ms,
            "computeType": self.compute_type,
        })


@dataclass(frozen=True)
class StorageBreakdown:
    bytes: float
    duration_seconds: float
    cost_per_byte_second: float
    kind: UsageKind = field(default=UsageKind.STORAGE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "bytes": self.bytes,
            "durationSeconds": self.duration_seconds,
            "costPerByteSecond": self.cost_per_byte_second,
        }


@dataclass(frozen=True)
class BandwidthBreakdown:
    bytes_in_cost: Optional[float] = None
    bytes_out_cost: Optional[float] = None
    kind: UsageKind = field(default=UsageKind.BANDWIDTH, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "bytesInCost": self.bytes_in_cost,
            "bytesOutCost": self.bytes_out_cost,
        })


@dataclass(frozen=True)
class UnitsBreakdown:
    units: float
    unit_type: str
    cost_per_unit: float
    kind: UsageKind = field(default=UsageKind.UNITS, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "units": self.units,
            "unitType": self.unit_type,
            "costPerUnit": self.cost_per_unit,
        }


@dataclass(frozen=True)
class TieredBreakdown:
    quantity: float
    tier_applied: str
    effective_rate: float
    kind: UsageKind = field(default=UsageKind.TIERED, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "quantity": self.quantity,
            "tierApplied": self.tier_applied,
            "effectiveRate": self.effective_rate,
        }


@dataclass(frozen=True)
class ComponentCost:
    name: str
    quantity: float
    unit_cost: float
    total_cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unitCost": self.unit_cost,
            "totalCost": self.total_cost,
        }


@dataclass(frozen=True)
class CompositeBreakdown:
    components: Tuple[ComponentCost, ...]
    kind: UsageKind = field(default=UsageKind.COMPOSITE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "components": [component.to_dict() for component in self.components],
        }


@dataclass(frozen=True)
class CustomBreakdown:
    data: Any
    kind: UsageKind = field(default=UsageKind.CUSTOM, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "data": self.data}


Breakdown = Union[
    CreditsBreakdown, TokensBreakdown, RequestsBreakdown, ComputeBreakdown,
    StorageBreakdown, BandwidthBreakdown, UnitsBreakdown, TieredBreakdown,
    CompositeBreakdown, CustomBreakdown,
]


# ---------------------------------------------------------------------------
# Cost records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCost:
    """Raw cost of a tool usage, before markup."""
    amount: float
    currency: str
    breakdown: Breakdown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "breakdown": self.breakdown.to_dict(),
        }


@dataclass(frozen=True)
class ToolCostForUser:
    """User-facing cost of a tool usage, with markup applied.

    markup_multiplier is only set when it differs from 1.
    """
    amount: float
    currency: str
    breakdown: Breakdown
    markup_multiplier: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "amount": self.amount,
            "currency": self.currency,
            "markupMultiplier": self.markup_multiplier,
            "breakdown": self.breakdown.to_dict(),
        })


@dataclass(frozen=True)
class CalculatedToolCost:
    cost: ToolCost
    cost_for_user: ToolCostForUser


# ---------------------------------------------------------------------------
# Per-kind handlers
# ---------------------------------------------------------------------------

def _lookup_rate(rates: Optional[Dict[str, float]], name: Optional[str]) -> Optional[float]:
    """Return the named override rate, treating missing and zero rates as absent."""
    if not name or not rates:
        return None
    return rates.get(name) or None


def _credits(usage: CreditsUsage, pricing: CreditsPricing) -> Tuple[float, Breakdown]:
    rate = _lookup_rate(pricing.credit_types, usage.credit_type) or pricing.cost_per_credit
    amount = product(usage.credits, rate)
    return amount, CreditsBreakdown(credits=usage.credits, cost_per_credit=rate)


def _tokens(usage: TokensUsage, pricing: Union[TokensPricing, ModelPricing]) -> Tuple[float, Breakdown]:
    input_cost = per_million(usage.input_tokens, pricing.input)
    output_cost = per_million(usage.output_tokens, pricing.output)

    reasoning_cost = None
    if usage.reasoning_tokens:
        rate = pricing.reasoning if pricing.reasoning is not None else pricing.output
        reasoning_cost = per_million(usage.reasoning_tokens, rate)

    cache_read_cost = None
    if usage.cache_read_tokens:
        if pricing.cache_read is not None:
            rate = pricing.cache_read
        else:
            rate = exact_product(pricing.input, CACHE_READ_FALLBACK_RATIO)
        cache_read_cost = per_million(usage.cache_read_tokens, rate)

    cache_write_cost = None
    if usage.cache_write_tokens:
        rate = pricing.cache_write if pricing.cache_write is not None else pricing.output
        cache_write_cost = per_million(usage.cache_write_tokens, rate)

    amount = total(
        cost for cost in (input_cost, output_cost, reasoning_cost, cache_read_cost, cache_write_cost)
        if cost is not None
    )
    return amount, TokensBreakdown(
        input_tokens_cost=input_cost,
        output_tokens_cost=output_cost,
        reasoning_tokens_cost=reasoning_cost,
        cache_read_tokens_cost=cache_read_cost,
        cache_write_tokens_cost=cache_write_cost,
    )


def _requests(usage: RequestsUsage, pricing: RequestsPricing) -> Tuple[float, Breakdown]:
    rate = _lookup_rate(pricing.request_types, usage.request_type) or pricing.cost_per_request
    amount = product(usage.requests, rate)
    return amount, RequestsBreakdown(requests=usage.requests, cost_per_request=rate)


def _compute(usage: ComputeUsage, pricing: ComputePricing) -> Tuple[float, Breakdown]:
    rate = _lookup_rate(pricing.compute_types, usage.compute_type) or pricing.cost_per_ms
    tier_multiplier = _lookup_rate(pricing.tiers, usage.tier)
    if tier_multiplier is not None:
        rate = exact_product(rate, tier_multiplier)
    amount = product(usage.duration_ms, rate)
    return amount, ComputeBreakdown(
        duration_ms=usage.duration_ms,
        cost_per_ms=rate,
        compute_type=usage.compute_type,
    )


def _storage(usage: StorageUsage, pricing: StoragePricing) -> Tuple[float, Breakdown]:
    rate = _lookup_rate(pricing.storage_classes, usage.storage_class) or pricing.cost_per_byte_second
    duration_seconds = usage.duration_seconds if usage.duration_seconds is not None else 1
    amount = product(usage.bytes, duration_seconds, rate)
    return amount, StorageBreakdown(
        bytes=usage.bytes,
        duration_seconds=duration_seconds,
        cost_per_byte_second=rate,
    )


def _bandwidth(usage: BandwidthUsage, pricing: BandwidthPricing) -> Tuple[float, Breakdown]:
    region_multiplier = _lookup_rate(pricing.regions, usage.region) or 1
    bytes_in_cost = None
    if usage.bytes_in:
        bytes_in_cost = product(usage.bytes_in, pricing.cost_per_byte_in or 0, region_multiplier)
    bytes_out_cost = None
    if usage.bytes_out:
        bytes_out_cost = product(usage.bytes_out, pricing.cost_per_byte_out or 0, region_multiplier)
    amount = total([bytes_in_cost or 0, bytes_out_cost or 0])
    return amount, BandwidthBreakdown(bytes_in_cost=bytes_in_cost, bytes_out_cost=bytes_out_cost)


def _units(usage: UnitsUsage, pricing: UnitsPricing) -> Tuple[float, Breakdown]:
    amount = product(usage.units, pricing.cost_per_unit)
    return amount, UnitsBreakdown(
        units=usage.units,
        unit_type=usage.unit_type,
        cost_per_unit=pricing.cost_per_unit,
    )


def _tiered(usage: TieredUsage, pricing: TieredPricing) -> Tuple[float, Breakdown]:
    effective_rate = 0
    tier_applied = "default"
    for tier in pricing.tiers:
        if tier.contains(usage.quantity):
            effective_rate = tier.rate
            tier_applied = tier.label
            break
    amount = product(usage.quantity, effective_rate)
    return amount, TieredBreakdown(
        quantity=usage.quantity,
        tier_applied=tier_applied,
        effective_rate=effective_rate,
    )


def _composite(usage: CompositeUsage, pricing: CompositePricing) -> Tuple[float, Breakdown]:
    component_costs = []
    for component in usage.components:
        matched = pricing.find_component(component.name)
        unit_cost = matched.cost_per_unit if matched is not None else 0
        component_costs.append(ComponentCost(
            name=component.name,
            quantity=component.quantity,
            unit_cost=unit_cost,
            total_cost=product(component.quantity, unit_cost),
        ))
    amount = total(component.total_cost for component in component_costs)
    return amount, CompositeBreakdown(components=tuple(component_costs))


def _custom(usage: CustomUsage, pricing: CustomPricing) -> Tuple[float, Breakdown]:
    # Custom pricing is left to the caller
    return 0.0, CustomBreakdown(data=usage.data)


_HANDLERS: Dict[UsageKind, Callable[[Any, Any], Tuple[float, Breakdown]]] = {
    UsageKind.CREDITS: _credits,
    UsageKind.TOKENS: _tokens,
    UsageKind.REQUESTS: _requests,
    UsageKind.COMPUTE: _compute,
    UsageKind.STORAGE: _storage,
    UsageKind.BANDWIDTH: _bandwidth,
    UsageKind.UNITS: _units,
    UsageKind.TIERED: _tiered,
    UsageKind.COMPOSITE: _composite,
    UsageKind.CUSTOM: _custom,
}

_missing = set(UsageKind) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No cost handler for usage kinds: {sorted(k.value for k in _missing)}")


def apply_markup(
    amount: float,
    currency: str,
    breakdown: Breakdown,
    markup_multiplier: Number = 1,
) -> CalculatedToolCost:
    """Build raw and user-facing costs from a computed amount.

    A multiplier of exactly 1 leaves the user-facing amount untouched.

    Raises:
        ValidationFailure: If the multiplier is negative
    """
    if isinstance(markup_multiplier, bool) or not isinstance(markup_multiplier, (int, float, Decimal)):
        raise ValidationFailure("markupMultiplier", "must be a number")
    if not math.isfinite(markup_multiplier) or markup_multiplier < 0:
        raise ValidationFailure("markupMultiplier", "must be >= 0")

    if to_decimal(markup_multiplier) == 1:
        user_amount = amount
        recorded_multiplier = None
    else:
        user_amount = product(amount, markup_multiplier)
        recorded_multiplier = float(markup_multiplier)

    return CalculatedToolCost(
        cost=ToolCost(amount=amount, currency=currency, breakdown=breakdown),
        cost_for_user=ToolCostForUser(
            amount=user_amount,
            currency=currency,
            breakdown=breakdown,
            markup_multiplier=recorded_multiplier,
        ),
    )


def compute(usage: Usage, pricing: Pricing, markup_multiplier: Number = 1) -> CalculatedToolCost:
    """Calculate tool cost for any of the ten usage kinds.

    Args:
        usage: Usage record
        pricing: Pricing policy of the same kind as the usage
        markup_multiplier: Multiplier for the user-facing cost (default 1)

    Returns:
        CalculatedToolCost with raw cost and cost for user

    Raises:
        KindMismatch: If usage and pricing kinds differ
        ValidationFailure: If the multiplier is negative
    """
    if usage.kind is not pricing.kind:
        raise KindMismatch(usage.kind.value, pricing.kind.value)
    amount, breakdown = _HANDLERS[usage.kind](usage, pricing)
    return apply_markup(amount, pricing.currency, breakdown, markup_multiplier)


def compute_from_model_pricing(
    usage: Usage,
    pricing: ModelPricing,
    markup_multiplier: Number = 1,
) -> CalculatedToolCost:
    """Calculate tool cost for token usage priced by a catalog model.

    Used for LLM-backed tools that have no dedicated tool pricing.

    Raises:
        KindMismatch: If the usage is not token-based
    """
    if usage.kind is not UsageKind.TOKENS:
        raise KindMismatch(usage.kind.value, UsageKind.TOKENS.value)
    amount, breakdown = _tokens(usage, pricing)
    return apply_markup(amount, "USD", breakdown, markup_multiplier)
