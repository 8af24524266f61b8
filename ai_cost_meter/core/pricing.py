"""
Pricing calculations and monetary rounding.

Handles cost computations for AI model requests priced from the catalog.
All monetary values are rounded to 8 decimal places at every step.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Context, Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .errors import ValidationFailure
from .token_counter import TokenUsage

Number = Union[int, float, Decimal]

MILLION = Decimal(1_000_000)

# Share of the input rate billed for cached input when no cache_read rate exists
CACHE_READ_FALLBACK_RATIO = Decimal("0.25")

_PRECISION = Decimal("0.00000001")
# Wide enough to quantize any finite float and multiply a few of them exactly
_CONTEXT = Context(prec=400, rounding=ROUND_HALF_UP)


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal using its shortest decimal representation."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(repr(float(value)))


def round8(value: Number) -> float:
    """Round a monetary value to 8 decimal places, halves away from zero.

    Args:
        value: Value to round

    Returns:
        Rounded value as float. Non-finite values are returned unchanged.
    """
    if isinstance(value, float) and not math.isfinite(value):
        return value
    decimal_value = to_decimal(value)
    if not decimal_value.is_finite():
        return float(decimal_value)
    return float(decimal_value.quantize(_PRECISION, context=_CONTEXT))


def product(*values: Number) -> float:
    """Multiply values exactly and round the result to 8 decimal places."""
    result = Decimal(1)
    for value in values:
        result = _CONTEXT.multiply(result, to_decimal(value))
    return round8(result)


def total(values: Iterable[Number]) -> float:
    """Sum values exactly and round the result to 8 decimal places."""
    result = Decimal(0)
    for value in values:
        result = _CONTEXT.add(result, to_decimal(value))
    return round8(result)


def per_million(tokens: Number, rate_per_million: Number) -> float:
    """Cost of a token count at a per-million rate, rounded to 8 places."""
    millions = _CONTEXT.divide(to_decimal(tokens), MILLION)
    return product(millions, rate_per_million)


def exact_product(*values: Number) -> float:
    """Multiply rates exactly without monetary rounding."""
    result = Decimal(1)
    for value in values:
        result = _CONTEXT.multiply(result, to_decimal(value))
    return float(result)


def _check_rate(value: Any, path: str, optional: bool = False) -> None:
    if value is None and optional:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationFailure(path, "must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValidationFailure(path, "must be >= 0")


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing for a catalog model, in USD."""
    input: float
    output: float
    reasoning: Optional[float] = None
    cache_read: Optional[float] = None
    cache_write: Optional[float] = None

    def __post_init__(self):
        """Validate rates are non-negative numbers."""
        _check_rate(self.input, "pricing.input")
        _check_rate(self.output, "pricing.output")
        _check_rate(self.reasoning, "pricing.reasoning", optional=True)
        _check_rate(self.cache_read, "pricing.cache_read", optional=True)
        _check_rate(self.cache_write, "pricing.cache_write", optional=True)

    @property
    def reasoning_rate(self) -> Number:
        return self.reasoning if self.reasoning is not None else self.output

    @property
    def cache_read_rate(self) -> Number:
        if self.cache_read is not None:
            return self.cache_read
        return _CONTEXT.multiply(to_decimal(self.input), CACHE_READ_FALLBACK_RATIO)

    @property
    def cache_write_rate(self) -> Number:
        return self.cache_write if self.cache_write is not None else self.output

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"input": self.input, "output": self.output}
        for key in ("reasoning", "cache_read", "cache_write"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


@dataclass(frozen=True)
class ModelLimits:
    """Context window and output token limits for a catalog model."""
    context: int = 0
    output: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"context": self.context, "output": self.output}


@dataclass(frozen=True)
class PricingCatalogEntry:
    """Catalog entry for one model of one provider.

    Keyed uniquely by (provider_id, model_id).
    """
    provider_id: str
    provider_name: str
    model_id: str
    model_name: str
    pricing: ModelPricing
    limits: ModelLimits
    last_updated: datetime

    @property
    def key(self) -> Tuple[str, str]:
        return (self.provider_id, self.model_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "providerId": self.provider_id,
            "providerName": self.provider_name,
            "modelId": self.model_id,
            "modelName": self.model_name,
            "pricing": self.pricing.to_dict(),
            "limits": self.limits.to_dict(),
            "lastUpdated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class AICost:
    """Cost of one AI model request, split by token category, in USD."""
    prompt_tokens_cost: float
    completion_tokens_cost: float
    reasoning_tokens_cost: float
    cached_input_tokens_cost: float
    total_cost: float

    @classmethod
    def zero(cls) -> "AICost":
        return cls(0.0, 0.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AICost":
        return cls(
            prompt_tokens_cost=data["promptTokensCost"],
            completion_tokens_cost=data["completionTokensCost"],
            reasoning_tokens_cost=data.get("reasoningTokensCost", 0.0),
            cached_input_tokens_cost=data.get("cachedInputTokensCost", 0.0),
            total_cost=data["totalCost"],
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "promptTokensCost": self.prompt_tokens_cost,
            "completionTokensCost": self.completion_tokens_cost,
            "reasoningTokensCost": self.reasoning_tokens_cost,
            "cachedInputTokensCost": self.cached_input_tokens_cost,
            "totalCost": self.total_cost,
        }


def calculate_costs(usage: TokenUsage, pricing: ModelPricing) -> AICost:
    """Calculate the cost of an AI model request from catalog pricing.

    Reasoning tokens fall back to the output rate, cached input tokens to
    25% of the input rate. Each component is rounded before it is summed.

    Args:
        usage: Token usage reported by the model
        pricing: Per-million-token pricing for the model

    Returns:
        AICost with per-category and total costs in USD
    """
    prompt_cost = per_million(usage.prompt_tokens, pricing.input)
    completion_cost = per_million(usage.completion_tokens, pricing.output)
    reasoning_cost = per_million(usage.reasoning_tokens or 0, pricing.reasoning_rate)
    cached_cost = per_million(usage.cached_input_tokens or 0, pricing.cache_read_rate)

    return AICost(
        prompt_tokens_cost=prompt_cost,
        completion_tokens_cost=completion_cost,
        reasoning_tokens_cost=reasoning_cost,
        cached_input_tokens_cost=cached_cost,
        total_cost=total([prompt_cost, completion_cost, reasoning_cost, cached_cost]),
    )


def calculate_user_costs(costs: AICost, markup_multiplier: Number) -> AICost:
    """Apply a markup multiplier to every field of an AI cost.

    Raises:
        ValidationFailure: If the multiplier is negative
    """
    _check_rate(markup_multiplier, "markupMultiplier")
    return AICost(
        prompt_tokens_cost=product(costs.prompt_tokens_cost, markup_multiplier),
        completion_tokens_cost=product(costs.completion_tokens_cost, markup_multiplier),
        reasoning_tokens_cost=product(costs.reasoning_tokens_cost, markup_multiplier),
        cached_input_tokens_cost=product(costs.cached_input_tokens_cost, markup_multiplier),
        total_cost=product(costs.total_cost, markup_multiplier),
    )
