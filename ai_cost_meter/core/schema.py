"""
Usage and pricing schema for metered tools.

Defines the closed set of ten usage kinds and the pricing policy that
mirrors each of them, with strict payload validation.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import (
    Any, ClassVar, Dict, Mapping, Optional, Set, Tuple, Type, Union
)

from .errors import ValidationFailure


class UsageKind(Enum):
    """Metering styles supported by the calculator."""
    CREDITS = "credits"
    TOKENS = "tokens"
    REQUESTS = "requests"
    COMPUTE = "compute"
    STORAGE = "storage"
    BANDWIDTH = "bandwidth"
    UNITS = "units"
    TIERED = "tiered"
    COMPOSITE = "composite"
    CUSTOM = "custom"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _require_number(value: Any, path: str, optional: bool = False) -> None:
    if value is None:
        if optional:
            return
        raise ValidationFailure(path, "is required")
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationFailure(path, "must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValidationFailure(path, "must be a non-negative number")


def _require_string(value: Any, path: str, optional: bool = False) -> None:
    if value is None:
        if optional:
            return
        raise ValidationFailure(path, "is required")
    if not isinstance(value, str):
        raise ValidationFailure(path, "must be a string")


def _require_rate_map(value: Any, path: str) -> None:
    if value is None:
        return
    if not isinstance(value, Mapping):
        raise ValidationFailure(path, "must be a mapping of name to number")
    for name, rate in value.items():
        _require_string(name, f"{path} key")
        _require_number(rate, f"{path}.{name}")


def _check_keys(
    data: Any, path: str, required: Set[str], optional: Set[str] = frozenset()
) -> None:
    if not isinstance(data, Mapping):
        raise ValidationFailure(path, "must be a mapping")
    unknown = set(data) - required - set(optional) - {"type"}
    if unknown:
        raise ValidationFailure(path, f"unknown keys {sorted(unknown)}")
    for key in sorted(required):
        if key not in data:
            raise ValidationFailure(f"{path}.{key}", "is required")


def compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None."""
    return {key: value for key, value in data.items() if value is not None}


def _copy_map(value: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    return dict(value) if value is not None else None


# ---------------------------------------------------------------------------
# Usage records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreditsUsage:
    """Credit-based usage, e.g. scraping APIs billed in credits."""
    kind: ClassVar[UsageKind] = UsageKind.CREDITS
    credits: float
    credit_type: Optional[str] = None

    def __post_init__(self):
        _require_number(self.credits, "usage.credits")
        _require_string(self.credit_type, "usage.creditType", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CreditsUsage":
        _check_keys(data, "usage", {"credits"}, {"creditType"})
        return cls(credits=data["credits"], credit_type=data.get("creditType"))

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "credits": self.credits,
            "creditType": self.credit_type,
        })


@dataclass(frozen=True)
class TokensUsage:
    """Token-based usage for LLM-powered tools."""
    kind: ClassVar[UsageKind] = UsageKind.TOKENS
    input_tokens: float
    output_tokens: float
    reasoning_tokens: Optional[float] = None
    cache_read_tokens: Optional[float] = None
    cache_write_tokens: Optional[float] = None

    def __post_init__(self):
        _require_number(self.input_tokens, "usage.inputTokens")
        _require_number(self.output_tokens, "usage.outputTokens")
        _require_number(self.reasoning_tokens, "usage.reasoningTokens", optional=True)
        _require_number(self.cache_read_tokens, "usage.cacheReadTokens", optional=True)
        _require_number(self.cache_write_tokens, "usage.cacheWriteTokens", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TokensUsage":
        _check_keys(
            data, "usage", {"inputTokens", "outputTokens"},
            {"reasoningTokens", "cacheReadTokens", "cacheWriteTokens"},
        )
        return cls(
            input_tokens=data["inputTokens"],
            output_tokens=data["outputTokens"],
            reasoning_tokens=data.get("reasoningTokens"),
            cache_read_tokens=data.get("cacheReadTokens"),
            cache_write_tokens=data.get("cacheWriteTokens"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "reasoningTokens": self.reasoning_tokens,
            "cacheReadTokens": self.cache_read_tokens,
            "cacheWriteTokens": self.cache_write_tokens,
        })


@dataclass(frozen=True)
class RequestsUsage:
    """Flat per-request usage."""
    kind: ClassVar[UsageKind] = UsageKind.REQUESTS
    requests: float
    request_type: Optional[str] = None

    def __post_init__(self):
        _require_number(self.requests, "usage.requests")
        _require_string(self.request_type, "usage.requestType", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestsUsage":
        _check_keys(data, "usage", {"requests"}, {"requestType"})
        return cls(requests=data["requests"], request_type=data.get("requestType"))

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "requests": self.requests,
            "requestType": self.request_type,
        })


@dataclass(frozen=True)
class ComputeUsage:
    """Compute time usage, e.g. GPU or CPU milliseconds."""
    kind: ClassVar[UsageKind] = UsageKind.COMPUTE
    duration_ms: float
    compute_type: Optional[str] = None
    tier: Optional[str] = None

    def __post_init__(self):
        _require_number(self.duration_ms, "usage.durationMs")
        _require_string(self.compute_type, "usage.computeType", optional=True)
        _require_string(self.tier, "usage.tier", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComputeUsage":
        _check_keys(data, "usage", {"durationMs"}, {"computeType", "tier"})
        return cls(
            duration_ms=data["durationMs"],
            compute_type=data.get("computeType"),
            tier=data.get("tier"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "durationMs": self.duration_ms,
            "computeType": self.compute_type,
            "tier": self.tier,
        })


@dataclass(frozen=True)
class StorageUsage:
    """Storage usage in bytes held for a duration."""
    kind: ClassVar[UsageKind] = UsageKind.STORAGE
    bytes: float
    duration_seconds: Optional[float] = None
    storage_class: Optional[str] = None

    def __post_init__(self):
        _require_number(self.bytes, "usage.bytes")
        _require_number(self.duration_seconds, "usage.durationSeconds", optional=True)
        _require_string(self.storage_class, "usage.storageClass", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StorageUsage":
        _check_keys(data, "usage", {"bytes"}, {"durationSeconds", "storageClass"})
        return cls(
            bytes=data["bytes"],
            duration_seconds=data.get("durationSeconds"),
            storage_class=data.get("storageClass"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "bytes": self.bytes,
            "durationSeconds": self.duration_seconds,
            "storageClass": self.storage_class,
        })


@dataclass(frozen=True)
class BandwidthUsage:
    """Data transfer usage, inbound and outbound."""
    kind: ClassVar[UsageKind] = UsageKind.BANDWIDTH
    bytes_in: Optional[float] = None
    bytes_out: Optional[float] = None
    region: Optional[str] = None

    def __post_init__(self):
        _require_number(self.bytes_in, "usage.bytesIn", optional=True)
        _require_number(self.bytes_out, "usage.bytesOut", optional=True)
        _require_string(self.region, "usage.region", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BandwidthUsage":
        _check_keys(data, "usage", set(), {"bytesIn", "bytesOut", "region"})
        return cls(
            bytes_in=data.get("bytesIn"),
            bytes_out=data.get("bytesOut"),
            region=data.get("region"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "bytesIn": self.bytes_in,
            "bytesOut": self.bytes_out,
            "region": self.region,
        })


@dataclass(frozen=True)
class UnitsUsage:
    """Generic unit usage, e.g. images, pages or documents."""
    kind: ClassVar[UsageKind] = UsageKind.UNITS
    units: float
    unit_type: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        _require_number(self.units, "usage.units")
        _require_string(self.unit_type, "usage.unitType")
        if self.metadata is not None and not isinstance(self.metadata, Mapping):
            raise ValidationFailure("usage.metadata", "must be a mapping")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UnitsUsage":
        _check_keys(data, "usage", {"units", "unitType"}, {"metadata"})
        return cls(
            units=data["units"],
            unit_type=data["unitType"],
            metadata=_copy_map(data.get("metadata")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "units": self.units,
            "unitType": self.unit_type,
            "metadata": _copy_map(self.metadata),
        })


@dataclass(frozen=True)
class TieredUsage:
    """A quantity priced by volume tier."""
    kind: ClassVar[UsageKind] = UsageKind.TIERED
    quantity: float
    unit_type: str
    tier_name: Optional[str] = None

    def __post_init__(self):
        _require_number(self.quantity, "usage.quantity")
        _require_string(self.unit_type, "usage.unitType")
        _require_string(self.tier_name, "usage.tierName", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TieredUsage":
        _check_keys(data, "usage", {"quantity", "unitType"}, {"tierName"})
        return cls(
            quantity=data["quantity"],
            unit_type=data["unitType"],
            tier_name=data.get("tierName"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "quantity": self.quantity,
            "unitType": self.unit_type,
            "tierName": self.tier_name,
        })


@dataclass(frozen=True)
class UsageComponent:
    """One named part of a composite usage."""
    name: str
    quantity: float
    unit_type: str
    cost: Optional[float] = None

    def __post_init__(self):
        _require_string(self.name, "usage.components.name")
        _require_number(self.quantity, f"usage.components.{self.name}.quantity")
        _require_string(self.unit_type, f"usage.components.{self.name}.unitType")
        _require_number(self.cost, f"usage.components.{self.name}.cost", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UsageComponent":
        _check_keys(data, "usage.components[]", {"name", "quantity", "unitType"}, {"cost"})
        return cls(
            name=data["name"],
            quantity=data["quantity"],
            unit_type=data["unitType"],
            cost=data.get("cost"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "name": self.name,
            "quantity": self.quantity,
            "unitType": self.unit_type,
            "cost": self.cost,
        })


@dataclass(frozen=True)
class CompositeUsage:
    """Usage combined from several named components."""
    kind: ClassVar[UsageKind] = UsageKind.COMPOSITE
    components: Tuple[UsageComponent, ...]

    def __post_init__(self):
        object.__setattr__(self, "components", tuple(self.components))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CompositeUsage":
        _check_keys(data, "usage", {"components"})
        if not isinstance(data["components"], (list, tuple)):
            raise ValidationFailure("usage.components", "must be a list")
        return cls(components=tuple(
            UsageComponent.from_dict(item) for item in data["components"]
        ))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "components": [component.to_dict() for component in self.components],
        }


@dataclass(frozen=True)
class CustomUsage:
    """Opaque usage for pricing models the calculator does not know."""
    kind: ClassVar[UsageKind] = UsageKind.CUSTOM
    data: Any
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomUsage":
        _check_keys(data, "usage", {"data"}, {"description"})
        _require_string(data.get("description"), "usage.description", optional=True)
        return cls(data=data["data"], description=data.get("description"))

    def to_dict(self) -> Dict[str, Any]:
        result = {"type": self.kind.value, "data": self.data}
        if self.description is not None:
            result["description"] = self.description
        return result


Usage = Union[
    CreditsUsage, TokensUsage, RequestsUsage, ComputeUsage, StorageUsage,
    BandwidthUsage, UnitsUsage, TieredUsage, CompositeUsage, CustomUsage,
]


# ---------------------------------------------------------------------------
# Pricing policies
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreditsPricing:
    """Price per credit, optionally per credit type."""
    kind: ClassVar[UsageKind] = UsageKind.CREDITS
    cost_per_credit: float
    currency: str
    credit_types: Optional[Dict[str, float]] = None

    def __post_init__(self):
        _require_number(self.cost_per_credit, "pricing.costPerCredit")
        _require_string(self.currency, "pricing.currency")
        _require_rate_map(self.credit_types, "pricing.creditTypes")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CreditsPricing":
        _check_keys(data, "pricing", {"costPerCredit", "currency"}, {"creditTypes"})
        return cls(
            cost_per_credit=data["costPerCredit"],
            currency=data["currency"],
            credit_types=_copy_map(data.get("creditTypes")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "costPerCredit": self.cost_per_credit,
            "currency": self.currency,
            "creditTypes": _copy_map(self.credit_types),
        })


@dataclass(frozen=True)
class TokensPricing:
    """Per-million-token rates for LLM-powered tools."""
    kind: ClassVar[UsageKind] = UsageKind.TOKENS
    input: float
    output: float
    currency: str
    reasoning: Optional[float] = None
    cache_read: Optional[float] = None
    cache_write: Optional[float] = None

    def __post_init__(self):
        _require_number(self.input, "pricing.input")
        _require_number(self.output, "pricing.output")
        _require_string(self.currency, "pricing.currency")
        _require_number(self.reasoning, "pricing.reasoning", optional=True)
        _require_number(self.cache_read, "pricing.cache_read", optional=True)
        _require_number(self.cache_write, "pricing.cache_write", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TokensPricing":
        _check_keys(
            data, "pricing", {"input", "output", "currency"},
            {"reasoning", "cache_read", "cache_write"},
        )
        return cls(
            input=data["input"],
            output=data["output"],
            currency=data["currency"],
            reasoning=data.get("reasoning"),
            cache_read=data.get("cache_read"),
            cache_write=data.get("cache_write"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "input": self.input,
            "output": self.output,
            "reasoning": self.reasoning,
            "cache_read": self.cache_read,
            "cache_write": self.cache_write,
            "currency": self.currency,
        })


@dataclass(frozen=True)
class RequestsPricing:
    """Flat price per request, optionally per request type."""
    kind: ClassVar[UsageKind] = UsageKind.REQUESTS
    cost_per_request: float
    currency: str
    request_types: Optional[Dict[str, float]] = None

    def __post_init__(self):
        _require_number(self.cost_per_request, "pricing.costPerRequest")
        _require_string(self.currency, "pricing.currency")
        _require_rate_map(self.request_types, "pricing.requestTypes")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestsPricing":
        _check_keys(data, "pricing", {"costPerRequest", "currency"}, {"requestTypes"})
        return cls(
            cost_per_request=data["costPerRequest"],
            currency=data["currency"],
            request_types=_copy_map(data.get("requestTypes")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "costPerRequest": self.cost_per_request,
            "currency": self.currency,
            "requestTypes": _copy_map(self.request_types),
        })


@dataclass(frozen=True)
class ComputePricing:
    """Price per millisecond with compute-type rates and tier multipliers."""
    kind: ClassVar[UsageKind] = UsageKind.COMPUTE
    cost_per_ms: float
    currency: str
    compute_types: Optional[Dict[str, float]] = None
    tiers: Optional[Dict[str, float]] = None

    def __post_init__(self):
        _require_number(self.cost_per_ms, "pricing.costPerMs")
        _require_string(self.currency, "pricing.currency")
        _require_rate_map(self.compute_types, "pricing.computeTypes")
        _require_rate_map(self.tiers, "pricing.tiers")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComputePricing":
        _check_keys(data, "pricing", {"costPerMs", "currency"}, {"computeTypes", "tiers"})
        return cls(
            cost_per_ms=data["costPerMs"],
            currency=data["currency"],
            compute_types=_copy_map(data.get("computeTypes")),
            tiers=_copy_map(data.get("tiers")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "costPerMs": self.cost_per_ms,
            "currency": self.currency,
            "computeTypes": _copy_map(self.compute_types),
            "tiers": _copy_map(self.tiers),
        })


@dataclass(frozen=True)
class StoragePricing:
    """Price per byte-second, optionally per storage class."""
    kind: ClassVar[UsageKind] = UsageKind.STORAGE
    cost_per_byte_second: float
    currency: str
    storage_classes: Optional[Dict[str, float]] = None

    def __post_init__(self):
        _require_number(self.cost_per_byte_second, "pricing.costPerByteSecond")
        _require_string(self.currency, "pricing.currency")
        _require_rate_map(self.storage_classes, "pricing.storageClasses")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StoragePricing":
        _check_keys(data, "pricing", {"costPerByteSecond", "currency"}, {"storageClasses"})
        return cls(
            cost_per_byte_second=data["costPerByteSecond"],
            currency=data["currency"],
            storage_classes=_copy_map(data.get("storageClasses")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "costPerByteSecond": self.cost_per_byte_second,
            "currency": self.currency,
            "storageClasses": _copy_map(self.storage_classes),
        })


@dataclass(frozen=True)
class BandwidthPricing:
    """Price per byte in and out, with regional multipliers."""
    kind: ClassVar[UsageKind] = UsageKind.BANDWIDTH
    currency: str
    cost_per_byte_in: Optional[float] = None
    cost_per_byte_out: Optional[float] = None
    regions: Optional[Dict[str, float]] = None

    def __post_init__(self):
        _require_string(self.currency, "pricing.currency")
        _require_number(self.cost_per_byte_in, "pricing.costPerByteIn", optional=True)
        _require_number(self.cost_per_byte_out, "pricing.costPerByteOut", optional=True)
        _require_rate_map(self.regions, "pricing.regions")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BandwidthPricing":
        _check_keys(
            data, "pricing", {"currency"},
            {"costPerByteIn", "costPerByteOut", "regions"},
        )
        return cls(
            currency=data["currency"],
            cost_per_byte_in=data.get("costPerByteIn"),
            cost_per_byte_out=data.get("costPerByteOut"),
            regions=_copy_map(data.get("regions")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "type": self.kind.value,
            "costPerByteIn": self.cost_per_byte_in,
            "costPerByteOut": self.cost_per_byte_out,
            "currency": self.currency,
            "regions": _copy_map(self.regions),
        })


@dataclass(frozen=True)
class UnitsPricing:
    """Price per generic unit."""
    kind: ClassVar[UsageKind] = UsageKind.UNITS
    cost_per_unit: float
    unit_type: str
    currency: str

    def __post_init__(self):
        _require_number(self.cost_per_unit, "pricing.costPerUnit")
        _require_string(self.unit_type, "pricing.unitType")
        _require_string(self.currency, "pricing.currency")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UnitsPricing":
        _check_keys(data, "pricing", {"costPerUnit", "unitType", "currency"})
        return cls(
            cost_per_unit=data["costPerUnit"],
            unit_type=data["unitType"],
            currency=data["currency"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "costPerUnit": self.cost_per_unit,
            "unitType": self.unit_type,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class Tier:
    """Half-open quantity range [start, end) billed at a single rate.

    An end of None means the tier is unbounded.
    """
    start: float
    rate: float
    end: Optional[float] = None

    def __post_init__(self):
        _require_number(self.start, "pricing.tiers.from")
        _require_number(self.rate, "pricing.tiers.rate")
        _require_number(self.end, "pricing.tiers.to", optional=True)
        if self.end is not None and self.end <= self.start:
            raise ValidationFailure(
                "pricing.tiers", f"tier 'to' ({self.end}) must be greater than 'from' ({self.start})"
            )

    def contains(self, quantity: float) -> bool:
        return quantity >= self.start and (self.end is None or quantity < self.end)

    @property
    def label(self) -> str:
        end = "∞" if self.end is None else _format_bound(self.end)
        return f"{_format_bound(self.start)}-{end}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Tier":
        _check_keys(data, "pricing.tiers[]", {"from", "rate"}, {"to"})
        return cls(start=data["from"], rate=data["rate"], end=data.get("to"))

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({"from": self.start, "to": self.end, "rate": self.rate})


def _format_bound(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _check_tier_order(tiers: Tuple[Tier, ...]) -> None:
    if not tiers:
        raise ValidationFailure("pricing.tiers", "must contain at least one tier")
    for previous, current in zip(tiers, tiers[1:]):
        if previous.end is None:
            raise ValidationFailure(
                "pricing.tiers", "only the last tier may be unbounded"
            )
        if current.start < previous.start:
            raise ValidationFailure(
                "pricing.tiers", "tiers must be sorted by 'from'"
            )
        if current.start < previous.end:
            raise ValidationFailure(
                "pricing.tiers",
                f"tier {current.label} overlaps tier {previous.label}",
            )


@dataclass(frozen=True)
class TieredPricing:
    """Volume pricing over sorted, non-overlapping tiers."""
    kind: ClassVar[UsageKind] = UsageKind.TIERED
    tiers: Tuple[Tier, ...]
    unit_type: str
    currency: str

    def __post_init__(self):
        object.__setattr__(self, "tiers", tuple(self.tiers))
        _require_string(self.unit_type, "pricing.unitType")
        _require_string(self.currency, "pricing.currency")
        _check_tier_order(self.tiers)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TieredPricing":
        _check_keys(data, "pricing", {"tiers", "unitType", "currency"})
        if not isinstance(data["tiers"], (list, tuple)):
            raise ValidationFailure("pricing.tiers", "must be a list")
        return cls(
            tiers=tuple(Tier.from_dict(item) for item in data["tiers"]),
            unit_type=data["unitType"],
            currency=data["currency"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "tiers": [tier.to_dict() for tier in self.tiers],
            "unitType": self.unit_type,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class PricingComponent:
    """Rate for one named part of a composite pricing."""
    name: str
    cost_per_unit: float
    unit_type: str

    def __post_init__(self):
        _require_string(self.name, "pricing.components.name")
        _require_number(self.cost_per_unit, f"pricing.components.{self.name}.costPerUnit")
        _require_string(self.unit_type, f"pricing.components.{self.name}.unitType")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PricingComponent":
        _check_keys(data, "pricing.components[]", {"name", "costPerUnit", "unitType"})
        return cls(
            name=data["name"],
            cost_per_unit=data["costPerUnit"],
            unit_type=data["unitType"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "costPerUnit": self.cost_per_unit,
            "unitType": self.unit_type,
        }


@dataclass(frozen=True)
class CompositePricing:
    """Pricing made of several named components."""
    kind: ClassVar[UsageKind] = UsageKind.COMPOSITE
    components: Tuple[PricingComponent, ...]
    currency: str

    def __post_init__(self):
        object.__setattr__(self, "components", tuple(self.components))
        _require_string(self.currency, "pricing.currency")

    def find_component(self, name: str) -> Optional[PricingComponent]:
        for component in self.components:
            if component.name == name:
                return component
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CompositePricing":
        _check_keys(data, "pricing", {"components", "currency"})
        if not isinstance(data["components"], (list, tuple)):
            raise ValidationFailure("pricing.components", "must be a list")
        return cls(
            components=tuple(PricingComponent.from_dict(item) for item in data["components"]),
            currency=data["currency"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "components": [component.to_dict() for component in self.components],
            "currency": self.currency,
        }


@dataclass(frozen=True)
class CustomPricing:
    """Opaque pricing; cost is left to the caller."""
    kind: ClassVar[UsageKind] = UsageKind.CUSTOM
    data: Any
    currency: str
    description: Optional[str] = None

    def __post_init__(self):
        _require_string(self.currency, "pricing.currency")
        _require_string(self.description, "pricing.description", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomPricing":
        _check_keys(data, "pricing", {"data", "currency"}, {"description"})
        return cls(
            data=data["data"],
            currency=data["currency"],
            description=data.get("description"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {"type": self.kind.value, "data": self.data, "currency": self.currency}
        if self.description is not None:
            result["description"] = self.description
        return result


Pricing = Union[
    CreditsPricing, TokensPricing, RequestsPricing, ComputePricing,
    StoragePricing, BandwidthPricing, UnitsPricing, TieredPricing,
    CompositePricing, CustomPricing,
]


USAGE_TYPES: Dict[UsageKind, Type] = {
    cls.kind: cls for cls in (
        CreditsUsage, TokensUsage, RequestsUsage, ComputeUsage, StorageUsage,
        BandwidthUsage, UnitsUsage, TieredUsage, CompositeUsage, CustomUsage,
    )
}

PRICING_TYPES: Dict[UsageKind, Type] = {
    cls.kind: cls for cls in (
        CreditsPricing, TokensPricing, RequestsPricing, ComputePricing,
        StoragePricing, BandwidthPricing, UnitsPricing, TieredPricing,
        CompositePricing, CustomPricing,
    )
}


def _parse_kind(payload: Any, path: str) -> UsageKind:
    if not isinstance(payload, Mapping):
        raise ValidationFailure(path, "must be a mapping")
    if "type" not in payload:
        raise ValidationFailure(f"{path}.type", "is required")
    try:
        return UsageKind(payload["type"])
    except ValueError:
        valid = [kind.value for kind in UsageKind]
        raise ValidationFailure(f"{path}.type", f"must be one of: {valid}")


def parse_usage(payload: Mapping[str, Any]) -> Usage:
    """Parse and validate a usage payload keyed by its 'type'.

    Raises:
        ValidationFailure: If the payload is malformed
    """
    return USAGE_TYPES[_parse_kind(payload, "usage")].from_dict(payload)


def parse_pricing(payload: Mapping[str, Any]) -> Pricing:
    """Parse and validate a pricing payload keyed by its 'type'.

    Raises:
        ValidationFailure: If the payload is malformed
    """
    return PRICING_TYPES[_parse_kind(payload, "pricing")].from_dict(payload)


# ---------------------------------------------------------------------------
# Tool pricing catalog
# ---------------------------------------------------------------------------

_LIMIT_FIELDS = (
    ("max_requests_per_second", "maxRequestsPerSecond"),
    ("max_requests_per_minute", "maxRequestsPerMinute"),
    ("max_requests_per_hour", "maxRequestsPerHour"),
    ("max_requests_per_day", "maxRequestsPerDay"),
    ("max_requests_per_month", "maxRequestsPerMonth"),
    ("max_concurrent_requests", "maxConcurrentRequests"),
    ("max_bytes_per_request", "maxBytesPerRequest"),
    ("max_tokens_per_request", "maxTokensPerRequest"),
)


@dataclass(frozen=True)
class ToolLimits:
    """Rate and size limits published for a tool."""
    max_requests_per_second: Optional[float] = None
    max_requests_per_minute: Optional[float] = None
    max_requests_per_hour: Optional[float] = None
    max_requests_per_day: Optional[float] = None
    max_requests_per_month: Optional[float] = None
    max_concurrent_requests: Optional[float] = None
    max_bytes_per_request: Optional[float] = None
    max_tokens_per_request: Optional[float] = None

    def __post_init__(self):
        for attribute, key in _LIMIT_FIELDS:
            _require_number(getattr(self, attribute), f"limits.{key}", optional=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolLimits":
        _check_keys(data, "limits", set(), {key for _, key in _LIMIT_FIELDS})
        return cls(**{attribute: data.get(key) for attribute, key in _LIMIT_FIELDS})

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({key: getattr(self, attribute) for attribute, key in _LIMIT_FIELDS})


@dataclass(frozen=True)
class ToolPricingEntry:
    """Pricing for a tool of a provider.

    A tool_id of None marks the provider's default pricing.
    """
    provider_id: str
    provider_name: str
    pricing: Pricing
    tool_id: Optional[str] = None
    tool_name: Optional[str] = None
    limits: Optional[ToolLimits] = None
    last_updated: datetime = field(default_factory=datetime.now)

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return (self.provider_id, self.tool_id)

    def to_dict(self) -> Dict[str, Any]:
        return compact_dict({
            "providerId": self.provider_id,
            "providerName": self.provider_name,
            "toolId": self.tool_id,
            "toolName": self.tool_name,
            "pricing": self.pricing.to_dict(),
            "limits": self.limits.to_dict() if self.limits else None,
            "lastUpdated": self.last_updated.isoformat(),
        })
