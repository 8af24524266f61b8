"""
Markup multiplier resolution.

Resolves the multiplier applied to raw cost for a provider, model or tool.

Resolution Order:
1. Explicit per-call override
2. For each rule source in priority order: model rule, then tool rule,
   then provider rule
3. The resolver default (0 unless configured otherwise)
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .errors import ValidationFailure
from .pricing import Number


class MarkupScope(Enum):
    """How specific a markup rule is."""
    PROVIDER = "provider"
    MODEL = "model"
    TOOL = "tool"


@dataclass(frozen=True)
class MarkupRule:
    """Markup multiplier for a provider, one of its models or one of its tools."""
    scope: MarkupScope
    provider_id: str
    multiplier: float
    model_id: Optional[str] = None
    tool_id: Optional[str] = None

    def __post_init__(self):
        """Validate identifiers match the scope and the multiplier is usable."""
        if not self.provider_id:
            raise ValidationFailure("markup.providerId", "is required")
        if isinstance(self.multiplier, bool) or not isinstance(self.multiplier, (int, float)):
            raise ValidationFailure("markup.markupMultiplier", "must be a number")
        if not math.isfinite(self.multiplier) or self.multiplier < 0:
            raise ValidationFailure("markup.markupMultiplier", "must be >= 0")
        if self.scope is MarkupScope.MODEL and not self.model_id:
            raise ValidationFailure("markup.modelId", "is required for model scope")
        if self.scope is MarkupScope.TOOL and not self.tool_id:
            raise ValidationFailure("markup.toolId", "is required for tool scope")
        if self.scope is not MarkupScope.MODEL and self.model_id is not None:
            raise ValidationFailure("markup.modelId", f"not allowed for {self.scope.value} scope")
        if self.scope is not MarkupScope.TOOL and self.tool_id is not None:
            raise ValidationFailure("markup.toolId", f"not allowed for {self.scope.value} scope")

    def matches(
        self, provider_id: str, model_id: Optional[str] = None, tool_id: Optional[str] = None
    ) -> bool:
        if self.provider_id != provider_id:
            return False
        if self.scope is MarkupScope.MODEL:
            return self.model_id == model_id
        if self.scope is MarkupScope.TOOL:
            return self.tool_id == tool_id
        return True


class RuleSource(ABC):
    """Somewhere markup rules can be looked up, one rule per scope key."""

    @abstractmethod
    def find_model_rule(self, provider_id: str, model_id: str) -> Optional[MarkupRule]:
        ...

    @abstractmethod
    def find_tool_rule(self, provider_id: str, tool_id: str) -> Optional[MarkupRule]:
        ...

    @abstractmethod
    def find_provider_rule(self, provider_id: str) -> Optional[MarkupRule]:
        ...


class StaticRuleSource(RuleSource):
    """Rule source over an in-process list of rules, e.g. from configuration.

    When several rules share a scope key, the first one wins.
    """

    def __init__(self, rules: Iterable[MarkupRule] = ()):
        self.rules: List[MarkupRule] = list(rules)

    def _first(self, scope: MarkupScope, provider_id: str, **ids: Optional[str]) -> Optional[MarkupRule]:
        for rule in self.rules:
            if rule.scope is scope and rule.matches(provider_id, **ids):
                return rule
        return None

    def find_model_rule(self, provider_id: str, model_id: str) -> Optional[MarkupRule]:
        return self._first(MarkupScope.MODEL, provider_id, model_id=model_id)

    def find_tool_rule(self, provider_id: str, tool_id: str) -> Optional[MarkupRule]:
        return self._first(MarkupScope.TOOL, provider_id, tool_id=tool_id)

    def find_provider_rule(self, provider_id: str) -> Optional[MarkupRule]:
        return self._first(MarkupScope.PROVIDER, provider_id)


def find_rule(
    source: RuleSource,
    provider_id: str,
    model_id: Optional[str] = None,
    tool_id: Optional[str] = None,
) -> Optional[MarkupRule]:
    """Run the model, tool, provider cascade against a single source."""
    if model_id:
        rule = source.find_model_rule(provider_id, model_id)
        if rule is not None:
            return rule
    if tool_id:
        rule = source.find_tool_rule(provider_id, tool_id)
        if rule is not None:
            return rule
    return source.find_provider_rule(provider_id)


class MarkupResolver:
    """Resolves markup multipliers from an ordered list of rule sources.

    Sources are consulted on every call; nothing is cached.
    """

    def __init__(self, sources: Sequence[RuleSource] = (), default: Number = 0.0):
        """Initialize the resolver.

        Args:
            sources: Rule sources, highest priority first
            default: Multiplier returned when no rule matches
        """
        self.sources = list(sources)
        self.default = default

    def find(
        self,
        provider_id: str,
        model_id: Optional[str] = None,
        tool_id: Optional[str] = None,
    ) -> Optional[MarkupRule]:
        """Return the winning rule, or None when no source has a match."""
        for source in self.sources:
            rule = find_rule(source, provider_id, model_id=model_id, tool_id=tool_id)
            if rule is not None:
                return rule
        return None

    def resolve(
        self,
        provider_id: str,
        model_id: Optional[str] = None,
        tool_id: Optional[str] = None,
        override: Optional[Number] = None,
    ) -> Number:
        """Resolve the multiplier for a provider, model or tool.

        Args:
            provider_id: Provider identifier
            model_id: Optional model identifier
            tool_id: Optional tool identifier
            override: Explicit multiplier that wins over any rule

        Returns:
            The applicable markup multiplier
        """
        if override is not None:
            return override
        rule = self.find(provider_id, model_id=model_id, tool_id=tool_id)
        if rule is not None:
            return rule.multiplier
        return self.default


def resolve_markup(
    provider_id: str,
    sources: Sequence[RuleSource],
    model_id: Optional[str] = None,
    tool_id: Optional[str] = None,
    override: Optional[Number] = None,
    default: Number = 0.0,
) -> Number:
    """Resolve a markup multiplier without keeping a resolver around."""
    resolver = MarkupResolver(sources, default=default)
    return resolver.resolve(provider_id, model_id=model_id, tool_id=tool_id, override=override)
