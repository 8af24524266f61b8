"""
Unit tests for markup resolution.

Tests the model, tool, provider cascade, overrides, and source priority.
"""

import pytest

from ai_cost_meter.core.errors import ValidationFailure
from ai_cost_meter.core.markup import (
    MarkupResolver,
    MarkupRule,
    MarkupScope,
    StaticRuleSource,
    find_rule,
    resolve_markup,
)


def _rules():
    return StaticRuleSource([
        MarkupRule(MarkupScope.PROVIDER, "openai", 1.1),
        MarkupRule(MarkupScope.MODEL, "openai", 2.0, model_id="gpt-4o"),
        MarkupRule(MarkupScope.TOOL, "firecrawl", 1.3, tool_id="scrape"),
        MarkupRule(MarkupScope.PROVIDER, "firecrawl", 1.2),
    ])


class TestMarkupRule:
    """Test markup rule validation."""

    def test_model_scope_requires_model(self):
        """Verify model rules need a model id."""
        with pytest.raises(ValidationFailure, match="markup.modelId"):
            MarkupRule(MarkupScope.MODEL, "openai", 2.0)

    def test_tool_scope_requires_tool(self):
        """Verify tool rules need a tool id."""
        with pytest.raises(ValidationFailure, match="markup.toolId"):
            MarkupRule(MarkupScope.TOOL, "firecrawl", 2.0)

    def test_provider_scope_rejects_ids(self):
        """Verify provider rules cannot carry a model id."""
        with pytest.raises(ValidationFailure, match="not allowed"):
            MarkupRule(MarkupScope.PROVIDER, "openai", 2.0, model_id="gpt-4o")

    def test_negative_multiplier(self):
        """Verify negative multipliers are rejected."""
        with pytest.raises(ValidationFailure, match=">= 0"):
            MarkupRule(MarkupScope.PROVIDER, "openai", -1)

    def test_infinite_multiplier(self):
        """Verify infinite multipliers are rejected."""
        with pytest.raises(ValidationFailure, match=">= 0"):
            MarkupRule(MarkupScope.PROVIDER, "openai", float("inf"))

    def test_bool_multiplier(self):
        """Verify booleans are not multipliers."""
        with pytest.raises(ValidationFailure, match="must be a number"):
            MarkupRule(MarkupScope.PROVIDER, "openai", True)


class TestCascade:
    """Test rule lookup order within a source."""

    def test_model_rule_beats_provider(self):
        """Verify a model rule wins over its provider rule."""
        resolver = MarkupResolver([_rules()])
        assert resolver.resolve("openai", model_id="gpt-4o") == 2.0

    def test_provider_rule_for_other_model(self):
        """Verify other models fall back to the provider rule."""
        resolver = MarkupResolver([_rules()])
        assert resolver.resolve("openai", model_id="gpt-4o-mini") == 1.1

    def test_tool_rule_beats_provider(self):
        """Verify a tool rule wins over its provider rule."""
        resolver = MarkupResolver([_rules()])
        assert resolver.resolve("firecrawl", tool_id="scrape") == 1.3
        assert resolver.resolve("firecrawl", tool_id="crawl") == 1.2

    def test_model_rule_scoped_to_provider(self):
        """Verify a model rule only matches its own provider."""
        resolver = MarkupResolver([_rules()])
        assert resolver.resolve("azure", model_id="gpt-4o") == 0.0

    def test_default_is_zero(self):
        """Verify the default multiplier is 0 when nothing matches."""
        assert MarkupResolver([_rules()]).resolve("anthropic") == 0.0
        assert MarkupResolver().resolve("anthropic") == 0.0

    def test_configured_default(self):
        """Verify the default can be configured."""
        assert MarkupResolver([_rules()], default=1).resolve("anthropic") == 1

    def test_find_rule_returns_winner(self):
        """Verify the matching rule is returned, not just its value."""
        rule = find_rule(_rules(), "openai", model_id="gpt-4o")
        assert rule.scope is MarkupScope.MODEL
        assert find_rule(_rules(), "anthropic") is None

    def test_first_duplicate_wins(self):
        """Verify the first of two rules with the same key wins."""
        source = StaticRuleSource([
            MarkupRule(MarkupScope.PROVIDER, "openai", 1.5),
            MarkupRule(MarkupScope.PROVIDER, "openai", 3.0),
        ])
        assert MarkupResolver([source]).resolve("openai") == 1.5


class TestOverridesAndSources:
    """Test explicit overrides and multi-source priority."""

    def test_override_wins(self):
        """Verify an explicit multiplier beats every rule."""
        resolver = MarkupResolver([_rules()])
        assert resolver.resolve("openai", model_id="gpt-4o", override=1.7) == 1.7

    def test_zero_override_is_honored(self):
        """Verify an explicit 0 is an override, not a missing value."""
        resolver = MarkupResolver([_rules()])
        assert resolver.resolve("openai", model_id="gpt-4o", override=0) == 0

    def test_earlier_source_wins(self):
        """Verify a provider rule in an earlier source beats a model rule in a later one."""
        first = StaticRuleSource([MarkupRule(MarkupScope.PROVIDER, "openai", 1.4)])
        resolver = MarkupResolver([first, _rules()])
        assert resolver.resolve("openai", model_id="gpt-4o") == 1.4

    def test_later_source_consulted(self):
        """Verify later sources are used when earlier ones have no match."""
        empty = StaticRuleSource()
        resolver = MarkupResolver([empty, _rules()])
        assert resolver.resolve("openai", model_id="gpt-4o") == 2.0

    def test_resolve_markup_function(self):
        """Verify the functional form matches the resolver."""
        assert resolve_markup("openai", [_rules()], model_id="gpt-4o") == 2.0
        assert resolve_markup("anthropic", [_rules()], default=1.0) == 1.0
