"""
Unit tests for cost tracking.

Tests the pricing, markup and recording flow for AI and tool usage.
"""

import os
import tempfile
from datetime import datetime

import pytest

from ai_cost_meter.core.errors import KindMismatch, PricingNotFound
from ai_cost_meter.core.markup import MarkupResolver, MarkupRule, MarkupScope, StaticRuleSource
from ai_cost_meter.core.pricing import ModelLimits, ModelPricing, PricingCatalogEntry
from ai_cost_meter.core.schema import CreditsPricing, ToolPricingEntry
from ai_cost_meter.core.sync import ReconciliationPlan
from ai_cost_meter.core.token_counter import TokenUsage
from ai_cost_meter.core.tracker import CostTracker
from ai_cost_meter.storage.db import initialize_schema
from ai_cost_meter.storage.repository import CostRepository, MarkupRepository, PricingRepository


class TestCostTracker:
    """Test CostTracker against a temporary database."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

        self.pricing = PricingRepository(self.db_path)
        self.costs = CostRepository(self.db_path)
        self.markup = MarkupRepository(self.db_path)

        self.pricing.apply(ReconciliationPlan(inserts=[PricingCatalogEntry(
            provider_id="openai",
            provider_name="OpenAI",
            model_id="gpt-4o",
            model_name="GPT-4o",
            pricing=ModelPricing(input=2.5, output=10, cache_read=1.25),
            limits=ModelLimits(context=128000, output=16384),
            last_updated=datetime(2025, 1, 1),
        )]))
        self.pricing.upsert_tool_pricing(ToolPricingEntry(
            provider_id="firecrawl",
            provider_name="Firecrawl",
            tool_id="scrape",
            pricing=CreditsPricing(0.001, "USD"),
        ))

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _tracker(self, default: float = 0.0) -> CostTracker:
        return CostTracker(self.pricing, self.costs, MarkupResolver([self.markup], default=default))

    def test_ai_cost_with_model_markup(self):
        """Test AI cost is priced, marked up and recorded."""
        self.markup.upsert_rule(MarkupRule(MarkupScope.MODEL, "openai", 2.0, model_id="gpt-4o"))

        result = self._tracker().add_ai_cost(
            message_id="msg_1",
            thread_id="thread_1",
            provider_id="openai",
            model_id="gpt-4o",
            usage=TokenUsage(prompt_tokens=1000, completion_tokens=500, cached_input_tokens=200),
            user_id="user_1",
        )

        # 1000/1M*2.5 + 500/1M*10 + 200/1M*1.25
        assert result.costs.prompt_tokens_cost == 0.0025
        assert result.costs.completion_tokens_cost == 0.005
        assert result.costs.cached_input_tokens_cost == 0.00025
        assert result.costs.total_cost == 0.00775
        assert result.user_costs.total_cost == 0.0155

        records = self.costs.get_ai_costs_by_message_id("msg_1")
        assert len(records) == 1
        assert records[0].id == result.record_id
        assert records[0].cost_for_user == result.user_costs

    def test_ai_cost_without_markup_is_zero_for_user(self):
        """Test the default multiplier of 0 gives zero user costs."""
        result = self._tracker().add_ai_cost(
            message_id="msg_1",
            thread_id="thread_1",
            provider_id="openai",
            model_id="gpt-4o",
            usage={"promptTokens": 1000, "completionTokens": 0},
        )
        assert result.costs.total_cost == 0.0025
        assert result.user_costs.total_cost == 0.0

    def test_ai_cost_override(self):
        """Test an explicit multiplier beats stored rules."""
        self.markup.upsert_rule(MarkupRule(MarkupScope.PROVIDER, "openai", 3.0))
        result = self._tracker().add_ai_cost(
            message_id="msg_1",
            thread_id="thread_1",
            provider_id="openai",
            model_id="gpt-4o",
            usage=TokenUsage(prompt_tokens=1000, completion_tokens=0),
            markup_multiplier=1.0,
        )
        assert result.user_costs == result.costs

    def test_ai_cost_unknown_model(self):
        """Test missing catalog pricing raises and records nothing."""
        with pytest.raises(PricingNotFound, match="'openai' and 'gpt-9'"):
            self._tracker().add_ai_cost(
                message_id="msg_1",
                thread_id="thread_1",
                provider_id="openai",
                model_id="gpt-9",
                usage=TokenUsage(prompt_tokens=1, completion_tokens=1),
            )
        assert self.costs.get_ai_costs_by_thread("thread_1") == []

    def test_tool_cost(self):
        """Test tool usage is priced and recorded in dict form."""
        self.markup.upsert_rule(MarkupRule(MarkupScope.TOOL, "firecrawl", 1.5, tool_id="scrape"))

        result = self._tracker().add_tool_cost(
            message_id="msg_2",
            thread_id="thread_1",
            provider_id="firecrawl",
            tool_id="scrape",
            usage={"type": "credits", "credits": 10},
            user_id="user_1",
        )

        assert result.cost.amount == 0.01
        assert result.cost_for_user.amount == 0.015
        assert result.cost_for_user.markup_multiplier == 1.5

        records = self.costs.get_tool_costs_by_user("user_1")
        assert len(records) == 1
        assert records[0].cost_for_user["markupMultiplier"] == 1.5
        assert records[0].usage == {"type": "credits", "credits": 10}

    def test_tool_cost_kind_mismatch(self):
        """Test usage of the wrong kind raises and records nothing."""
        with pytest.raises(KindMismatch):
            self._tracker().add_tool_cost(
                message_id="msg_2",
                thread_id="thread_1",
                provider_id="firecrawl",
                tool_id="scrape",
                usage={"type": "requests", "requests": 1},
            )
        assert self.costs.get_tool_costs_by_thread("thread_1") == []

    def test_tool_cost_unknown_tool(self):
        """Test missing tool pricing raises PricingNotFound."""
        with pytest.raises(PricingNotFound):
            self._tracker().add_tool_cost(
                message_id="msg_2",
                thread_id="thread_1",
                provider_id="serper",
                tool_id="search",
                usage={"type": "requests", "requests": 1},
            )

    def test_llm_tool_priced_from_catalog(self):
        """Test a tool named like a catalog model is priced by tokens."""
        result = CostTracker(
            self.pricing,
            self.costs,
            MarkupResolver([StaticRuleSource()], default=1),
        ).add_tool_cost(
            message_id="msg_3",
            thread_id="thread_2",
            provider_id="openai",
            tool_id="gpt-4o",
            usage={"type": "tokens", "inputTokens": 1_000_000, "outputTokens": 0},
        )
        assert result.cost.amount == 2.5
        assert result.cost_for_user.amount == 2.5
        assert result.cost_for_user.markup_multiplier is None

    def test_totals_after_tracking(self):
        """Test recorded costs show up in totals."""
        tracker = self._tracker(default=1.0)
        for message_id in ("m1", "m2"):
            tracker.add_ai_cost(
                message_id=message_id,
                thread_id="thread_1",
                provider_id="openai",
                model_id="gpt-4o",
                usage=TokenUsage(prompt_tokens=1000, completion_tokens=0),
                user_id="user_1",
            )
        totals = self.costs.get_total_ai_costs_by_user("user_1")
        assert totals.count == 2
        assert totals.total_amount == 0.005
        assert totals.total_user_amount == 0.005
